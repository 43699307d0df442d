"""
Shared fixtures for the ledger test-suite.

Every test runs against a fresh in-memory SQLite schema with a small seeded
catalog: four employees (one per role), one loyalty customer, two products (one with a
variant) and a dine-in table.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-the-ledger-suite-0123456789"
os.environ["DEBUG_MODE"] = "true"

from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402

from pos_core.actor import Actor  # noqa: E402
from pos_core.config import load_config, set_config  # noqa: E402
from pos_core.db import get_engine, get_session, init_engine  # noqa: E402
from pos_core.jwt_service import issue_terminal_token  # noqa: E402
from pos_core.models import (  # noqa: E402
    Base,
    Customer,
    Employee,
    Product,
    ProductVariant,
    Table,
)
from pos_core.schemas import PricingQuoteRequest, SettlementRequest  # noqa: E402
from pos_core.services.settlement_service import quote_order, settle_order  # noqa: E402


@pytest.fixture(scope="session")
def app_config():
    config = load_config("pos-ledger-test")
    set_config(config)
    init_engine(config)
    return config


@pytest.fixture(autouse=True)
def database(app_config):
    """Recreate the schema and restore the process config for every test."""
    set_config(app_config)
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield engine
    set_config(app_config)


@pytest.fixture
def seed():
    with get_session() as db_session:
        manager = Employee(name="Maria Manager", role="MANAGER")
        cashier = Employee(name="Carlos Cashier", role="CASHIER")
        server = Employee(name="Sofia Server", role="SERVER")
        kitchen = Employee(name="Ken Kitchen", role="KITCHEN")
        customer = Customer(
            name="Lola Loyal", membership_card_number="LC-0001", loyalty_points=500
        )
        burger = Product(
            name="Burger", base_price=Decimal("250"), total_stock=50, reorder_threshold=5
        )
        fries = Product(name="Fries", base_price=Decimal("100"), total_stock=20)
        table = Table(number="T1", capacity=4)
        db_session.add_all([manager, cashier, server, kitchen, customer, burger, fries, table])
        db_session.flush()

        large = ProductVariant(
            product_id=burger.id, name="Large Burger", price=Decimal("300"), stock=10
        )
        db_session.add(large)
        db_session.flush()

        return SimpleNamespace(
            manager=manager.id,
            cashier=cashier.id,
            server=server.id,
            kitchen=kitchen.id,
            customer=customer.id,
            burger=burger.id,
            fries=fries.id,
            large_burger=large.id,
            table=table.id,
        )


@pytest.fixture
def manager(seed):
    return Actor(employee_id=seed.manager, role="MANAGER", name="Maria Manager")


@pytest.fixture
def cashier(seed):
    return Actor(employee_id=seed.cashier, role="CASHIER", name="Carlos Cashier")


@pytest.fixture
def server(seed):
    return Actor(employee_id=seed.server, role="SERVER", name="Sofia Server")


@pytest.fixture
def cart(seed):
    """Two burgers for takeout: subtotal 500, tax 60, total 560."""

    def _cart(**fields):
        body = {
            "lines": [{"product_id": seed.burger, "unit_price": "250", "quantity": 2}],
            "order_type": "TAKEOUT",
        }
        body.update(fields)
        return body

    return _cart


@pytest.fixture
def settle(cart, cashier):
    """Settle a cart, paying the server-side total exactly unless payments are given."""

    def _settle(actor=None, method="CASH", **fields):
        body = cart(**fields)
        if "payments" not in body:
            quote = quote_order(PricingQuoteRequest.model_validate(body))
            body["payments"] = [{"method": method, "amount": str(quote["total"])}]
        return settle_order(SettlementRequest.model_validate(body), actor or cashier)

    return _settle


@pytest.fixture(scope="session")
def app(app_config):
    from pos_api.app import create_app

    flask_app = create_app(app_config)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(seed):
    """Bearer headers per role, signed with the suite's SECRET_KEY."""

    def _headers(employee_id, name, role):
        token = issue_terminal_token(employee_id, name, role)
        return {"Authorization": f"Bearer {token}"}

    return SimpleNamespace(
        manager=_headers(seed.manager, "Maria Manager", "MANAGER"),
        cashier=_headers(seed.cashier, "Carlos Cashier", "CASHIER"),
        server=_headers(seed.server, "Sofia Server", "SERVER"),
        kitchen=_headers(seed.kitchen, "Ken Kitchen", "KITCHEN"),
    )
