"""
Settlement tests: atomic order creation, side effects and validation.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from pos_core.db import get_session
from pos_core.errors import NotFoundError, PersistenceError, ValidationError
from pos_core.models import (
    AuditLog,
    Customer,
    Employee,
    Order,
    Product,
    ProductVariant,
    Table,
    TaxExportPayload,
)
from pos_core.schemas import PricingQuoteRequest, SettlementRequest
from pos_core.services import settlement_service
from pos_core.services.cash_drawer_service import get_drawer, open_drawer
from pos_core.services.fiscal_counter_service import get_counter_snapshot
from pos_core.services.settlement_service import quote_order, settle_order


def load(model, entity_id):
    with get_session() as db_session:
        return db_session.get(model, entity_id)


def count(model):
    with get_session() as db_session:
        return db_session.query(model).count()


class TestSettleOrder:
    def test_takeout_settlement(self, seed, settle):
        order = settle()

        assert order["invoice_number"] == 1
        assert order["status"] == "PENDING"
        assert order["subtotal"] == 500.0
        assert order["tax"] == 60.0
        assert order["service_charge"] == 0.0
        assert order["total_amount"] == 560.0
        assert order["replayed"] is False
        assert order["lines"][0]["name"] == "Burger"
        assert order["payments"] == [{"id": 1, "method": "CASH", "amount": 560.0}]

    def test_all_effects_committed_together(self, seed, settle):
        order = settle()

        assert load(Product, seed.burger).total_stock == 48
        assert load(Employee, seed.cashier).total_sales == Decimal("560")
        assert get_counter_snapshot()["grand_total"] == 560.0

        with get_session() as db_session:
            audit = db_session.query(AuditLog).one()
            export = db_session.query(TaxExportPayload).one()
        assert audit.action == "CREATE_ORDER"
        assert audit.entity_id == order["id"]
        assert audit.details["invoice_number"] == 1
        assert export.status == "PENDING"
        assert export.payload["invoice_number"] == 1
        assert export.payload["total_amount"] == "560"
        assert export.payload["payments"] == [{"method": "CASH", "amount": "560"}]

    def test_dine_in_occupies_table(self, seed, settle):
        order = settle(order_type="DINE_IN", table_id=seed.table)

        assert order["service_charge"] == 50.0
        assert order["total_amount"] == 610.0
        table = load(Table, seed.table)
        assert table.status == "OCCUPIED"
        assert table.current_order_id == order["id"]

    def test_variant_stock_is_depleted(self, seed, settle):
        settle(
            lines=[
                {
                    "product_id": seed.burger,
                    "variant_id": seed.large_burger,
                    "unit_price": "300",
                    "quantity": 3,
                }
            ]
        )

        assert load(ProductVariant, seed.large_burger).stock == 7
        assert load(Product, seed.burger).total_stock == 47

    def test_stock_floors_at_zero(self, seed, settle):
        settle(lines=[{"product_id": seed.fries, "unit_price": "100", "quantity": 25}])

        assert load(Product, seed.fries).total_stock == 0

    def test_custom_line_without_product(self, seed, settle):
        order = settle(lines=[{"name": "Corkage", "unit_price": "150"}])

        assert order["lines"][0]["name"] == "Corkage"
        assert order["subtotal"] == 150.0

    def test_loyalty_redeem_and_earn(self, seed, settle):
        """560 before loyalty; 100 points = 10 off; earns floor(550 / 10) = 55."""
        order = settle(customer_id=seed.customer, loyalty_points_to_redeem=100)

        assert order["loyalty_points_redeemed"] == 100
        assert order["loyalty_points_discount"] == 10.0
        assert order["loyalty_points_earned"] == 55
        assert order["total_amount"] == 550.0

        customer = load(Customer, seed.customer)
        assert customer.loyalty_points == 455
        assert customer.total_spent == Decimal("550")
        assert customer.visit_count == 1
        assert customer.last_visit_at is not None

    def test_tip_credited_to_server(self, seed, settle):
        order = settle(server_id=seed.server, tip="40")

        assert order["total_amount"] == 600.0
        assert load(Employee, seed.server).total_tips == Decimal("40")
        assert load(Employee, seed.cashier).total_sales == Decimal("600")

    def test_split_payment(self, seed, settle):
        order = settle(
            payments=[
                {"method": "CASH", "amount": "300"},
                {"method": "GCASH", "amount": "260"},
            ]
        )

        assert [p["method"] for p in order["payments"]] == ["CASH", "GCASH"]

    def test_senior_discount_recorded_with_verification(self, seed, settle):
        order = settle(
            discount_type="SENIOR_CITIZEN",
            discount_card_number=" SC-12345 ",
            discount_verified_by="Maria Manager",
        )

        assert order["discount_total"] == 100.0
        assert order["tax"] == 0.0
        assert order["total_amount"] == 400.0
        assert order["discount_card_number"] == "SC-12345"
        assert order["discount_verified_at"] is not None

    def test_payment_within_tolerance_accepted(self, seed, settle):
        order = settle(payments=[{"method": "CASH", "amount": "560.01"}])

        assert order["invoice_number"] == 1

    def test_consecutive_orders_are_numbered_without_gaps(self, seed, settle):
        numbers = [settle()["invoice_number"] for _ in range(3)]

        assert numbers == [1, 2, 3]

    def test_open_drawer_receives_the_order(self, seed, settle, cashier):
        drawer = open_drawer(cashier, "1000")
        order = settle()

        assert get_drawer(drawer["id"])["order_ids"] == [order["id"]]


class TestIdempotency:
    def test_replay_returns_original_order(self, seed, settle):
        first = settle(client_reference="term-1-0001")
        second = settle(client_reference="term-1-0001")

        assert second["replayed"] is True
        assert second["id"] == first["id"]
        assert second["invoice_number"] == first["invoice_number"]
        assert count(Order) == 1
        assert get_counter_snapshot()["last_invoice_number"] == 1
        assert load(Product, seed.burger).total_stock == 48

    def test_distinct_references_create_distinct_orders(self, seed, settle):
        settle(client_reference="term-1-0001")
        settle(client_reference="term-1-0002")

        assert count(Order) == 2


class TestValidation:
    def assert_nothing_written(self, seed):
        assert count(Order) == 0
        assert count(AuditLog) == 0
        assert get_counter_snapshot()["last_invoice_number"] == 0
        assert load(Product, seed.burger).total_stock == 50

    def test_empty_cart(self, seed, settle):
        with pytest.raises(ValidationError) as exc_info:
            settle(lines=[], payments=[{"method": "CASH", "amount": "1"}])
        assert exc_info.value.code == "CART_EMPTY"
        self.assert_nothing_written(seed)

    def test_payment_mismatch(self, seed, settle):
        with pytest.raises(ValidationError) as exc_info:
            settle(payments=[{"method": "CASH", "amount": "500"}])

        assert exc_info.value.code == "PAYMENT_MISMATCH"
        assert exc_info.value.details == {"paid": 500.0, "total": 560.0}
        self.assert_nothing_written(seed)

    def test_client_side_total_is_not_trusted(self, seed, settle):
        """A cart priced with the wrong unit price still has to pay what it is worth."""
        with pytest.raises(ValidationError) as exc_info:
            settle(
                lines=[{"product_id": seed.burger, "unit_price": "250", "quantity": 3}],
                payments=[{"method": "CASH", "amount": "560"}],
            )
        assert exc_info.value.code == "PAYMENT_MISMATCH"

    def test_no_payments(self, seed, settle):
        with pytest.raises(ValidationError) as exc_info:
            settle(payments=[])
        assert exc_info.value.code == "PAYMENT_REQUIRED"

    def test_statutory_discount_needs_verification(self, seed, settle):
        with pytest.raises(ValidationError) as exc_info:
            settle(discount_type="PWD", discount_card_number="PWD-1")
        assert exc_info.value.code == "DISCOUNT_VERIFICATION_REQUIRED"

    def test_delivery_needs_contact(self, seed, settle):
        with pytest.raises(ValidationError) as exc_info:
            settle(order_type="DELIVERY", delivery_address="12 Mabini St")
        assert exc_info.value.code == "DELIVERY_CONTACT_REQUIRED"

    def test_delivery_with_contact(self, seed, settle):
        order = settle(
            order_type="DELIVERY",
            delivery_address="12 Mabini St",
            delivery_customer_name="Ana",
            delivery_customer_phone="0917 000 0000",
        )
        assert order["delivery_customer_name"] == "Ana"

    def test_loyalty_needs_customer(self, seed, cart, cashier):
        body = cart(loyalty_points_to_redeem=10, payments=[{"method": "CASH", "amount": "559"}])
        with pytest.raises(ValidationError) as exc_info:
            settle_order(SettlementRequest.model_validate(body), cashier)
        assert exc_info.value.code == "CUSTOMER_REQUIRED"

    @pytest.mark.parametrize(
        "line",
        [
            {"name": "Water", "unit_price": "20", "quantity": 0},
            {"name": "Water", "unit_price": "-20"},
            {"name": "Water", "unit_price": "20", "discount": "-5"},
            {"unit_price": "20"},
            {"name": "Water", "unit_price": "20", "modifiers": [{"name": "Ice", "price": "-1"}]},
            {"name": "Water", "unit_price": "20", "quantity": 2, "discount": "41"},
        ],
    )
    def test_invalid_lines(self, seed, settle, line):
        with pytest.raises(ValidationError) as exc_info:
            settle(lines=[line], payments=[{"method": "CASH", "amount": "20"}])
        assert exc_info.value.code == "INVALID_LINE"

    def test_unknown_product(self, seed, settle):
        with pytest.raises(NotFoundError):
            settle(
                lines=[{"product_id": 9999, "unit_price": "10"}],
                payments=[{"method": "CASH", "amount": "11"}],
            )
        self.assert_nothing_written(seed)

    def test_variant_of_another_product(self, seed, settle):
        with pytest.raises(ValidationError) as exc_info:
            settle(
                lines=[
                    {"product_id": seed.fries, "variant_id": seed.large_burger, "unit_price": "10"}
                ],
                payments=[{"method": "CASH", "amount": "11"}],
            )
        assert exc_info.value.code == "INVALID_LINE"


class TestRollback:
    def test_database_failure_rolls_back_every_effect(self, seed, settle, monkeypatch):
        def fail(db_session, order):
            raise OperationalError("INSERT INTO pos_cash_drawer_orders", {}, Exception("disk I/O"))

        monkeypatch.setattr(settlement_service, "link_order_to_open_drawer", fail)

        with pytest.raises(PersistenceError) as exc_info:
            settle()

        assert exc_info.value.code == "SETTLEMENT_FAILED"
        assert exc_info.value.http_code == 503
        assert exc_info.value.details == {"attempted_invoice_number": 1}

        assert count(Order) == 0
        assert count(AuditLog) == 0
        assert count(TaxExportPayload) == 0
        assert get_counter_snapshot()["last_invoice_number"] == 0
        assert load(Product, seed.burger).total_stock == 50
        assert load(Employee, seed.cashier).total_sales == Decimal("0")

    def test_next_settlement_reuses_the_number(self, seed, settle, monkeypatch):
        def fail(db_session, order):
            raise OperationalError("INSERT", {}, Exception("deadlock"))

        monkeypatch.setattr(settlement_service, "link_order_to_open_drawer", fail)
        with pytest.raises(PersistenceError):
            settle()
        monkeypatch.undo()

        assert settle()["invoice_number"] == 1


class TestQuote:
    def test_quote_writes_nothing(self, seed, cart):
        quote = quote_order(PricingQuoteRequest.model_validate(cart()))

        assert quote["total"] == 560.0
        assert quote["available_points"] is None
        assert count(Order) == 0

    def test_quote_uses_stored_balance(self, seed, cart):
        quote = quote_order(
            PricingQuoteRequest.model_validate(
                cart(customer_id=seed.customer, loyalty_points_to_redeem=9999)
            )
        )

        assert quote["loyalty_points_redeemed"] == 500
        assert quote["loyalty_discount"] == 50.0
        assert quote["available_points"] == 500

    def test_discount_above_line_value_is_rejected(self, seed, cart):
        body = cart(lines=[{"name": "Water", "unit_price": "20", "discount": "25"}])

        with pytest.raises(ValidationError) as exc_info:
            quote_order(PricingQuoteRequest.model_validate(body))
        assert exc_info.value.code == "INVALID_LINE"

    def test_discount_may_cover_the_whole_line(self, seed, cart):
        body = cart(lines=[{"name": "Water", "unit_price": "20", "discount": "20"}])

        assert quote_order(PricingQuoteRequest.model_validate(body))["subtotal"] == 0.0

    def test_empty_cart_quotes_zero(self, seed):
        quote = quote_order(PricingQuoteRequest(order_type="TAKEOUT"))

        assert quote["total"] == 0.0
