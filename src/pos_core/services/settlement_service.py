"""
Settlement coordinator: turns a priced cart into an immutable fiscal order.

All side effects of a sale (invoice number, order rows, audit entry, tax
export, stock, loyalty, staff totals, table occupancy, drawer link) are
written in one database transaction inside the ``fiscal_ledger`` exclusive
section, itself taken under ``cash_drawer`` so the open drawer cannot close
before the link commits. Either every effect is committed or none is.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pos_core.actor import Actor
from pos_core.config import get_config
from pos_core.constants import (
    AuditAction,
    DiscountType,
    OrderStatus,
    OrderType,
    TableStatus,
)
from pos_core.datetime_utils import utcnow
from pos_core.db import exclusive, exclusive_session, get_session
from pos_core.errors import NotFoundError, PersistenceError, ValidationError
from pos_core.logging_config import get_logger
from pos_core.models import (
    Customer,
    Employee,
    Order,
    OrderLine,
    OrderLineModifier,
    Payment,
    Product,
    ProductVariant,
    Table,
)
from pos_core.schemas import OrderLineRequest, PricingQuoteRequest, SettlementRequest
from pos_core.serializers import serialize_order
from pos_core.services.audit_service import record_audit
from pos_core.services.cash_drawer_service import link_order_to_open_drawer
from pos_core.services.fiscal_counter_service import next_invoice
from pos_core.services.pricing_service import (
    PricingBreakdown,
    PricingLine,
    calculate_order_totals,
    rates_from_config,
)
from pos_core.services.tax_export_service import enqueue_export

logger = get_logger(__name__)

ZERO = Decimal("0")


def _to_pricing_lines(lines: list[OrderLineRequest]) -> list[PricingLine]:
    return [
        PricingLine(
            unit_price=line.unit_price,
            quantity=line.quantity,
            discount=line.discount,
            modifier_prices=tuple(modifier.price for modifier in line.modifiers),
        )
        for line in lines
    ]


def _validate_lines(lines: list[OrderLineRequest], allow_empty: bool = False) -> None:
    if not lines and not allow_empty:
        raise ValidationError("Cannot settle an empty cart", code="CART_EMPTY")

    for index, line in enumerate(lines):
        if line.quantity < 1:
            raise ValidationError(
                f"Line {index + 1}: quantity must be at least 1", code="INVALID_LINE"
            )
        if line.unit_price < 0 or line.discount < 0:
            raise ValidationError(
                f"Line {index + 1}: price and discount must not be negative",
                code="INVALID_LINE",
            )
        if any(modifier.price < 0 for modifier in line.modifiers):
            raise ValidationError(
                f"Line {index + 1}: modifier prices must not be negative", code="INVALID_LINE"
            )
        modifiers = sum((modifier.price for modifier in line.modifiers), Decimal("0"))
        if line.discount > (line.unit_price + modifiers) * line.quantity:
            raise ValidationError(
                f"Line {index + 1}: discount exceeds the line value", code="INVALID_LINE"
            )
        unnamed = not (line.name or "").strip()
        if line.product_id is None and line.variant_id is None and unnamed:
            raise ValidationError(
                f"Line {index + 1}: a product or a name is required", code="INVALID_LINE"
            )


def _validate_request(request: SettlementRequest) -> None:
    """Checks that need no database access."""
    _validate_lines(request.lines)

    if request.discount_type != DiscountType.NONE:
        if not (request.discount_card_number or "").strip() or not (
            request.discount_verified_by or ""
        ).strip():
            raise ValidationError(
                f"{request.discount_type.value} discount requires an ID number and a verifier",
                code="DISCOUNT_VERIFICATION_REQUIRED",
            )

    if request.order_type == OrderType.DELIVERY:
        contact = (
            request.delivery_address,
            request.delivery_customer_name,
            request.delivery_customer_phone,
        )
        if not all((value or "").strip() for value in contact):
            raise ValidationError(
                "Delivery orders require address, customer name and phone",
                code="DELIVERY_CONTACT_REQUIRED",
            )

    if request.loyalty_points_to_redeem > 0 and request.customer_id is None:
        raise ValidationError(
            "Loyalty points can only be redeemed for a customer", code="CUSTOMER_REQUIRED"
        )

    if not request.payments:
        raise ValidationError("At least one payment is required", code="PAYMENT_REQUIRED")
    for payment in request.payments:
        if payment.amount <= 0:
            raise ValidationError("Payment amounts must be positive", code="PAYMENT_REQUIRED")


def _validate_payments(request: SettlementRequest, total: Decimal, tolerance: Decimal) -> None:
    paid = sum((payment.amount for payment in request.payments), ZERO)
    if abs(paid - total) > tolerance:
        raise ValidationError(
            f"Payments ({paid}) do not match the order total ({total})",
            code="PAYMENT_MISMATCH",
            details={"paid": float(paid), "total": float(total)},
        )


def _require(db_session: Session, model, entity_id: int, label: str):
    instance = db_session.get(model, entity_id)
    if instance is None:
        raise NotFoundError(f"{label} {entity_id} not found")
    return instance


def _load_catalog(
    db_session: Session, lines: list[OrderLineRequest]
) -> tuple[dict[int, Product], dict[int, ProductVariant]]:
    products: dict[int, Product] = {}
    variants: dict[int, ProductVariant] = {}
    for line in lines:
        if line.product_id is not None and line.product_id not in products:
            products[line.product_id] = _require(db_session, Product, line.product_id, "Product")
        if line.variant_id is not None and line.variant_id not in variants:
            variant = _require(db_session, ProductVariant, line.variant_id, "Variant")
            if line.product_id is not None and variant.product_id != line.product_id:
                raise ValidationError(
                    f"Variant {variant.id} does not belong to product {line.product_id}",
                    code="INVALID_LINE",
                )
            variants[line.variant_id] = variant
    return products, variants


def _price(request: PricingQuoteRequest, customer: Customer | None) -> PricingBreakdown:
    return calculate_order_totals(
        _to_pricing_lines(request.lines),
        order_type=request.order_type,
        discount_type=request.discount_type,
        tip=request.tip,
        loyalty_points_requested=request.loyalty_points_to_redeem,
        available_points=customer.loyalty_points if customer else None,
        rates=rates_from_config(get_config()),
    )


def quote_order(request: PricingQuoteRequest) -> dict[str, Any]:
    """
    Price a cart without writing anything.

    The customer's stored loyalty balance is used, never a client-side value.
    """
    _validate_lines(request.lines, allow_empty=True)
    if request.loyalty_points_to_redeem > 0 and request.customer_id is None:
        raise ValidationError(
            "Loyalty points can only be redeemed for a customer", code="CUSTOMER_REQUIRED"
        )

    with get_session() as db_session:
        customer = None
        if request.customer_id is not None:
            customer = _require(db_session, Customer, request.customer_id, "Customer")
        breakdown = _price(request, customer)
        data = breakdown.as_dict()
        data["available_points"] = customer.loyalty_points if customer else None
        return data


def _build_order(
    request: SettlementRequest,
    actor: Actor,
    invoice_number: int,
    breakdown: PricingBreakdown,
    products: dict[int, Product],
    variants: dict[int, ProductVariant],
) -> Order:
    now = utcnow()
    order = Order(
        invoice_number=invoice_number,
        client_reference=request.client_reference,
        order_type=request.order_type.value,
        status=OrderStatus.PENDING.value,
        subtotal=breakdown.subtotal,
        discount_total=breakdown.discount_amount,
        tax=breakdown.tax,
        service_charge=breakdown.service_charge,
        tip=breakdown.tip,
        loyalty_points_redeemed=breakdown.loyalty_points_redeemed,
        loyalty_points_discount=breakdown.loyalty_discount,
        loyalty_points_earned=breakdown.points_earned,
        total_amount=breakdown.total,
        discount_type=request.discount_type.value,
        employee_id=actor.employee_id,
        customer_id=request.customer_id,
        server_id=request.server_id,
        table_id=request.table_id,
        notes=request.notes,
        kitchen_notes=request.kitchen_notes,
        priority=request.priority.value,
        estimated_prep_time=request.estimated_prep_time,
        created_at=now,
    )

    if request.discount_type != DiscountType.NONE:
        order.discount_card_number = request.discount_card_number.strip()
        order.discount_verified_by = request.discount_verified_by.strip()
        order.discount_verified_at = now

    if request.order_type == OrderType.DELIVERY:
        order.delivery_address = request.delivery_address.strip()
        order.delivery_customer_name = request.delivery_customer_name.strip()
        order.delivery_customer_phone = request.delivery_customer_phone.strip()

    for position, line in enumerate(request.lines):
        name = (line.name or "").strip()
        if not name and line.variant_id is not None:
            name = variants[line.variant_id].name
        if not name and line.product_id is not None:
            name = products[line.product_id].name
        order_line = OrderLine(
            position=position,
            product_id=line.product_id,
            variant_id=line.variant_id,
            name=name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            discount=line.discount,
            special_instructions=line.special_instructions,
        )
        for modifier in line.modifiers:
            order_line.modifiers.append(
                OrderLineModifier(
                    modifier_id=modifier.modifier_id,
                    name=modifier.name or "Modifier",
                    price=modifier.price,
                )
            )
        order.lines.append(order_line)

    for payment in request.payments:
        order.payments.append(Payment(method=payment.method.value, amount=payment.amount))

    order.mark_status(OrderStatus.PENDING, changed_by_id=actor.employee_id)
    return order


def _deplete_stock(
    order: Order, products: dict[int, Product], variants: dict[int, ProductVariant]
) -> None:
    for line in order.lines:
        if line.product_id is not None:
            product = products[line.product_id]
            product.total_stock = max(0, product.total_stock - line.quantity)
            if product.needs_reorder:
                logger.info(
                    "Product at reorder threshold",
                    extra={"product_id": product.id, "stock": product.total_stock},
                )
        if line.variant_id is not None:
            variant = variants[line.variant_id]
            variant.stock = max(0, variant.stock - line.quantity)


def _apply_loyalty(customer: Customer | None, breakdown: PricingBreakdown, now) -> None:
    if customer is None:
        return
    customer.loyalty_points = max(
        0,
        customer.loyalty_points + breakdown.points_earned - breakdown.loyalty_points_redeemed,
    )
    customer.total_spent = Decimal(customer.total_spent or 0) + breakdown.total
    customer.visit_count = (customer.visit_count or 0) + 1
    customer.last_visit_at = now


def _apply_staff_totals(
    employee: Employee, server: Employee | None, breakdown: PricingBreakdown
) -> None:
    employee.total_sales = Decimal(employee.total_sales or 0) + breakdown.total
    if server is not None and breakdown.tip > 0:
        server.total_tips = Decimal(server.total_tips or 0) + breakdown.tip


def _occupy_table(table: Table | None, order: Order) -> None:
    if table is None or order.order_type != OrderType.DINE_IN.value:
        return
    table.status = TableStatus.OCCUPIED.value
    table.current_order_id = order.id


def _find_by_reference(db_session: Session, client_reference: str | None) -> Order | None:
    if not client_reference:
        return None
    return db_session.execute(
        select(Order).where(Order.client_reference == client_reference)
    ).scalar_one_or_none()


def settle_order(
    request: SettlementRequest,
    actor: Actor,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """
    Settle a cart into a fiscal order.

    Args:
        request: Validated settlement request
        actor: Authenticated employee settling the sale
        ip_address: Client address recorded in the audit entry
        user_agent: Client user agent recorded in the audit entry

    Returns:
        Serialized order. When ``client_reference`` matches an existing order
        that order is returned unchanged and ``replayed`` is True.

    Raises:
        ValidationError: Cart, discount, delivery or payment rules violated
        NotFoundError: A referenced employee, customer, table or product is missing
        PersistenceError: The database rejected the transaction; nothing was written
    """
    _validate_request(request)
    config = get_config()
    invoice_number: int | None = None

    try:
        # Same order as every other writer: drawer section first, then the ledger.
        with exclusive("cash_drawer"), exclusive_session("fiscal_ledger") as db_session:
            existing = _find_by_reference(db_session, request.client_reference)
            if existing is not None:
                logger.info(
                    "Settlement replayed",
                    extra={
                        "client_reference": request.client_reference,
                        "invoice_number": existing.invoice_number,
                    },
                )
                result = serialize_order(existing)
                result["replayed"] = True
                return result

            employee = _require(db_session, Employee, actor.employee_id, "Employee")
            customer = None
            if request.customer_id is not None:
                customer = _require(db_session, Customer, request.customer_id, "Customer")
            server = None
            if request.server_id is not None:
                server = _require(db_session, Employee, request.server_id, "Server")
            table = None
            if request.table_id is not None:
                table = _require(db_session, Table, request.table_id, "Table")
            products, variants = _load_catalog(db_session, request.lines)

            breakdown = _price(request, customer)
            _validate_payments(request, breakdown.total, config.payment_tolerance)

            invoice_number = next_invoice(db_session, breakdown.total)

            order = _build_order(request, actor, invoice_number, breakdown, products, variants)
            db_session.add(order)
            db_session.flush()

            record_audit(
                db_session,
                employee_id=actor.employee_id,
                action=AuditAction.CREATE_ORDER,
                entity_type="ORDER",
                entity_id=order.id,
                details={
                    "invoice_number": invoice_number,
                    "order_type": order.order_type,
                    "subtotal": str(breakdown.subtotal),
                    "discount_total": str(breakdown.discount_amount),
                    "tax": str(breakdown.tax),
                    "service_charge": str(breakdown.service_charge),
                    "tip": str(breakdown.tip),
                    "loyalty_discount": str(breakdown.loyalty_discount),
                    "total_amount": str(breakdown.total),
                    "payments": [
                        {"method": payment.method, "amount": str(payment.amount)}
                        for payment in order.payments
                    ],
                },
                ip_address=ip_address,
                user_agent=user_agent,
            )
            enqueue_export(db_session, order)

            _deplete_stock(order, products, variants)
            _apply_loyalty(customer, breakdown, order.created_at)
            _apply_staff_totals(employee, server, breakdown)
            _occupy_table(table, order)
            link_order_to_open_drawer(db_session, order)

            db_session.flush()
            result = serialize_order(order)
    except SQLAlchemyError as exc:
        logger.error(
            "Settlement rolled back",
            extra={"attempted_invoice_number": invoice_number, "employee_id": actor.employee_id},
            exc_info=True,
        )
        raise PersistenceError(
            "Settlement could not be recorded; no invoice number was consumed",
            details={"attempted_invoice_number": invoice_number},
        ) from exc

    logger.info(
        "Order settled",
        extra={
            "order_id": result["id"],
            "invoice_number": result["invoice_number"],
            "total_amount": result["total_amount"],
        },
    )
    result["replayed"] = False
    return result
