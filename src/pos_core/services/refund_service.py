"""
Refunds (credit memos) against completed orders.

A refund is a separate negative ledger entry with its own gap-free number;
the original order is never edited and stock is never restored.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pos_core.actor import Actor
from pos_core.config import get_config
from pos_core.constants import AuditAction, OrderStatus
from pos_core.db import exclusive_session, get_session
from pos_core.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from pos_core.logging_config import get_logger
from pos_core.models import Order, Refund, RefundLine
from pos_core.schemas import RefundRequest
from pos_core.serializers import serialize_refund
from pos_core.services.audit_service import record_audit
from pos_core.services.fiscal_counter_service import next_refund_number
from pos_core.services.order_service import load_order, require_void_authority
from pos_core.services.pricing_service import round_money

logger = get_logger(__name__)

ZERO = Decimal("0")


def _refunded_lines(db_session: Session, order_id: int) -> dict[int, tuple[int, Decimal]]:
    """Quantity and amount already refunded, per order line."""
    rows = db_session.execute(
        select(RefundLine.order_line_id, RefundLine.quantity, RefundLine.amount)
        .join(Refund, Refund.id == RefundLine.refund_id)
        .where(Refund.order_id == order_id)
    ).all()
    refunded: dict[int, tuple[int, Decimal]] = {}
    for line_id, quantity, amount in rows:
        done_quantity, done_amount = refunded.get(line_id, (0, ZERO))
        refunded[line_id] = (done_quantity + quantity, done_amount + Decimal(amount))
    return refunded


def paid_line_shares(order: Order, quantum: Decimal) -> dict[int, Decimal]:
    """
    Split what the customer paid for the goods across the order lines.

    The paid amount is the subtotal after the statutory discount, plus tax and
    service charge, minus the loyalty discount; tips are never refunded. Each
    line gets its share of that amount in proportion to its net value (after
    the line discount). The last line takes the rounding remainder so that
    the shares add up exactly.
    """
    lines = sorted(order.lines, key=lambda line: (line.position, line.id))
    subtotal = Decimal(order.subtotal)
    if not lines or subtotal <= 0:
        return {line.id: ZERO for line in lines}

    paid = max(
        ZERO,
        subtotal
        - Decimal(order.discount_total)
        + Decimal(order.tax)
        + Decimal(order.service_charge)
        - Decimal(order.loyalty_points_discount),
    )
    shares: dict[int, Decimal] = {}
    allocated = ZERO
    for line in lines[:-1]:
        net = line.unit_price_with_modifiers * line.quantity - Decimal(line.discount)
        share = round_money(net * paid / subtotal, quantum)
        shares[line.id] = share
        allocated += share
    shares[lines[-1].id] = max(ZERO, paid - allocated)
    return shares


def refundable_total(order: Order) -> Decimal:
    """Order total minus every refund already issued against it."""
    issued = sum((Decimal(refund.amount) for refund in order.refunds), ZERO)
    return Decimal(order.total_amount) + issued


def refund_order(
    order_id: int,
    request: RefundRequest,
    actor: Actor,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """
    Issue a refund for a completed order.

    The amount defaults to what the customer actually paid for the selected
    units (see ``paid_line_shares``), so discounts and tax are honoured and a
    full refund returns exactly the paid amount. Explicit or computed, the
    amount can never exceed what is left unrefunded on the order.
    """
    require_void_authority(actor)
    reason = (request.reason or "").strip()
    if not reason:
        raise ValidationError("A refund reason is required", code="REFUND_REASON_REQUIRED")

    selected = [line for line in request.lines if line.quantity > 0]
    if not selected:
        raise ConflictError("Select at least one item to refund", code="REFUND_EMPTY")

    if request.amount is not None and (not request.amount.is_finite() or request.amount <= 0):
        raise ValidationError("Refund amount must be positive", code="INVALID_AMOUNT")

    quantum = get_config().currency_quantum
    refund_number: int | None = None

    try:
        with exclusive_session("fiscal_ledger") as db_session:
            order = load_order(db_session, order_id, for_update=True)
            if order.status != OrderStatus.COMPLETED.value:
                raise ConflictError(
                    f"Only completed orders can be refunded (order is {order.status})",
                    code="REFUND_NOT_ALLOWED",
                )

            lines_by_id = {line.id: line for line in order.lines}
            already = _refunded_lines(db_session, order.id)
            shares = paid_line_shares(order, quantum)
            requested: dict[int, int] = {}
            for item in selected:
                if item.order_line_id not in lines_by_id:
                    raise NotFoundError(
                        f"Line {item.order_line_id} does not belong to order {order.id}"
                    )
                requested[item.order_line_id] = (
                    requested.get(item.order_line_id, 0) + item.quantity
                )

            refund_lines = []
            computed = ZERO
            for line_id, quantity in requested.items():
                line = lines_by_id[line_id]
                done_quantity, done_amount = already.get(line_id, (0, ZERO))
                remaining = line.quantity - done_quantity
                if quantity > remaining:
                    raise ConflictError(
                        f"Cannot refund {quantity} of '{line.name}'; {remaining} left",
                        code="REFUND_EXCEEDS_QUANTITY",
                        details={"order_line_id": line_id, "remaining": remaining},
                    )
                if quantity == remaining:
                    # Last units of the line take whatever is left of its share.
                    line_amount = max(ZERO, shares[line_id] - done_amount)
                else:
                    line_amount = round_money(shares[line_id] * quantity / line.quantity, quantum)
                computed += line_amount
                refund_lines.append(
                    RefundLine(order_line_id=line_id, quantity=quantity, amount=line_amount)
                )

            amount = round_money(
                request.amount if request.amount is not None else computed, quantum
            )
            remaining_total = refundable_total(order)
            if amount > remaining_total:
                raise ConflictError(
                    f"Refund {amount} exceeds the unrefunded total {remaining_total}",
                    code="REFUND_EXCEEDS_TOTAL",
                    details={"remaining_total": float(remaining_total)},
                )
            if amount <= 0:
                raise ValidationError("Refund amount must be positive", code="INVALID_AMOUNT")

            method = request.method.value if request.method else None
            if method is None:
                method = order.payments[0].method if order.payments else "CASH"

            refund_number = next_refund_number(db_session, -amount)
            refund = Refund(
                refund_number=refund_number,
                order_id=order.id,
                employee_id=actor.employee_id,
                amount=-amount,
                method=method,
                reason=reason,
            )
            refund.lines.extend(refund_lines)
            order.refunds.append(refund)
            db_session.flush()

            record_audit(
                db_session,
                employee_id=actor.employee_id,
                action=AuditAction.REFUND_ORDER,
                entity_type="ORDER",
                entity_id=order.id,
                details={
                    "refund_number": refund_number,
                    "invoice_number": order.invoice_number,
                    "amount": str(-amount),
                    "method": method,
                    "reason": reason,
                    "lines": [
                        {"order_line_id": line_id, "quantity": quantity}
                        for line_id, quantity in requested.items()
                    ],
                },
                ip_address=ip_address,
                user_agent=user_agent,
            )
            result = serialize_refund(refund)
    except SQLAlchemyError as exc:
        logger.error(
            "Refund rolled back",
            extra={"order_id": order_id, "attempted_refund_number": refund_number},
            exc_info=True,
        )
        raise PersistenceError(
            "Refund could not be recorded",
            details={"attempted_refund_number": refund_number},
        ) from exc

    logger.info(
        "Refund issued",
        extra={"order_id": order_id, "refund_number": result["refund_number"]},
    )
    return result


def list_refunds(order_id: int) -> list[dict[str, Any]]:
    with get_session() as db_session:
        order = load_order(db_session, order_id)
        return [serialize_refund(refund) for refund in order.refunds]
