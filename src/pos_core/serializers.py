"""
Serializers for consistent API responses.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pos_core.constants import OrderStatus, PaymentMethod
from pos_core.datetime_utils import isoformat_or_none
from pos_core.models import (
    CashDrawerSession,
    Order,
    OrderLine,
    Refund,
    TaxExportPayload,
)


def _safe_float(value) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError, ArithmeticError):
        return 0.0


def _optional_float(value) -> float | None:
    return None if value is None else _safe_float(value)


def serialize_order_line(line: OrderLine) -> dict[str, Any]:
    return {
        "id": line.id,
        "product_id": line.product_id,
        "variant_id": line.variant_id,
        "name": line.name,
        "unit_price": _safe_float(line.unit_price),
        "quantity": line.quantity,
        "discount": _safe_float(line.discount),
        "special_instructions": line.special_instructions,
        "modifiers": [
            {
                "id": modifier.id,
                "modifier_id": modifier.modifier_id,
                "name": modifier.name,
                "price": _safe_float(modifier.price),
            }
            for modifier in line.modifiers
        ],
    }


def serialize_order(order: Order, include_history: bool = False) -> dict[str, Any]:
    """Serialize Order model with lines, payments and refund totals."""
    refunded = sum((Decimal(refund.amount) for refund in order.refunds), Decimal("0"))
    data = {
        "id": order.id,
        "invoice_number": order.invoice_number,
        "client_reference": order.client_reference,
        "order_type": order.order_type,
        "status": order.status,
        "subtotal": _safe_float(order.subtotal),
        "discount_total": _safe_float(order.discount_total),
        "tax": _safe_float(order.tax),
        "service_charge": _safe_float(order.service_charge),
        "tip": _safe_float(order.tip),
        "loyalty_points_redeemed": order.loyalty_points_redeemed,
        "loyalty_points_discount": _safe_float(order.loyalty_points_discount),
        "loyalty_points_earned": order.loyalty_points_earned,
        "total_amount": _safe_float(order.total_amount),
        "refunded_amount": _safe_float(-refunded),
        "discount_type": order.discount_type,
        "discount_card_number": order.discount_card_number,
        "discount_verified_by": order.discount_verified_by,
        "discount_verified_at": isoformat_or_none(order.discount_verified_at),
        "employee_id": order.employee_id,
        "customer_id": order.customer_id,
        "server_id": order.server_id,
        "table_id": order.table_id,
        "delivery_address": order.delivery_address,
        "delivery_customer_name": order.delivery_customer_name,
        "delivery_customer_phone": order.delivery_customer_phone,
        "notes": order.notes,
        "kitchen_notes": order.kitchen_notes,
        "priority": order.priority,
        "estimated_prep_time": order.estimated_prep_time,
        "void_reason": order.void_reason,
        "voided_by_id": order.voided_by_id,
        "voided_at": isoformat_or_none(order.voided_at),
        "completed_at": isoformat_or_none(order.completed_at),
        "created_at": isoformat_or_none(order.created_at),
        "updated_at": isoformat_or_none(order.updated_at),
        "lines": [serialize_order_line(line) for line in order.lines],
        "payments": [
            {"id": payment.id, "method": payment.method, "amount": _safe_float(payment.amount)}
            for payment in order.payments
        ],
    }
    if include_history:
        data["history"] = [
            {
                "status": entry.status,
                "changed_by_id": entry.changed_by_id,
                "changed_at": isoformat_or_none(entry.changed_at),
            }
            for entry in order.history
        ]
    return data


def serialize_refund(refund: Refund) -> dict[str, Any]:
    return {
        "id": refund.id,
        "refund_number": refund.refund_number,
        "order_id": refund.order_id,
        "employee_id": refund.employee_id,
        "amount": _safe_float(refund.amount),
        "method": refund.method,
        "reason": refund.reason,
        "created_at": isoformat_or_none(refund.created_at),
        "lines": [
            {
                "order_line_id": line.order_line_id,
                "quantity": line.quantity,
                "amount": _safe_float(line.amount),
            }
            for line in refund.lines
        ],
    }


def denomination_total(breakdown: dict[str, int] | None) -> Decimal:
    if not breakdown:
        return Decimal("0")
    return sum(
        (Decimal(denomination) * int(count) for denomination, count in breakdown.items()),
        Decimal("0"),
    )


def drawer_summary(drawer: CashDrawerSession) -> dict[str, float]:
    """Reconciliation figures for a drawer session."""
    cash_sales = Decimal("0")
    for link in drawer.order_links:
        if link.order.status == OrderStatus.VOIDED.value:
            continue
        for payment in link.order.payments:
            if payment.method == PaymentMethod.CASH.value:
                cash_sales += Decimal(payment.amount)

    drops = sum((Decimal(drop.amount) for drop in drawer.cash_drops), Decimal("0"))
    pickups = sum((Decimal(pickup.amount) for pickup in drawer.cash_pickups), Decimal("0"))
    suggested = Decimal(drawer.opening_amount) + cash_sales - drops - pickups

    return {
        "cash_sales": _safe_float(cash_sales),
        "total_drops": _safe_float(drops),
        "total_pickups": _safe_float(pickups),
        "suggested_expected": _safe_float(suggested),
        "denomination_total": _safe_float(denomination_total(drawer.denomination_breakdown)),
    }


def serialize_cash_drawer(drawer: CashDrawerSession) -> dict[str, Any]:
    """Serialize CashDrawerSession with its movements and reconciliation summary."""
    return {
        "id": drawer.id,
        "employee_id": drawer.employee_id,
        "opening_amount": _safe_float(drawer.opening_amount),
        "closing_amount": _optional_float(drawer.closing_amount),
        "expected_amount": _optional_float(drawer.expected_amount),
        "actual_amount": _optional_float(drawer.actual_amount),
        "difference": _optional_float(drawer.difference),
        "denomination_breakdown": drawer.denomination_breakdown,
        "is_open": drawer.is_open,
        "opened_at": isoformat_or_none(drawer.opened_at),
        "closed_at": isoformat_or_none(drawer.closed_at),
        "order_ids": [link.order_id for link in drawer.order_links],
        "cash_drops": [
            {
                "id": drop.id,
                "employee_id": drop.employee_id,
                "amount": _safe_float(drop.amount),
                "reason": drop.reason,
                "dropped_at": isoformat_or_none(drop.dropped_at),
            }
            for drop in drawer.cash_drops
        ],
        "cash_pickups": [
            {
                "id": pickup.id,
                "employee_id": pickup.employee_id,
                "amount": _safe_float(pickup.amount),
                "reason": pickup.reason,
                "picked_up_at": isoformat_or_none(pickup.picked_up_at),
            }
            for pickup in drawer.cash_pickups
        ],
        "shift_notes": [
            {
                "id": note.id,
                "employee_id": note.employee_id,
                "note": note.note,
                "created_at": isoformat_or_none(note.created_at),
            }
            for note in drawer.shift_notes
        ],
        "summary": drawer_summary(drawer),
    }


def serialize_tax_export(export: TaxExportPayload) -> dict[str, Any]:
    return {
        "id": export.id,
        "order_id": export.order_id,
        "status": export.status,
        "attempts": export.attempts,
        "last_error": export.last_error,
        "payload": export.payload,
        "sent_at": isoformat_or_none(export.sent_at),
        "created_at": isoformat_or_none(export.created_at),
    }


def success_response(data: Any, message: str | None = None) -> dict[str, Any]:
    """Create a standardized success response."""
    response = {"status": "success", "data": data, "error": None}
    if message:
        response["message"] = message
    return response


def error_response(
    error: str, details: dict[str, Any] | None = None, code: str | None = None
) -> dict[str, Any]:
    """Create a standardized error response."""
    response = {"status": "error", "data": None, "error": error}
    if code:
        response["code"] = code
    if details:
        response["details"] = details
    return response
