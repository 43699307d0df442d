"""
Order lifecycle operations: void, status updates, detail edits and reads.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from pos_core.actor import Actor
from pos_core.config import get_config
from pos_core.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MUTABLE_ORDER_FIELDS,
    TERMINAL_EDITABLE_FIELDS,
    TERMINAL_STATUSES,
    AuditAction,
    OrderPriority,
    OrderStatus,
)
from pos_core.datetime_utils import utcnow
from pos_core.db import exclusive_session, get_session
from pos_core.errors import (
    AuthorizationError,
    NotFoundError,
    OrderStateError,
    ValidationError,
)
from pos_core.logging_config import get_logger
from pos_core.models import Order, OrderLine
from pos_core.serializers import serialize_order
from pos_core.services.audit_service import record_audit
from pos_core.services.order_state_machine import (
    OrderEvent,
    TransitionContext,
    order_state_machine,
)

logger = get_logger(__name__)


def require_void_authority(actor: Actor) -> None:
    """Voids and refunds are restricted to the configured roles."""
    allowed = get_config().void_authorized_roles
    if not actor.has_role(allowed):
        raise AuthorizationError(
            f"Role '{actor.role or 'UNKNOWN'}' cannot void or refund orders",
            details={"allowed_roles": sorted(allowed)},
        )


def load_order(db_session: Session, order_id: int, for_update: bool = False) -> Order:
    stmt = (
        select(Order)
        .where(Order.id == order_id)
        .options(
            selectinload(Order.lines).selectinload(OrderLine.modifiers),
            selectinload(Order.payments),
            selectinload(Order.refunds),
        )
    )
    if for_update:
        stmt = stmt.with_for_update()
    order = db_session.execute(stmt).scalar_one_or_none()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", code="ORDER_NOT_FOUND")
    return order


def _parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus((value or "").strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown order status '{value}'", code="INVALID_STATUS") from None


def void_order(
    order_id: int,
    reason: str,
    actor: Actor,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """
    Void an order that has not been completed.

    A PENDING order is fully reversed (stock, employee sales, earned loyalty
    points). Later statuses are only marked VOIDED.
    """
    require_void_authority(actor)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A void reason is required", code="REASON_REQUIRED")

    with exclusive_session("fiscal_ledger") as db_session:
        order = load_order(db_session, order_id, for_update=True)
        context = TransitionContext(
            db_session=db_session,
            order=order,
            event=OrderEvent.VOID,
            target_status=OrderStatus.VOIDED,
            actor_id=actor.employee_id,
            reason=reason,
        )
        previous = order_state_machine.apply_transition(context)
        was_pending = previous == OrderStatus.PENDING

        record_audit(
            db_session,
            employee_id=actor.employee_id,
            action=AuditAction.VOID_ORDER,
            entity_type="ORDER",
            entity_id=order.id,
            details={
                "invoice_number": order.invoice_number,
                "original_total": str(order.total_amount),
                "previous_status": previous.value,
                "was_pending": was_pending,
                "reason": reason,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db_session.flush()
        result = serialize_order(order)

    logger.info(
        "Order voided",
        extra={"order_id": order_id, "was_pending": was_pending, "employee_id": actor.employee_id},
    )
    return result


def update_order_status(
    order_id: int,
    new_status: str,
    actor: Actor,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """Move an order forward through the kitchen workflow."""
    target = _parse_status(new_status)

    with get_session() as db_session:
        order = load_order(db_session, order_id, for_update=True)

        if order.status_enum == target and target not in TERMINAL_STATUSES:
            return serialize_order(order)

        context = TransitionContext(
            db_session=db_session,
            order=order,
            event=OrderEvent.ADVANCE,
            target_status=target,
            actor_id=actor.employee_id,
        )
        previous = order_state_machine.apply_transition(context)

        record_audit(
            db_session,
            employee_id=actor.employee_id,
            action=AuditAction.UPDATE_ORDER_STATUS,
            entity_type="ORDER",
            entity_id=order.id,
            details={"from_status": previous.value, "to_status": target.value},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db_session.flush()
        return serialize_order(order)


def update_order_details(order_id: int, fields: dict[str, Any], actor: Actor) -> dict[str, Any]:
    """
    Edit the non-financial fields of an order.

    ``notes`` stays editable forever; the kitchen fields only while the order
    is still in progress.
    """
    unknown = set(fields) - MUTABLE_ORDER_FIELDS
    if unknown:
        raise ValidationError(
            f"Fields not editable: {', '.join(sorted(unknown))}", code="INVALID_FIELD"
        )

    changes = dict(fields)
    if "priority" in changes and changes["priority"] is not None:
        try:
            changes["priority"] = OrderPriority(changes["priority"]).value
        except ValueError:
            raise ValidationError(
                f"Unknown priority '{changes['priority']}'", code="INVALID_FIELD"
            ) from None
    if changes.get("estimated_prep_time") is not None and int(changes["estimated_prep_time"]) < 0:
        raise ValidationError("estimated_prep_time must not be negative", code="INVALID_FIELD")

    with get_session() as db_session:
        order = load_order(db_session, order_id, for_update=True)

        if order.status_enum in TERMINAL_STATUSES:
            locked = set(changes) - TERMINAL_EDITABLE_FIELDS
            if locked:
                raise OrderStateError(
                    f"Order {order.id} is {order.status}; only notes can be edited",
                    order.status,
                    order.status,
                    code="ORDER_IMMUTABLE",
                )

        for key, value in changes.items():
            if key == "priority" and value is None:
                continue
            setattr(order, key, value)
        order.updated_at = utcnow()

        if changes:
            record_audit(
                db_session,
                employee_id=actor.employee_id,
                action=AuditAction.UPDATE_ORDER,
                entity_type="ORDER",
                entity_id=order.id,
                details={"fields": sorted(changes)},
            )
        db_session.flush()
        return serialize_order(order)


def get_order(order_id: int, include_history: bool = True) -> dict[str, Any]:
    with get_session() as db_session:
        order = load_order(db_session, order_id)
        return serialize_order(order, include_history=include_history)


def list_orders(
    status: str | None = None, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
) -> dict[str, Any]:
    """
    List orders newest first.

    Args:
        status: Optional status filter
        page: Page number (1-indexed)
        limit: Page size (max MAX_PAGE_SIZE)

    Returns:
        Dict with orders, total, page, limit, total_pages, has_next, has_prev
    """
    page = max(1, int(page or 1))
    limit = min(max(1, int(limit or DEFAULT_PAGE_SIZE)), MAX_PAGE_SIZE)

    base_stmt = select(Order)
    if status:
        base_stmt = base_stmt.where(Order.status == _parse_status(status).value)

    with get_session() as db_session:
        total = db_session.execute(
            select(func.count()).select_from(base_stmt.subquery())
        ).scalar() or 0

        stmt = (
            base_stmt.options(
                selectinload(Order.lines).selectinload(OrderLine.modifiers),
                selectinload(Order.payments),
                selectinload(Order.refunds),
            )
            .order_by(Order.invoice_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        orders = db_session.execute(stmt).scalars().all()

        total_pages = (total + limit - 1) // limit if total > 0 else 1
        return {
            "orders": [serialize_order(order) for order in orders],
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        }
