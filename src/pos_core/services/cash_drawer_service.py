"""
Cash drawer session manager.

At most one drawer session is open at a time. The rule is checked inside the
``cash_drawer`` exclusive section and backed by the unique ``open_slot``
column, so a second terminal racing to open a drawer gets
``ACTIVE_DRAWER_EXISTS`` rather than a duplicate session.

Every write to a drawer (drops, pickups, notes, order links, the close) runs
in the same section with the drawer row locked, so nothing lands on a drawer
after it has been closed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pos_core.actor import Actor
from pos_core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, AuditAction
from pos_core.datetime_utils import utcnow
from pos_core.db import exclusive_session, get_session
from pos_core.errors import ConflictError, NotFoundError, ValidationError
from pos_core.logging_config import get_logger
from pos_core.models import (
    CashDrawerOrder,
    CashDrawerSession,
    CashDrop,
    CashPickup,
    Order,
    ShiftNote,
)
from pos_core.serializers import serialize_cash_drawer
from pos_core.services.audit_service import record_audit

logger = get_logger(__name__)


def _to_amount(value, *, allow_zero: bool, label: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(f"{label} must be numeric", code="INVALID_AMOUNT") from None
    if not amount.is_finite() or amount < 0 or (amount == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise ValidationError(f"{label} must be {qualifier}", code="INVALID_AMOUNT")
    return amount


def _find_open(db_session: Session, lock: bool = False) -> CashDrawerSession | None:
    query = select(CashDrawerSession).where(CashDrawerSession.closed_at.is_(None))
    if lock:
        query = query.with_for_update()
    return db_session.execute(query).scalar_one_or_none()


def _get_drawer(db_session: Session, drawer_id: int, lock: bool = False) -> CashDrawerSession:
    drawer = db_session.get(CashDrawerSession, drawer_id, with_for_update=lock)
    if drawer is None:
        raise NotFoundError(f"Cash drawer {drawer_id} not found", code="DRAWER_NOT_FOUND")
    return drawer


def _get_open_drawer(db_session: Session, drawer_id: int) -> CashDrawerSession:
    """Open drawer, row-locked until the caller commits."""
    drawer = _get_drawer(db_session, drawer_id, lock=True)
    if not drawer.is_open:
        raise ConflictError(f"Cash drawer {drawer_id} is closed", code="DRAWER_CLOSED")
    return drawer


def open_drawer(
    actor: Actor,
    opening_amount,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    amount = _to_amount(opening_amount, allow_zero=True, label="Opening amount")

    try:
        with exclusive_session("cash_drawer") as db_session:
            if _find_open(db_session, lock=True) is not None:
                raise ConflictError(
                    "A cash drawer session is already open", code="ACTIVE_DRAWER_EXISTS"
                )

            drawer = CashDrawerSession(
                employee_id=actor.employee_id,
                opening_amount=amount,
                open_slot=1,
                opened_at=utcnow(),
            )
            db_session.add(drawer)
            db_session.flush()

            record_audit(
                db_session,
                employee_id=actor.employee_id,
                action=AuditAction.OPEN_CASH_DRAWER,
                entity_type="CASH_DRAWER",
                entity_id=drawer.id,
                details={"opening_amount": str(amount)},
                ip_address=ip_address,
                user_agent=user_agent,
            )
            result = serialize_cash_drawer(drawer)
    except IntegrityError:
        # Another process opened a drawer between our check and the commit.
        raise ConflictError(
            "A cash drawer session is already open", code="ACTIVE_DRAWER_EXISTS"
        ) from None

    logger.info("Cash drawer opened", extra={"drawer_id": result["id"]})
    return result


def close_drawer(
    drawer_id: int,
    counted_amount,
    actor: Actor,
    expected_amount=None,
    denomination_breakdown: dict[str, int] | None = None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """
    Close a drawer session and record the count.

    ``expected`` defaults to the opening amount; ``difference`` is counted
    minus expected (negative means the drawer is short). The denomination
    breakdown is stored as given and is not required to add up to the count.
    """
    counted = _to_amount(counted_amount, allow_zero=True, label="Counted amount")
    expected_override = None
    if expected_amount is not None:
        expected_override = _to_amount(expected_amount, allow_zero=True, label="Expected amount")

    with exclusive_session("cash_drawer") as db_session:
        drawer = _get_drawer(db_session, drawer_id, lock=True)
        if not drawer.is_open:
            raise ConflictError(
                f"Cash drawer {drawer_id} is already closed", code="DRAWER_ALREADY_CLOSED"
            )

        expected = (
            expected_override if expected_override is not None else Decimal(drawer.opening_amount)
        )
        difference = counted - expected

        drawer.closing_amount = counted
        drawer.actual_amount = counted
        drawer.expected_amount = expected
        drawer.difference = difference
        drawer.denomination_breakdown = denomination_breakdown
        drawer.closed_at = utcnow()
        drawer.open_slot = None

        record_audit(
            db_session,
            employee_id=actor.employee_id,
            action=AuditAction.CLOSE_CASH_DRAWER,
            entity_type="CASH_DRAWER",
            entity_id=drawer.id,
            details={
                "counted_amount": str(counted),
                "expected_amount": str(expected),
                "difference": str(difference),
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db_session.flush()
        result = serialize_cash_drawer(drawer)

    if difference != 0:
        logger.warning(
            "Cash drawer closed with a difference",
            extra={"drawer_id": drawer_id, "difference": str(difference)},
        )
    else:
        logger.info("Cash drawer closed", extra={"drawer_id": drawer_id})
    return result


def add_cash_drop(drawer_id: int, amount, reason: str, actor: Actor) -> dict[str, Any]:
    value = _to_amount(amount, allow_zero=False, label="Drop amount")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required for cash drops", code="REASON_REQUIRED")

    with exclusive_session("cash_drawer") as db_session:
        drawer = _get_open_drawer(db_session, drawer_id)
        drop = CashDrop(
            drawer_id=drawer.id, employee_id=actor.employee_id, amount=value, reason=reason
        )
        db_session.add(drop)
        db_session.flush()
        return {
            "id": drop.id,
            "drawer_id": drawer.id,
            "employee_id": drop.employee_id,
            "amount": float(drop.amount),
            "reason": drop.reason,
        }


def add_cash_pickup(drawer_id: int, amount, reason: str, actor: Actor) -> dict[str, Any]:
    value = _to_amount(amount, allow_zero=False, label="Pickup amount")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required for cash pickups", code="REASON_REQUIRED")

    with exclusive_session("cash_drawer") as db_session:
        drawer = _get_open_drawer(db_session, drawer_id)
        pickup = CashPickup(
            drawer_id=drawer.id, employee_id=actor.employee_id, amount=value, reason=reason
        )
        db_session.add(pickup)
        db_session.flush()
        return {
            "id": pickup.id,
            "drawer_id": drawer.id,
            "employee_id": pickup.employee_id,
            "amount": float(pickup.amount),
            "reason": pickup.reason,
        }


def add_shift_note(drawer_id: int, note: str, actor: Actor) -> dict[str, Any]:
    note = (note or "").strip()
    if not note:
        raise ValidationError("Shift notes cannot be empty", code="REASON_REQUIRED")

    with exclusive_session("cash_drawer") as db_session:
        drawer = _get_open_drawer(db_session, drawer_id)
        entry = ShiftNote(drawer_id=drawer.id, employee_id=actor.employee_id, note=note)
        db_session.add(entry)
        db_session.flush()
        return {
            "id": entry.id,
            "drawer_id": drawer.id,
            "employee_id": entry.employee_id,
            "note": entry.note,
        }


def link_order_to_open_drawer(db_session: Session, order: Order) -> CashDrawerOrder | None:
    """
    Attach a freshly settled order to the open drawer, if any.

    The caller must hold the ``cash_drawer`` section until it commits, so the
    drawer cannot close between this check and the link landing.
    """
    drawer = _find_open(db_session, lock=True)
    if drawer is None:
        return None
    link = CashDrawerOrder(drawer_id=drawer.id, order_id=order.id)
    db_session.add(link)
    db_session.flush()
    return link


def link_order_to_drawer(drawer_id: int, order_id: int) -> dict[str, Any]:
    """Attach an existing order to an open drawer; linking twice is a no-op."""
    with exclusive_session("cash_drawer") as db_session:
        drawer = _get_open_drawer(db_session, drawer_id)
        order = db_session.get(Order, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", code="ORDER_NOT_FOUND")

        existing = db_session.execute(
            select(CashDrawerOrder).where(
                CashDrawerOrder.drawer_id == drawer.id, CashDrawerOrder.order_id == order.id
            )
        ).scalar_one_or_none()
        if existing is None:
            db_session.add(CashDrawerOrder(drawer_id=drawer.id, order_id=order.id))
            db_session.flush()
        return {"drawer_id": drawer.id, "order_id": order.id}


def get_active_drawer() -> dict[str, Any] | None:
    with get_session() as db_session:
        drawer = _find_open(db_session)
        return serialize_cash_drawer(drawer) if drawer else None


def get_drawer(drawer_id: int) -> dict[str, Any]:
    with get_session() as db_session:
        return serialize_cash_drawer(_get_drawer(db_session, drawer_id))


def list_drawers(page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict[str, Any]:
    page = max(1, int(page or 1))
    limit = min(MAX_PAGE_SIZE, max(1, int(limit or DEFAULT_PAGE_SIZE)))
    with get_session() as db_session:
        total = db_session.execute(
            select(func.count()).select_from(CashDrawerSession)
        ).scalar_one()
        drawers = (
            db_session.execute(
                select(CashDrawerSession)
                .order_by(CashDrawerSession.opened_at.desc(), CashDrawerSession.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return {
            "drawers": [serialize_cash_drawer(drawer) for drawer in drawers],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }
