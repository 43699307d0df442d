"""
Tax-authority e-invoice export queue.

Settlement enqueues one payload per order inside its own transaction; an
external transmitter polls the pending queue and reports back through
``mark_export_sent`` / ``mark_export_failed``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pos_core.actor import Actor
from pos_core.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    AuditAction,
    ExportStatus,
)
from pos_core.datetime_utils import business_date, utcnow
from pos_core.db import get_session
from pos_core.errors import ConflictError, NotFoundError, ValidationError
from pos_core.logging_config import get_logger
from pos_core.models import Order, TaxExportPayload
from pos_core.serializers import serialize_tax_export
from pos_core.services.audit_service import record_audit

logger = get_logger(__name__)


def _money_str(value) -> str:
    return str(Decimal(value))


def build_export_payload(order: Order) -> dict[str, Any]:
    """Minimal e-invoice document; amounts are strings to keep them exact."""
    return {
        "order_id": order.id,
        "invoice_number": order.invoice_number,
        "business_date": business_date(order.created_at).isoformat(),
        "order_type": order.order_type,
        "discount_type": order.discount_type,
        "subtotal": _money_str(order.subtotal),
        "discount_total": _money_str(order.discount_total),
        "vat_amount": _money_str(order.tax),
        "service_charge": _money_str(order.service_charge),
        "tip": _money_str(order.tip),
        "loyalty_discount": _money_str(order.loyalty_points_discount),
        "total_amount": _money_str(order.total_amount),
        "payments": [
            {"method": payment.method, "amount": _money_str(payment.amount)}
            for payment in order.payments
        ],
    }


def enqueue_export(db_session: Session, order: Order) -> TaxExportPayload:
    export = TaxExportPayload(
        order_id=order.id,
        payload=build_export_payload(order),
        status=ExportStatus.PENDING.value,
        attempts=0,
    )
    db_session.add(export)
    db_session.flush()
    return export


def _clamp_page(page: int, limit: int) -> tuple[int, int]:
    page = max(1, int(page or 1))
    limit = min(MAX_PAGE_SIZE, max(1, int(limit or DEFAULT_PAGE_SIZE)))
    return page, limit


def _get_export(db_session: Session, order_id: int) -> TaxExportPayload:
    export = db_session.execute(
        select(TaxExportPayload).where(TaxExportPayload.order_id == order_id)
    ).scalar_one_or_none()
    if export is None:
        raise NotFoundError(
            f"No export payload for order {order_id}", code="EXPORT_NOT_FOUND"
        )
    return export


def list_pending_exports(page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict[str, Any]:
    """Oldest-first page of payloads still waiting for transmission."""
    page, limit = _clamp_page(page, limit)
    with get_session() as db_session:
        pending = TaxExportPayload.status == ExportStatus.PENDING.value
        total = db_session.execute(
            select(func.count()).select_from(TaxExportPayload).where(pending)
        ).scalar_one()
        exports = (
            db_session.execute(
                select(TaxExportPayload)
                .where(pending)
                .order_by(TaxExportPayload.created_at.asc(), TaxExportPayload.id.asc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return {
            "payloads": [serialize_tax_export(export) for export in exports],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }


def get_export_for_order(order_id: int) -> dict[str, Any]:
    with get_session() as db_session:
        return serialize_tax_export(_get_export(db_session, order_id))


def mark_export_sent(
    order_id: int,
    actor: Actor,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    with get_session() as db_session:
        export = _get_export(db_session, order_id)
        if export.status == ExportStatus.SENT.value:
            raise ConflictError(
                f"Export for order {order_id} was already sent", code="EXPORT_ALREADY_SENT"
            )

        export.status = ExportStatus.SENT.value
        export.sent_at = utcnow()
        export.attempts += 1
        export.last_error = None

        record_audit(
            db_session,
            employee_id=actor.employee_id,
            action=AuditAction.EXPORT_SENT,
            entity_type="TAX_EXPORT",
            entity_id=export.id,
            details={"order_id": order_id},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info("Tax export marked sent", extra={"order_id": order_id})
        return serialize_tax_export(export)


def mark_export_failed(
    order_id: int,
    error: str,
    actor: Actor,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    error = (error or "").strip()
    if not error:
        raise ValidationError("An error description is required", code="REASON_REQUIRED")

    with get_session() as db_session:
        export = _get_export(db_session, order_id)
        if export.status == ExportStatus.SENT.value:
            raise ConflictError(
                f"Export for order {order_id} was already sent", code="EXPORT_ALREADY_SENT"
            )

        export.status = ExportStatus.FAILED.value
        export.attempts += 1
        export.last_error = error

        record_audit(
            db_session,
            employee_id=actor.employee_id,
            action=AuditAction.EXPORT_FAILED,
            entity_type="TAX_EXPORT",
            entity_id=export.id,
            details={"order_id": order_id, "error": error, "attempts": export.attempts},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.warning(
            "Tax export failed", extra={"order_id": order_id, "attempts": export.attempts}
        )
        return serialize_tax_export(export)


def export_stats() -> dict[str, int]:
    with get_session() as db_session:
        rows = db_session.execute(
            select(TaxExportPayload.status, func.count()).group_by(TaxExportPayload.status)
        ).all()
    counts = {status.value: 0 for status in ExportStatus}
    for status, count in rows:
        counts[status] = count
    counts["total"] = sum(counts[status.value] for status in ExportStatus)
    return {key.lower(): value for key, value in counts.items()}
