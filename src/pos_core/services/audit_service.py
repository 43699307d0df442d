"""
Audit trail writer for ledger-affecting operations.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from pos_core.constants import AuditAction
from pos_core.logging_config import get_logger
from pos_core.models import AuditLog

logger = get_logger(__name__)


def record_audit(
    db_session: Session,
    *,
    employee_id: int | None,
    action: AuditAction,
    entity_type: str,
    entity_id: int | None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """
    Add an audit entry to the caller's transaction.

    The entry is flushed but not committed, so it shares the fate of the
    change it describes.
    """
    entry = AuditLog(
        employee_id=employee_id,
        action=action.value,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db_session.add(entry)
    db_session.flush()
    logger.debug(
        "Audit entry recorded",
        extra={"action": action.value, "entity_type": entity_type, "entity_id": entity_id},
    )
    return entry
