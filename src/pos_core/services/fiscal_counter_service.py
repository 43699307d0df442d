"""
Gap-free fiscal sequence counter.

The counter lives in a single row (``FISCAL_COUNTER_ID``). Both allocators
below must run inside the caller's settlement or refund transaction, while
holding the ``fiscal_ledger`` exclusive section: the increment then commits
or rolls back together with the document that consumes the number.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from pos_core.constants import FISCAL_COUNTER_ID
from pos_core.datetime_utils import isoformat_or_none, utcnow
from pos_core.db import get_session
from pos_core.logging_config import get_logger
from pos_core.models import FiscalCounter

logger = get_logger(__name__)


def _lock_counter(db_session: Session) -> FiscalCounter:
    counter = db_session.execute(
        select(FiscalCounter).where(FiscalCounter.id == FISCAL_COUNTER_ID).with_for_update()
    ).scalar_one_or_none()

    if counter is None:
        counter = FiscalCounter(
            id=FISCAL_COUNTER_ID,
            last_invoice_number=0,
            last_refund_number=0,
            grand_total=Decimal("0"),
        )
        db_session.add(counter)
        db_session.flush()
        logger.info("Fiscal counter initialized")

    return counter


def next_invoice(db_session: Session, order_total: Decimal) -> int:
    """
    Allocate the next invoice number and add ``order_total`` to the grand total.

    Returns:
        The newly issued invoice number (previous + 1).
    """
    counter = _lock_counter(db_session)
    counter.last_invoice_number += 1
    counter.grand_total = Decimal(counter.grand_total) + Decimal(order_total)
    counter.updated_at = utcnow()
    db_session.flush()
    return counter.last_invoice_number


def next_refund_number(db_session: Session, refund_amount: Decimal) -> int:
    """
    Allocate the next credit-memo number.

    ``refund_amount`` is the signed (negative) refund value and is added to the
    grand total as-is.
    """
    counter = _lock_counter(db_session)
    counter.last_refund_number += 1
    counter.grand_total = Decimal(counter.grand_total) + Decimal(refund_amount)
    counter.updated_at = utcnow()
    db_session.flush()
    return counter.last_refund_number


def get_counter_snapshot() -> dict[str, Any]:
    with get_session() as db_session:
        counter = db_session.get(FiscalCounter, FISCAL_COUNTER_ID)
        if counter is None:
            return {
                "last_invoice_number": 0,
                "last_refund_number": 0,
                "grand_total": 0.0,
                "updated_at": None,
            }
        return {
            "last_invoice_number": counter.last_invoice_number,
            "last_refund_number": counter.last_refund_number,
            "grand_total": float(counter.grand_total),
            "updated_at": isoformat_or_none(counter.updated_at),
        }
