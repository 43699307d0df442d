"""
Datetime utilities.
"""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """
    Get current UTC time (timezone-aware).
    """
    return datetime.now(timezone.utc)


def business_date(moment: datetime | None) -> date:
    """Calendar date an invoice is reported under (naive values are treated as UTC)."""
    if moment is None:
        return utcnow().date()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date()


def isoformat_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
