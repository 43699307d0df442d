"""
Exception hierarchy raised by the ledger services.

Every error carries a code from ``ERROR_CATALOG``; the HTTP layer turns the
code into a status and the error envelope.
"""

from __future__ import annotations

from typing import Any

from pos_core.error_catalog import describe


class LedgerError(Exception):
    """Base class for controlled ledger errors."""

    default_code = "SYSTEM_001"

    def __init__(
        self, message: str, code: str | None = None, details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    @property
    def http_code(self) -> int:
        return describe(self.code)["http_code"]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """Raised when a request fails business validation before any write."""

    default_code = "INVALID_AMOUNT"


class NotFoundError(LedgerError):
    default_code = "REFERENCE_NOT_FOUND"


class ConflictError(LedgerError):
    """Raised when the request conflicts with the current stored state."""

    default_code = "INVALID_TRANSITION"


class OrderStateError(ConflictError):
    """
    Raised when an order transition is not allowed by the lifecycle table.
    """

    default_code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        target_status: str | None = None,
        code: str | None = None,
    ):
        super().__init__(
            message,
            code=code,
            details={"current_status": current_status, "target_status": target_status},
        )
        self.current_status = current_status
        self.target_status = target_status


class AuthorizationError(LedgerError):
    default_code = "FORBIDDEN"


class PersistenceError(LedgerError):
    """Raised when a ledger transaction was rolled back by the database."""

    default_code = "SETTLEMENT_FAILED"
