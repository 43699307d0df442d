"""
Terminal token validation.

Employees sign in through the external login service, which hands each POS
terminal a short-lived HS256 token. The ledger only verifies those tokens and
turns their claims into an ``Actor``. ``issue_terminal_token`` mirrors what the
login service signs so that local tooling and tests can mint tokens.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import Request, current_app

from pos_core.actor import Actor

TOKEN_ALGORITHM = "HS256"
TOKEN_ISSUER = "pos-login"
TOKEN_KIND = "terminal"
CLOCK_SKEW_SECONDS = 30

REQUIRED_CLAIMS = ("exp", "iat", "sub", "employee_id", "employee_role")


class TokenError(Exception):
    """Raised when a terminal token cannot be trusted."""

    def __init__(self, reason: str, expired: bool = False):
        super().__init__(reason)
        self.reason = reason
        self.expired = expired


def _signing_key() -> str:
    try:
        key = current_app.config.get("SECRET_KEY")
    except RuntimeError:
        # Outside an app context (CLI, tests)
        key = None
    key = key or os.getenv("SECRET_KEY")
    if not key:
        raise RuntimeError("SECRET_KEY must be configured to verify terminal tokens")
    return key


def _lifetime_hours(override: int | None) -> int:
    if override:
        return override
    try:
        return int(current_app.config.get("JWT_ACCESS_TOKEN_EXPIRES_HOURS", 12))
    except RuntimeError:
        return int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_HOURS", "12"))


def issue_terminal_token(
    employee_id: int,
    employee_name: str,
    employee_role: str,
    expires_hours: int | None = None,
) -> str:
    """
    Sign a terminal token with the claims the ledger reads.

    Args:
        employee_id: Employee database ID
        employee_name: Display name shown on receipts and audit screens
        employee_role: MANAGER, CASHIER, SERVER or KITCHEN
        expires_hours: Lifetime override (defaults to JWT_ACCESS_TOKEN_EXPIRES_HOURS)
    """
    issued_at = datetime.now(timezone.utc)
    claims = {
        "iss": TOKEN_ISSUER,
        "sub": str(employee_id),
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=_lifetime_hours(expires_hours)),
        "kind": TOKEN_KIND,
        "employee_id": int(employee_id),
        "employee_name": employee_name,
        "employee_role": employee_role.upper(),
    }
    return jwt.encode(claims, _signing_key(), algorithm=TOKEN_ALGORITHM)


def verify_terminal_token(token: str) -> dict[str, Any]:
    """
    Verify signature, lifetime, issuer and kind; return the claims.

    Raises:
        TokenError: ``expired`` is set when only the lifetime check failed
    """
    try:
        claims = jwt.decode(
            token,
            _signing_key(),
            algorithms=[TOKEN_ALGORITHM],
            issuer=TOKEN_ISSUER,
            leeway=CLOCK_SKEW_SECONDS,
            options={"require": list(REQUIRED_CLAIMS)},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token expired", expired=True) from None
    except jwt.PyJWTError as exc:
        raise TokenError(str(exc)) from None

    if claims.get("kind") != TOKEN_KIND:
        raise TokenError("Not a terminal token")
    return claims


def actor_from_token(token: str) -> Actor:
    return Actor.from_claims(verify_terminal_token(token))


def bearer_token(request: Request) -> str | None:
    """Token from ``Authorization: Bearer ...`` or, for kiosk clients, ``X-Access-Token``."""
    scheme, _, value = (request.headers.get("Authorization") or "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.headers.get("X-Access-Token") or None
