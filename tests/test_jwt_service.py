"""
Terminal token tests.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from pos_core.jwt_service import (
    TOKEN_ALGORITHM,
    TokenError,
    actor_from_token,
    issue_terminal_token,
    verify_terminal_token,
)

SECRET = "test-secret-key-for-the-ledger-suite-0123456789"


def signed(**overrides):
    now = datetime.now(timezone.utc)
    claims = {
        "iss": "pos-login",
        "sub": "7",
        "iat": now,
        "exp": now + timedelta(hours=1),
        "kind": "terminal",
        "employee_id": 7,
        "employee_role": "CASHIER",
    }
    claims.update(overrides)
    return jwt.encode(claims, SECRET, algorithm=TOKEN_ALGORITHM)


class TestTerminalTokens:
    def test_issued_token_yields_actor(self):
        actor = actor_from_token(issue_terminal_token(7, "Carlos", "cashier"))

        assert actor.employee_id == 7
        assert actor.role == "CASHIER"
        assert actor.name == "Carlos"

    def test_expired_token(self):
        with pytest.raises(TokenError) as exc_info:
            verify_terminal_token(issue_terminal_token(7, "Carlos", "CASHIER", expires_hours=-1))
        assert exc_info.value.expired is True

    def test_wrong_issuer(self):
        with pytest.raises(TokenError) as exc_info:
            verify_terminal_token(signed(iss="someone-else"))
        assert exc_info.value.expired is False

    def test_wrong_kind(self):
        with pytest.raises(TokenError):
            verify_terminal_token(signed(kind="refresh"))

    def test_missing_role_claim(self):
        token = signed()
        claims = jwt.decode(token, SECRET, algorithms=[TOKEN_ALGORITHM], issuer="pos-login")
        del claims["employee_role"]

        with pytest.raises(TokenError):
            verify_terminal_token(jwt.encode(claims, SECRET, algorithm=TOKEN_ALGORITHM))

    def test_tampered_signature(self):
        token = jwt.encode({"employee_id": 1}, "another-key-that-is-long-enough-000000", "HS256")

        with pytest.raises(TokenError):
            verify_terminal_token(token)
