"""
Request authentication for the ledger API.

Every request gets ``g.actor``: the employee named by a valid terminal token,
or None. Routes opt into enforcement with ``jwt_required`` or
``role_required``.
"""

from __future__ import annotations

import logging
from functools import wraps
from http import HTTPStatus
from typing import TYPE_CHECKING

from flask import g, jsonify, request

from pos_core.actor import Actor
from pos_core.jwt_service import TokenError, actor_from_token, bearer_token
from pos_core.serializers import error_response

if TYPE_CHECKING:
    from flask import Flask

logger = logging.getLogger(__name__)


def init_jwt_middleware(app: Flask) -> None:
    @app.before_request
    def authenticate_terminal():
        g.actor = None
        token = bearer_token(request)
        if not token:
            return

        try:
            g.actor = actor_from_token(token)
        except TokenError as e:
            if e.expired:
                logger.debug(f"Expired token on {request.path}")
            else:
                logger.warning(f"Rejected token on {request.path}: {e.reason}")


def optional_actor() -> Actor | None:
    return getattr(g, "actor", None)


def current_actor() -> Actor:
    """Actor for the authenticated request; routes are guarded before calling this."""
    actor = optional_actor()
    if actor is None:
        raise RuntimeError("current_actor() called on an unauthenticated request")
    return actor


def client_meta() -> dict[str, str | None]:
    """IP and user agent recorded alongside audit entries."""
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


def unauthorized():
    return jsonify(
        error_response("Authentication required", code="UNAUTHORIZED")
    ), HTTPStatus.UNAUTHORIZED


def jwt_required(f):
    """Reject the request with 401 unless a valid terminal token was presented."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if optional_actor() is None:
            return unauthorized()
        return f(*args, **kwargs)

    return decorated_function
