"""Role guards for ledger routes."""

from __future__ import annotations

from functools import wraps
from http import HTTPStatus

from flask import jsonify

from pos_api.jwt_middleware import optional_actor, unauthorized
from pos_core.serializers import error_response


def role_required(required_roles):
    """
    Allow the route only for the given role(s).

    Args:
        required_roles: A ``Roles`` member or string, or a list of them
    """
    if not isinstance(required_roles, (list, tuple, set, frozenset)):
        required_roles = [required_roles]
    allowed = frozenset(str(getattr(role, "value", role)).upper() for role in required_roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = optional_actor()
            if actor is None:
                return unauthorized()

            if not actor.has_role(allowed):
                return jsonify(
                    error_response(
                        f"Access denied. Required role: {', '.join(sorted(allowed))}",
                        code="FORBIDDEN",
                    )
                ), HTTPStatus.FORBIDDEN

            return f(*args, **kwargs)

        return decorated_function

    return decorator
