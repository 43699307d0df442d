"""
Access log for the ledger API.

One pipe-separated line per request on the ``audit`` logger:
ACTOR|METHOD PATH|STATUS|BYTES|REQUEST_ID|DURATION
"""

import logging
import time

from flask import Flask, Response, g, request

from pos_api.jwt_middleware import optional_actor

logger = logging.getLogger("audit")

MAX_REQUEST_ID_LENGTH = 36


def _actor_label() -> str:
    actor = optional_actor()
    if actor is None:
        return "ANONYMOUS"
    return f"{actor.role or 'UNKNOWN'}:{actor.employee_id}"


def init_audit_middleware(app: Flask):
    @app.before_request
    def mark_request_start():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_access(response: Response):
        started = getattr(g, "request_started", None)
        elapsed_ms = int((time.perf_counter() - started) * 1000) if started else 0
        request_id = (request.headers.get("X-Request-ID") or "-")[:MAX_REQUEST_ID_LENGTH]
        size = 0 if response.direct_passthrough else (response.content_length or 0)

        line = (
            f"{_actor_label()}|{request.method} {request.path}|{response.status_code}|"
            f"{size}|{request_id}|{elapsed_ms}ms"
        )
        if response.status_code >= 500:
            logger.error(line)
        elif response.status_code >= 400:
            logger.warning(line)
        else:
            logger.info(line)
        return response
