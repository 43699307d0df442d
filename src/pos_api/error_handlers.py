"""
Map exceptions to the ledger's JSON error envelope.
"""

from http import HTTPStatus

from flask import Flask, jsonify
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from pos_core.errors import LedgerError
from pos_core.logging_config import get_logger
from pos_core.serializers import error_response

logger = get_logger(__name__)


def _request_errors(e: PydanticValidationError) -> list[dict]:
    return [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in e.errors()
    ]


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def ledger_error(e: LedgerError):
        """Controlled errors carry their catalog code and HTTP status."""
        status = e.http_code
        log = logger.error if status >= 500 else logger.warning
        log(f"{e.code}: {e.message}")
        return jsonify(error_response(e.message, e.details or None, code=e.code)), status

    @app.errorhandler(PydanticValidationError)
    def malformed_request(e: PydanticValidationError):
        errors = _request_errors(e)
        logger.warning(f"Malformed request ({len(errors)} field errors)")
        return jsonify(
            error_response("Invalid request data", {"errors": errors}, code="INVALID_REQUEST")
        ), HTTPStatus.BAD_REQUEST

    @app.errorhandler(SQLAlchemyError)
    def database_error(e: SQLAlchemyError):
        logger.error(f"Unhandled database error: {e}", exc_info=True)
        return jsonify(
            error_response("Database error", code="SYSTEM_001")
        ), HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify(error_response(e.description or e.name)), e.code

    @app.errorhandler(Exception)
    def unexpected_error(e: Exception):
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return jsonify(
            error_response("Internal server error", code="SYSTEM_001")
        ), HTTPStatus.INTERNAL_SERVER_ERROR
