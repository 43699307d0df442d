"""
Tax Exports API - queue consumed by the e-invoice transmitter
"""

from flask import Blueprint, jsonify, request

from pos_api.decorators import role_required
from pos_api.jwt_middleware import client_meta, current_actor
from pos_core.constants import DEFAULT_PAGE_SIZE, Roles
from pos_core.schemas import ExportFailedRequest
from pos_core.serializers import success_response
from pos_core.services.tax_export_service import (
    export_stats,
    get_export_for_order,
    list_pending_exports,
    mark_export_failed,
    mark_export_sent,
)

tax_exports_bp = Blueprint("tax_exports", __name__)


@tax_exports_bp.get("/tax-exports/pending")
@role_required(Roles.MANAGER)
def get_pending_exports():
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int)
    return jsonify(success_response(list_pending_exports(page=page, limit=limit)))


@tax_exports_bp.get("/tax-exports/stats")
@role_required(Roles.MANAGER)
def get_export_stats():
    return jsonify(success_response(export_stats()))


@tax_exports_bp.get("/tax-exports/<int:order_id>")
@role_required(Roles.MANAGER)
def get_order_export(order_id: int):
    return jsonify(success_response(get_export_for_order(order_id)))


@tax_exports_bp.post("/tax-exports/<int:order_id>/sent")
@role_required(Roles.MANAGER)
def post_export_sent(order_id: int):
    return jsonify(success_response(mark_export_sent(order_id, current_actor(), **client_meta())))


@tax_exports_bp.post("/tax-exports/<int:order_id>/failed")
@role_required(Roles.MANAGER)
def post_export_failed(order_id: int):
    payload = ExportFailedRequest.model_validate(request.get_json(silent=True) or {})
    result = mark_export_failed(order_id, payload.error, current_actor(), **client_meta())
    return jsonify(success_response(result))
