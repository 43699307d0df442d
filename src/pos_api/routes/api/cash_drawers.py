"""
Cash Drawers API - drawer sessions, cash movements and shift notes
"""

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from pos_api.decorators import role_required
from pos_api.jwt_middleware import client_meta, current_actor, jwt_required
from pos_core.constants import DEFAULT_PAGE_SIZE, Roles
from pos_core.schemas import (
    CashMovementRequest,
    CloseDrawerRequest,
    LinkOrderRequest,
    OpenDrawerRequest,
    ShiftNoteRequest,
)
from pos_core.serializers import success_response
from pos_core.services.cash_drawer_service import (
    add_cash_drop,
    add_cash_pickup,
    add_shift_note,
    close_drawer,
    get_active_drawer,
    get_drawer,
    link_order_to_drawer,
    list_drawers,
    open_drawer,
)

cash_drawers_bp = Blueprint("cash_drawers", __name__)

DRAWER_ROLES = [Roles.MANAGER, Roles.CASHIER]


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


@cash_drawers_bp.get("/cash-drawers")
@jwt_required
def get_cash_drawers():
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int)
    return jsonify(success_response(list_drawers(page=page, limit=limit)))


@cash_drawers_bp.get("/cash-drawers/active")
@jwt_required
def get_active_cash_drawer():
    return jsonify(success_response(get_active_drawer()))


@cash_drawers_bp.get("/cash-drawers/<int:drawer_id>")
@jwt_required
def get_cash_drawer(drawer_id: int):
    return jsonify(success_response(get_drawer(drawer_id)))


@cash_drawers_bp.post("/cash-drawers")
@role_required(DRAWER_ROLES)
def post_open_drawer():
    payload = OpenDrawerRequest.model_validate(_json_body())
    result = open_drawer(current_actor(), payload.opening_amount, **client_meta())
    return jsonify(success_response(result)), HTTPStatus.CREATED


@cash_drawers_bp.post("/cash-drawers/<int:drawer_id>/close")
@role_required(DRAWER_ROLES)
def post_close_drawer(drawer_id: int):
    payload = CloseDrawerRequest.model_validate(_json_body())
    result = close_drawer(
        drawer_id,
        payload.counted_amount,
        current_actor(),
        expected_amount=payload.expected_amount,
        denomination_breakdown=payload.denomination_breakdown,
        **client_meta(),
    )
    return jsonify(success_response(result))


@cash_drawers_bp.post("/cash-drawers/<int:drawer_id>/drops")
@role_required(DRAWER_ROLES)
def post_cash_drop(drawer_id: int):
    payload = CashMovementRequest.model_validate(_json_body())
    result = add_cash_drop(drawer_id, payload.amount, payload.reason, current_actor())
    return jsonify(success_response(result)), HTTPStatus.CREATED


@cash_drawers_bp.post("/cash-drawers/<int:drawer_id>/pickups")
@role_required(DRAWER_ROLES)
def post_cash_pickup(drawer_id: int):
    payload = CashMovementRequest.model_validate(_json_body())
    result = add_cash_pickup(drawer_id, payload.amount, payload.reason, current_actor())
    return jsonify(success_response(result)), HTTPStatus.CREATED


@cash_drawers_bp.post("/cash-drawers/<int:drawer_id>/notes")
@role_required(DRAWER_ROLES)
def post_shift_note(drawer_id: int):
    payload = ShiftNoteRequest.model_validate(_json_body())
    result = add_shift_note(drawer_id, payload.note, current_actor())
    return jsonify(success_response(result)), HTTPStatus.CREATED


@cash_drawers_bp.post("/cash-drawers/<int:drawer_id>/orders")
@role_required(DRAWER_ROLES)
def post_link_order(drawer_id: int):
    payload = LinkOrderRequest.model_validate(_json_body())
    return jsonify(success_response(link_order_to_drawer(drawer_id, payload.order_id)))
