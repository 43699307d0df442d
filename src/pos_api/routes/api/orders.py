"""
Orders API - settlement, lifecycle actions and refunds
"""

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from pos_api.decorators import role_required
from pos_api.jwt_middleware import client_meta, current_actor, jwt_required
from pos_core.constants import DEFAULT_PAGE_SIZE, Roles
from pos_core.schemas import (
    RefundRequest,
    SettlementRequest,
    UpdateOrderRequest,
    UpdateStatusRequest,
    VoidOrderRequest,
)
from pos_core.serializers import success_response
from pos_core.services.order_service import (
    get_order,
    list_orders,
    update_order_details,
    update_order_status,
    void_order,
)
from pos_core.services.refund_service import list_refunds, refund_order
from pos_core.services.settlement_service import settle_order

# Blueprint without url_prefix (inherited from parent)
orders_bp = Blueprint("orders", __name__)


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


@orders_bp.post("/orders")
@role_required([Roles.MANAGER, Roles.CASHIER, Roles.SERVER])
def post_order():
    """
    Settle a cart into a fiscal order
    """
    payload = SettlementRequest.model_validate(_json_body())
    result = settle_order(payload, current_actor(), **client_meta())
    status = HTTPStatus.OK if result.get("replayed") else HTTPStatus.CREATED
    return jsonify(success_response(result)), status


@orders_bp.get("/orders")
@jwt_required
def get_orders():
    status = request.args.get("status") or None
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int)
    return jsonify(success_response(list_orders(status=status, page=page, limit=limit)))


@orders_bp.get("/orders/<int:order_id>")
@jwt_required
def get_order_detail(order_id: int):
    return jsonify(success_response(get_order(order_id)))


@orders_bp.patch("/orders/<int:order_id>")
@jwt_required
def patch_order(order_id: int):
    """
    Edit notes, kitchen notes, priority or prep time
    """
    payload = UpdateOrderRequest.model_validate(_json_body())
    fields = payload.model_dump(exclude_unset=True, mode="json")
    return jsonify(success_response(update_order_details(order_id, fields, current_actor())))


@orders_bp.post("/orders/<int:order_id>/status")
@jwt_required
def post_order_status(order_id: int):
    payload = UpdateStatusRequest.model_validate(_json_body())
    result = update_order_status(order_id, payload.status, current_actor(), **client_meta())
    return jsonify(success_response(result))


@orders_bp.post("/orders/<int:order_id>/void")
@jwt_required
def post_void_order(order_id: int):
    """
    Void an order; role is checked by the service against the token
    """
    payload = VoidOrderRequest.model_validate(_json_body())
    result = void_order(order_id, payload.reason, current_actor(), **client_meta())
    return jsonify(success_response(result))


@orders_bp.get("/orders/<int:order_id>/refunds")
@jwt_required
def get_order_refunds(order_id: int):
    return jsonify(success_response(list_refunds(order_id)))


@orders_bp.post("/orders/<int:order_id>/refunds")
@jwt_required
def post_refund(order_id: int):
    payload = RefundRequest.model_validate(_json_body())
    result = refund_order(order_id, payload, current_actor(), **client_meta())
    return jsonify(success_response(result)), HTTPStatus.CREATED
