"""
Pricing API - live cart quotes for the terminal.
"""

from flask import Blueprint, jsonify, request

from pos_api.jwt_middleware import jwt_required
from pos_core.schemas import PricingQuoteRequest
from pos_core.serializers import success_response
from pos_core.services.settlement_service import quote_order

pricing_bp = Blueprint("pricing", __name__)


@pricing_bp.post("/pricing/quote")
@jwt_required
def post_quote():
    """
    Price a cart without persisting anything
    """
    payload = PricingQuoteRequest.model_validate(request.get_json(silent=True) or {})
    return jsonify(success_response(quote_order(payload)))
