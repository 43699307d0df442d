"""
Fiscal API - read-only view of the invoice and credit-memo sequences
"""

from flask import Blueprint, jsonify

from pos_api.decorators import role_required
from pos_core.constants import Roles
from pos_core.serializers import success_response
from pos_core.services.fiscal_counter_service import get_counter_snapshot

fiscal_bp = Blueprint("fiscal", __name__)


@fiscal_bp.get("/fiscal/counter")
@role_required(Roles.MANAGER)
def get_fiscal_counter():
    return jsonify(success_response(get_counter_snapshot()))
