"""
Ledger API - Modular Blueprint Structure

Each module handles one resource of the settlement engine.
"""

import logging

from flask import Blueprint

logger = logging.getLogger(__name__)

# Main API blueprint, mounted under /api
api_bp = Blueprint("api", __name__)

from .cash_drawers import cash_drawers_bp  # noqa: E402
from .fiscal import fiscal_bp  # noqa: E402
from .orders import orders_bp  # noqa: E402
from .pricing import pricing_bp  # noqa: E402
from .tax_exports import tax_exports_bp  # noqa: E402

api_bp.register_blueprint(pricing_bp)
api_bp.register_blueprint(orders_bp)
api_bp.register_blueprint(cash_drawers_bp)
api_bp.register_blueprint(tax_exports_bp)
api_bp.register_blueprint(fiscal_bp)
