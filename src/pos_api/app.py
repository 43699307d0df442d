"""
Factory for the Ledger API Service (REST).
Serves the settlement engine under /api.

Uses JWT for authentication; tokens are issued by the external login service.
"""

from __future__ import annotations

from flask import Flask, jsonify
from flask_cors import CORS

from pos_api.audit_middleware import init_audit_middleware
from pos_api.error_handlers import register_error_handlers
from pos_api.jwt_middleware import init_jwt_middleware
from pos_api.routes.api import api_bp
from pos_core.config import AppConfig, load_config, set_config, validate_required_env_vars
from pos_core.db import init_db, init_engine
from pos_core.logging_config import configure_logging
from pos_core.models import Base


def create_app(config: AppConfig | None = None) -> Flask:
    if config is None:
        # Fail fast on missing or invalid environment variables
        validate_required_env_vars(skip_in_debug=True)
        config = load_config("pos-ledger-api")
    set_config(config)

    app = Flask(__name__)

    configure_logging(config.app_name, config.log_level)

    # Database
    init_engine(config)
    init_db(Base.metadata)

    # Basic Config
    app.config["SECRET_KEY"] = config.secret_key
    app.config["APP_NAME"] = config.restaurant_name
    app.config["DEBUG_MODE"] = config.debug_mode
    app.config["DEBUG"] = config.flask_debug
    app.config["JWT_ACCESS_TOKEN_EXPIRES_HOURS"] = config.jwt_access_token_expires_hours

    init_jwt_middleware(app)
    init_audit_middleware(app)

    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    # CORS
    allowed_origins = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
    CORS(app, resources={r"/api/*": {"origins": allowed_origins, "supports_credentials": True}})

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "service": config.app_name}), 200

    return app
