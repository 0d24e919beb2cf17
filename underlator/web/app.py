"""Flask application configuration and blueprint registration."""

from __future__ import annotations

from typing import Any, Dict

from flask import Flask, jsonify

from underlator import __version__
from underlator.exceptions import TranslationError
from underlator.logger import get_logger
from underlator.translation.coordinator import TranslationCoordinator

from .routes.models import models_bp
from .routes.translation import translation_bp

logger = get_logger(__name__)


def build_app(coordinator: TranslationCoordinator, config: Dict[str, Any]) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Ensure JSON responses keep Unicode data.
    app.json.ensure_ascii = False
    app.config["COORDINATOR"] = coordinator
    app.config["UNDERLATOR"] = config

    register_blueprints(app)
    register_default_routes(app)

    return app


def register_blueprints(app: Flask) -> None:
    """Register Flask blueprints."""
    app.register_blueprint(translation_bp, url_prefix="/api")
    app.register_blueprint(models_bp, url_prefix="/api/models")


def register_default_routes(app: Flask) -> None:
    """Register health route and JSON error handlers."""

    @app.get("/health")
    def health_check():
        logger.debug("Health check requested")
        config = app.config["UNDERLATOR"]
        return jsonify({
            "status": "ok",
            "version": __version__,
            "provider": config.get("provider"),
        })

    @app.errorhandler(TranslationError)
    def translation_error(e: TranslationError):
        error_response = {"error": str(e), "code": e.code}
        if e.details:
            error_response["details"] = e.details
        return jsonify(error_response), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "code": "not_found"}), 404

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Internal server error: %s", e)
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500

