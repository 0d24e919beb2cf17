"""Model listing routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from underlator.config import MODELS_DIR
from underlator.exceptions import TranslationError
from underlator.logger import get_logger
from underlator.worker.resolver import ModelResolver

models_bp = Blueprint("models", __name__)
logger = get_logger(__name__)


@models_bp.get("")
def list_models():
    """Local model directories and the models pulled on the remote server."""
    config = current_app.config["UNDERLATOR"]
    coordinator = current_app.config["COORDINATOR"]

    resolver = ModelResolver(config.get("local", {}).get("models_dir") or MODELS_DIR)
    payload = {
        "local": resolver.available(),
        "remote": [],
        "remote_available": False,
    }

    try:
        remote = coordinator.get_provider("remote")
        list_remote = getattr(remote, "list_models", None)
        if list_remote is None:
            raise TranslationError("Remote provider cannot list models", code="unsupported")
        payload["remote"] = list_remote()
        payload["remote_available"] = True
    except TranslationError as e:
        logger.warning("Could not list remote models: %s", e)
        payload["remote_error"] = str(e)

    return jsonify(payload)
