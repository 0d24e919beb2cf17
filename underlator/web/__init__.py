"""Web application package for Underlator."""

from typing import Any, Dict, Optional

from flask import Flask

from underlator.config import ensure_config_directory, load_config


def create_app(coordinator=None, config: Optional[Dict[str, Any]] = None) -> Flask:
    """Application factory for the web interface."""
    ensure_config_directory()
    config = config if config is not None else load_config()

    from underlator.translation.coordinator import TranslationCoordinator
    from .app import build_app  # Import here to avoid circular imports

    if coordinator is None:
        coordinator = TranslationCoordinator(config=config)

    return build_app(coordinator, config)


__all__ = ["create_app"]
