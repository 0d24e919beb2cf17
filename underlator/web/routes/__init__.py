"""Route blueprints for the web application."""

from .models import models_bp
from .translation import translation_bp

__all__ = [
    "models_bp",
    "translation_bp",
]
