"""Ephemeral share FastAPI application."""

from .main import create_app
from .settings import ShareServiceSettings

__all__ = ["create_app", "ShareServiceSettings"]
