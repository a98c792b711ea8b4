"""HTTP API for mapping sessions."""

from .app import create_app, get_registry

__all__ = ["create_app", "get_registry"]
