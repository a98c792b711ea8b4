"""Per-import session state and the API-facing registry."""

from .manager import MappingSession
from .registry import SessionRegistry

__all__ = [
    "MappingSession",
    "SessionRegistry",
]
