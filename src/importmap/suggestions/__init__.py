"""Remote suggestion provider clients."""

from .base import (
    RequestType,
    SuggestionProvider,
    SuggestionProviderError,
    SuggestionRequest,
    SuggestionResponse,
    filter_known,
)
from .http_client import HttpSuggestionProvider

__all__ = [
    "RequestType",
    "SuggestionProvider",
    "SuggestionProviderError",
    "SuggestionRequest",
    "SuggestionResponse",
    "filter_known",
    "HttpSuggestionProvider",
]
