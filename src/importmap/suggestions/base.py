"""Base suggestion provider interface and wire models."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..mapping.models import MatchCandidate


class RequestType(str, Enum):
    """Kinds of request sent to a suggestion provider."""

    INITIAL_SUGGESTIONS = "initial_suggestions"
    MESSAGE = "message"


class SuggestionRequest(BaseModel):
    """Request body sent to a suggestion provider."""

    model_config = ConfigDict(populate_by_name=True)

    csv_columns: list[str] = Field(alias="csvColumns")
    captions: list[str]
    current_mappings: dict[str, str] = Field(default_factory=dict, alias="currentMappings")
    request_type: RequestType = Field(
        default=RequestType.INITIAL_SUGGESTIONS, alias="requestType"
    )
    message: Optional[str] = None


class SuggestionResponse(BaseModel):
    """Response body returned by a suggestion provider."""

    model_config = ConfigDict(populate_by_name=True)

    content: str = ""
    mapping_suggestion: Optional[MatchCandidate] = Field(default=None, alias="mappingSuggestion")
    mapping_suggestions: Optional[list[MatchCandidate]] = Field(
        default=None, alias="mappingSuggestions"
    )

    def all_suggestions(self) -> list[MatchCandidate]:
        """The plural list if present, else the single suggestion."""
        if self.mapping_suggestions:
            return list(self.mapping_suggestions)
        if self.mapping_suggestion is not None:
            return [self.mapping_suggestion]
        return []


class SuggestionProviderError(Exception):
    """Exception raised when a provider call fails or returns a malformed payload."""

    pass


class SuggestionProvider(ABC):
    """Abstract base class for suggestion providers."""

    @abstractmethod
    async def fetch(self, request: SuggestionRequest) -> SuggestionResponse:
        """Fetch suggestions; raise SuggestionProviderError on any failure."""
        pass


def filter_known(
    suggestions: list[MatchCandidate], columns: list[str], captions: list[str]
) -> list[MatchCandidate]:
    """Drop suggestions naming a column or caption outside the known sets."""
    known_columns = set(columns)
    known_captions = set(captions)
    return [
        s
        for s in suggestions
        if s.csv_column in known_columns and s.target_caption in known_captions
    ]
