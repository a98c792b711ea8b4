"""Pytest configuration and shared fixtures."""

from typing import Optional

import pytest

from importmap.config import Settings
from importmap.session import MappingSession
from importmap.suggestions import (
    SuggestionProvider,
    SuggestionProviderError,
    SuggestionRequest,
    SuggestionResponse,
)

# Every default caption has an exact column except Manager Name
PEOPLE_CSV = (
    "Reference,Org Unit,Forename,Surname,Email,Job Title,Team Lead\n"
    "R001,Sales,Ann,Smith,ann@example.com,Engineer,Bob Jones\n"
    "\n"
    "R002,Ops,Ben,Jones,not-an-email,Analyst,Carol King\n"
)


class StubProvider(SuggestionProvider):
    """Suggestion provider returning a canned response or raising."""

    def __init__(
        self,
        response: Optional[SuggestionResponse] = None,
        error: Optional[Exception] = None,
    ):
        self.response = response or SuggestionResponse()
        self.error = error
        self.requests: list[SuggestionRequest] = []

    async def fetch(self, request: SuggestionRequest) -> SuggestionResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def mock_settings() -> Settings:
    """Create settings with test values."""
    return Settings(
        acceptance_threshold=0.72,
        certainty_threshold=0.97,
        suggestion_provider_url=None,
        suggestion_timeout_seconds=0.5,
        default_delimiter="comma",
        default_has_header=True,
        default_date_format="DD/MM/YYYY",
        host="127.0.0.1",
        port=8000,
        debug=False,
        cors_allow_origins=["*"],
        log_level="DEBUG",
    )


@pytest.fixture
def people_csv() -> str:
    return PEOPLE_CSV


@pytest.fixture
def session() -> MappingSession:
    """A session with the default slots and no remote provider."""
    return MappingSession()


@pytest.fixture
def stub_provider():
    """Factory for providers with a canned response."""
    return StubProvider


@pytest.fixture
def failing_provider() -> StubProvider:
    return StubProvider(error=SuggestionProviderError("provider returned 503"))


# Configure pytest-asyncio
def pytest_configure(config):
    """Configure pytest with asyncio settings."""
    config.addinivalue_line("markers", "asyncio: mark test as async")
