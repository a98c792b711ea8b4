"""HTTP suggestion provider client."""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from .base import (
    SuggestionProvider,
    SuggestionProviderError,
    SuggestionRequest,
    SuggestionResponse,
)

logger = logging.getLogger(__name__)


class HttpSuggestionProvider(SuggestionProvider):
    """Posts suggestion requests as JSON to a remote endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, request: SuggestionRequest) -> SuggestionResponse:
        """
        Send one request and parse the response.

        Raises:
            SuggestionProviderError: On transport failure, invalid URL, timeout, non-2xx
                status, non-JSON body or a body that does not match the contract
        """
        payload = request.model_dump(by_alias=True, exclude_none=True, mode="json")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.url,
                    headers={"Content-Type": "application/json"},
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise SuggestionProviderError(
                f"Suggestion provider timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPStatusError as e:
            raise SuggestionProviderError(
                f"Suggestion provider returned {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as e:
            raise SuggestionProviderError(f"Suggestion provider request failed: {e}") from e
        except ValueError as e:
            raise SuggestionProviderError("Suggestion provider returned invalid JSON") from e

        if not isinstance(data, dict):
            raise SuggestionProviderError("Suggestion provider returned a non-object payload")

        try:
            parsed = SuggestionResponse.model_validate(data)
        except ValidationError as e:
            raise SuggestionProviderError(f"Malformed suggestion payload: {e}") from e

        logger.debug(
            f"Provider returned {len(parsed.all_suggestions())} suggestions "
            f"for {request.request_type.value}"
        )
        return parsed
