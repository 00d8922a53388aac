"""
Shared retry policy, errors and protocols for AI service clients.

Every client (Claude, Whisper, detection inference, text-to-speech)
raises the same AIClientError hierarchy so stage adapters can handle
failures uniformly.
"""

from typing import Protocol

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# Retry configuration for transient HTTP errors
RETRY_DECORATOR = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)


class AIClientError(Exception):
    """
    Base exception for AI client errors.

    Attributes:
        message: Error description
        provider: AI provider name (claude, whisper, inference, speech)
        model: Model that caused the error
        original_error: Underlying exception if available
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        model: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.provider = provider
        self.model = model
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.model:
            parts.append(f"model={self.model}")
        return " | ".join(parts)


class AIClientTimeoutError(AIClientError):
    """Raised when a request times out."""

    pass


class AIClientConnectionError(AIClientError):
    """Raised when connection to AI service fails."""

    pass


class AIClientResponseError(AIClientError):
    """
    Raised when AI service returns an error response.

    Attributes:
        status_code: HTTP status code if available
        response_body: Response body if available
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_body = response_body


def translate_http_error(error: Exception, provider: str, action: str) -> AIClientError:
    """Map an httpx exception onto the AIClientError hierarchy."""
    if isinstance(error, httpx.TimeoutException):
        return AIClientTimeoutError(
            f"{action} timeout", provider=provider, original_error=error
        )
    if isinstance(error, httpx.HTTPStatusError):
        return AIClientResponseError(
            f"{action} failed: HTTP {error.response.status_code}",
            provider=provider,
            status_code=error.response.status_code,
            response_body=error.response.text[:500],
            original_error=error,
        )
    return AIClientConnectionError(
        f"{action} failed: {error}", provider=provider, original_error=error
    )


class ScriptWriter(Protocol):
    """Narration-script collaborator used by the script-to-video stage."""

    async def write_script(self, brief: str, max_words: int | None = None) -> str:
        """Return the words to be spoken for a brief."""
        ...

    async def close(self) -> None:
        ...
