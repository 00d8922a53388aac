"""
Request-level error taxonomy.

Errors raised before processing starts (InvalidRequestError,
AuthorizationError) map to specific HTTP statuses. Errors raised while
processing are collapsed into ProcessingFailedError, which only carries
a coarse category and the correlation id to the caller.
"""

import uuid


def new_correlation_id() -> str:
    """Generate a short correlation id for log lookup."""
    return uuid.uuid4().hex[:12]


class VidforgeError(Exception):
    """Base class for errors surfaced to API callers.

    Attributes:
        category: Coarse error category returned to the caller
        status_code: HTTP status used by the API layer
        correlation_id: Identifier linking the response to server logs
    """

    category = "internal_error"
    status_code = 500

    def __init__(self, message: str, correlation_id: str | None = None):
        self.message = message
        self.correlation_id = correlation_id or new_correlation_id()
        super().__init__(message)


class InvalidRequestError(VidforgeError):
    """Request is missing required fields or is malformed."""

    category = "invalid_request"
    status_code = 400


class AuthorizationError(VidforgeError):
    """Caller is unauthenticated or its tier does not allow processing."""

    category = "forbidden"
    status_code = 403

    def __init__(
        self,
        message: str,
        authenticated: bool = True,
        correlation_id: str | None = None,
    ):
        super().__init__(message, correlation_id)
        self.authenticated = authenticated
        if not authenticated:
            self.category = "unauthenticated"
            self.status_code = 401


class PrimaryUploadError(Exception):
    """Durable upload of the final video failed.

    Attributes:
        locator: Local artifact that could not be uploaded
        cause: Original exception
    """

    def __init__(self, locator: str, cause: Exception | None = None):
        self.locator = locator
        self.cause = cause
        super().__init__(f"Primary upload failed for {locator}: {cause}")


class ProcessingFailedError(VidforgeError):
    """Processing started but could not produce a durable video.

    Wraps StageError and PrimaryUploadError. The wrapped error is kept
    for server-side logging only.
    """

    category = "processing_failed"
    status_code = 502

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message, correlation_id)
        self.cause = cause
