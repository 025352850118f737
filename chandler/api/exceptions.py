"""API exception hierarchy for consistent error handling.

All API exceptions inherit from ChandlerAPIError, which provides
status_code and error_code attributes used by the global exception
handler to generate consistent error responses. Domain errors raised
outside a turn are translated with ``from_domain_error``.
"""

from chandler.api.models.errors import ErrorCode
from chandler.errors import (
    ActionNotFoundError,
    ChandlerError,
    ContentRejectedError,
    RateLimitExceeded,
    SecurityViolation,
    ValidationError,
)


class ChandlerAPIError(Exception):
    """Base exception for all API errors."""

    status_code: int = 500
    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        self.message = message
        self.retry_after = retry_after
        super().__init__(message)


class InvalidRequestError(ChandlerAPIError):
    """Raised when request validation fails."""

    status_code = 400
    error_code = ErrorCode.INVALID_REQUEST


class ContentRejectedAPIError(ChandlerAPIError):
    """Raised when an upload fails content-level checks."""

    status_code = 400
    error_code = ErrorCode.CONTENT_REJECTED


class ActionNotFoundAPIError(ChandlerAPIError):
    """Raised when an action id is not registered."""

    status_code = 404
    error_code = ErrorCode.ACTION_NOT_FOUND


class SecurityViolationError(ChandlerAPIError):
    """Raised when the security judge rejects a request."""

    status_code = 400
    error_code = ErrorCode.SECURITY_VIOLATION


class RateLimitExceededError(ChandlerAPIError):
    """Raised when the caller exceeds their rate limit."""

    status_code = 429
    error_code = ErrorCode.RATE_LIMIT_EXCEEDED


class ActionFailedError(ChandlerAPIError):
    """Raised when a commerce operation fails outside a turn."""

    status_code = 502
    error_code = ErrorCode.ACTION_FAILED


def from_domain_error(error: ChandlerError) -> ChandlerAPIError:
    """Translate a domain error into its API error.

    Content rejections and validation errors describe the caller's own
    input, so their message is returned as-is. Everything else uses the
    user-safe template.
    """
    if isinstance(error, ContentRejectedError):
        return ContentRejectedAPIError(error.reason)
    if isinstance(error, ActionNotFoundError):
        return ActionNotFoundAPIError(error.message)
    if isinstance(error, ValidationError):
        return InvalidRequestError(error.message)
    if isinstance(error, SecurityViolation):
        return SecurityViolationError(error.user_message)
    if isinstance(error, RateLimitExceeded):
        return RateLimitExceededError(error.user_message, retry_after=error.retry_after)
    if error.kind.value == "action_failed":
        return ActionFailedError(error.user_message)
    return ChandlerAPIError(error.user_message)
