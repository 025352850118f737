"""Error response models for consistent API error handling."""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Machine-readable error codes for API responses."""

    INVALID_REQUEST = "INVALID_REQUEST"
    """Request validation failed (malformed JSON, missing fields, etc.)."""

    CONTENT_REJECTED = "CONTENT_REJECTED"
    """An uploaded file failed content-level security checks."""

    ACTION_NOT_FOUND = "ACTION_NOT_FOUND"
    """The requested action id is not registered."""

    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    """The request was rejected by the security judge."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    """The caller has exceeded their rate limit."""

    ACTION_FAILED = "ACTION_FAILED"
    """A commerce operation failed."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred."""


class ErrorDetail(BaseModel):
    """Field-level error information for validation failures."""

    field: str | None = None
    message: str


class ErrorBody(BaseModel):
    """Error body content for API error responses."""

    code: ErrorCode
    """Machine-readable error code."""

    message: str
    """User-safe error message."""

    details: list[ErrorDetail] | None = None

    retry_after: int | None = None
    """Seconds until the caller may retry, for rate limit errors."""


class ErrorResponse(BaseModel):
    """Standard error response format for all API errors.

    Example:
        {
            "error": {
                "code": "CONTENT_REJECTED",
                "message": "Content contains null bytes"
            }
        }
    """

    error: ErrorBody
