"""Domain error hierarchy.

Every error carries a ``kind`` used to pick a user-facing message
template. Raw exception text never reaches the end user; it is only
logged.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable error categories."""

    VALIDATION = "validation"
    SECURITY = "security"
    RATE_LIMITED = "rate_limited"
    ACTION_FAILED = "action_failed"
    UNAUTHORIZED = "unauthorized"
    CONFIGURATION = "configuration"
    ENGINE = "engine"


USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "I couldn't understand that request. Could you please rephrase it?",
    ErrorKind.SECURITY: "I can't help with that request. Please rephrase it or ask about something else.",
    ErrorKind.RATE_LIMITED: "You're making requests too quickly. Please wait a moment.",
    ErrorKind.ACTION_FAILED: "I'm having trouble completing that action right now. Please try again.",
    ErrorKind.UNAUTHORIZED: "Please log in to your account to continue.",
    ErrorKind.CONFIGURATION: "This feature is temporarily unavailable.",
    ErrorKind.ENGINE: "An unexpected error occurred. Please try again.",
}


def user_message_for(kind: ErrorKind) -> str:
    """Return the templated, user-safe message for an error kind."""
    return USER_MESSAGES.get(kind, USER_MESSAGES[ErrorKind.ENGINE])


class ChandlerError(Exception):
    """Base exception for all domain errors."""

    kind: ErrorKind = ErrorKind.ENGINE

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def user_message(self) -> str:
        """User-safe message for this error."""
        return user_message_for(self.kind)


class ValidationError(ChandlerError):
    """Raised on malformed input or schema violations."""

    kind = ErrorKind.VALIDATION


class ActionDefinitionError(ValidationError):
    """Raised when an action definition is missing required fields."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, action_id: str | None, problems: list[str]) -> None:
        super().__init__(
            f"Invalid action definition '{action_id}': {'; '.join(problems)}",
            {"action_id": action_id, "problems": problems},
        )
        self.action_id = action_id
        self.problems = problems


class ContentRejectedError(ValidationError):
    """Raised when a bulk upload fails content-level checks."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(reason, details)
        self.reason = reason


class SecurityViolation(ChandlerError):
    """Raised when the security judge rejects content."""

    kind = ErrorKind.SECURITY

    def __init__(
        self,
        reason: str,
        severity: str,
        category: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(reason, details)
        self.reason = reason
        self.severity = severity
        self.category = category


class RateLimitExceeded(ChandlerError):
    """Raised when a caller exceeds its request budget."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message, {"retry_after": retry_after})
        self.retry_after = retry_after


class ActionRateLimitError(RateLimitExceeded):
    """Raised when a single action exceeds its own call budget."""

    def __init__(self, action_id: str, retry_after: int) -> None:
        super().__init__(f"Rate limit exceeded for action '{action_id}'", retry_after)
        self.action_id = action_id


class ActionExecutionError(ChandlerError):
    """Raised when an action handler fails."""

    kind = ErrorKind.ACTION_FAILED

    def __init__(self, action_id: str, cause: BaseException) -> None:
        super().__init__(f"Action '{action_id}' failed: {cause}", {"action_id": action_id})
        self.action_id = action_id
        self.cause = cause


class DuplicateActionError(ChandlerError):
    """Raised when registering an action id that already exists."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, action_id: str) -> None:
        super().__init__(f"Action '{action_id}' is already registered", {"action_id": action_id})
        self.action_id = action_id


class ActionNotFoundError(ChandlerError):
    """Raised when an action id is not registered."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, action_id: str) -> None:
        super().__init__(f"Action '{action_id}' is not registered", {"action_id": action_id})
        self.action_id = action_id


class EngineError(ChandlerError):
    """Raised on unexpected internal failures."""

    kind = ErrorKind.ENGINE


class CommerceError(ChandlerError):
    """Raised when the commerce backend rejects or fails a request.

    ``transient`` marks failures worth retrying (timeouts, 5xx).
    """

    kind = ErrorKind.ACTION_FAILED

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        transient: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.transient = transient
