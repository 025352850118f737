"""Rate limiter data models."""

from dataclasses import dataclass
from datetime import UTC, datetime
from math import ceil

from pydantic import BaseModel


@dataclass
class RateLimitRecord:
    """Counter state for one identity key."""

    count: int
    reset_at_ms: float
    """Wall-clock time (ms since epoch) when the window ends."""


class RateLimitResult(BaseModel):
    """Result of a rate limit check.

    Returned by the rate limiter to indicate whether a request is allowed
    and to populate rate limit response headers.
    """

    allowed: bool
    """Whether the request is within rate limits."""

    limit: int
    """Maximum requests allowed in the window."""

    remaining: int
    """Remaining requests in the current window."""

    reset_at: datetime
    """When the rate limit window resets."""

    retry_after: int | None = None
    """Seconds to wait before retrying, set only when rejected."""

    @classmethod
    def from_record(
        cls, record: RateLimitRecord, limit: int, now_ms: float
    ) -> "RateLimitResult":
        """Build a result from the post-increment window state."""
        allowed = record.count <= limit
        retry_after = None
        if not allowed:
            retry_after = max(1, ceil((record.reset_at_ms - now_ms) / 1000))
        return cls(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - record.count),
            reset_at=datetime.fromtimestamp(record.reset_at_ms / 1000, tz=UTC),
            retry_after=retry_after,
        )
