"""Request rate limiting configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

RateLimitBackend = Literal["memory", "redis"]


class RateLimitTierConfig(BaseModel):
    """Window size and request budget for one identity class."""

    window_ms: int = Field(default=60_000, gt=0, description="Window length in milliseconds")
    max_requests: int = Field(default=60, gt=0, description="Requests allowed per window")
    key_prefix: str = Field(default="", description="Prefix applied to identity keys")


def _default_tiers() -> dict[str, RateLimitTierConfig]:
    return {
        "anonymous": RateLimitTierConfig(window_ms=60_000, max_requests=10, key_prefix="anon:"),
        "authenticated": RateLimitTierConfig(window_ms=60_000, max_requests=60, key_prefix="auth:"),
        "business": RateLimitTierConfig(window_ms=60_000, max_requests=300, key_prefix="b2b:"),
    }


class RateLimitConfig(BaseModel):
    """Rate limiting configuration."""

    enabled: bool = Field(default=True, description="Enable rate limiting")
    backend: RateLimitBackend = Field(default="memory", description="Limiter storage backend")
    redis_url: str = Field(default="redis://localhost:6379", description="Redis URL for the redis backend")
    cleanup_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Interval between sweeps of expired windows",
    )
    tiers: dict[str, RateLimitTierConfig] = Field(
        default_factory=_default_tiers,
        description="Per-tier window policies",
    )
