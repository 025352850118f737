"""Tier selection and HTTP header helpers for rate limiting."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Literal

from chandler.config.models.rate_limit import RateLimitConfig, RateLimitTierConfig
from chandler.observability.logging import get_logger
from chandler.observability.metrics import RATE_LIMIT_REJECTIONS
from chandler.ratelimit.limiter import FixedWindowRateLimiter, RateLimiter, RedisRateLimiter
from chandler.ratelimit.models import RateLimitResult

logger = get_logger(__name__)

Tier = Literal["anonymous", "authenticated", "business"]

LimiterFactory = Callable[[str, RateLimitTierConfig], RateLimiter]


def resolve_tier(authenticated: bool, account_type: str | None = None) -> Tier:
    """Pick the rate limit tier for a caller.

    Args:
        authenticated: Whether the caller passed authentication
        account_type: Optional account type ("b2b"/"business" selects business)

    Returns:
        Tier name
    """
    if not authenticated:
        return "anonymous"
    if account_type and account_type.lower() in ("b2b", "business"):
        return "business"
    return "authenticated"


class TieredRateLimiter:
    """Routes each check to the limiter configured for its tier.

    The limiters themselves are tier-agnostic; this class only holds the
    policy table and applies the tier's key prefix.
    """

    def __init__(
        self,
        tiers: Mapping[str, RateLimitTierConfig],
        limiter_factory: LimiterFactory | None = None,
        cleanup_interval_seconds: float = 60.0,
        default_tier: str = "anonymous",
    ) -> None:
        if not tiers:
            raise ValueError("At least one rate limit tier is required")
        self._tiers = dict(tiers)
        self._default_tier = default_tier if default_tier in self._tiers else next(iter(self._tiers))

        def _memory_limiter(_name: str, tier: RateLimitTierConfig) -> RateLimiter:
            return FixedWindowRateLimiter(
                window_ms=tier.window_ms,
                max_requests=tier.max_requests,
                cleanup_interval_seconds=cleanup_interval_seconds,
            )

        factory = limiter_factory or _memory_limiter
        self._limiters: dict[str, RateLimiter] = {
            name: factory(name, tier) for name, tier in self._tiers.items()
        }

    @classmethod
    def from_config(cls, config: RateLimitConfig, redis_client: object | None = None) -> TieredRateLimiter:
        """Build a tiered limiter from settings."""
        if config.backend == "redis" and redis_client is not None:

            def _redis_limiter(name: str, tier: RateLimitTierConfig) -> RateLimiter:
                return RedisRateLimiter(
                    redis_client,
                    window_ms=tier.window_ms,
                    max_requests=tier.max_requests,
                    key_prefix=f"ratelimit:{name}:",
                )

            return cls(config.tiers, limiter_factory=_redis_limiter)

        return cls(config.tiers, cleanup_interval_seconds=config.cleanup_interval_seconds)

    def limiter_for(self, tier: str) -> RateLimiter:
        return self._limiters.get(tier, self._limiters[self._default_tier])

    def tier_config(self, tier: str) -> RateLimitTierConfig:
        return self._tiers.get(tier, self._tiers[self._default_tier])

    def check(self, identity: str, tier: str) -> RateLimitResult:
        """Check an identity against its tier's policy."""
        key = f"{self.tier_config(tier).key_prefix}{identity}"
        result = self.limiter_for(tier).check(key)
        if not result.allowed:
            RATE_LIMIT_REJECTIONS.labels(tier=tier).inc()
            logger.warning(
                "rate_limit_exceeded",
                tier=tier,
                limit=result.limit,
                retry_after=result.retry_after,
            )
        return result

    def reset(self, identity: str, tier: str) -> None:
        self.limiter_for(tier).reset(f"{self.tier_config(tier).key_prefix}{identity}")

    async def start(self) -> None:
        for limiter in self._limiters.values():
            await limiter.start()

    async def aclose(self) -> None:
        for limiter in self._limiters.values():
            await limiter.aclose()


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build standard rate limit response headers."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(result.reset_at.timestamp())),
    }
    if result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers
