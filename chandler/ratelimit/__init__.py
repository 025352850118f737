"""Request rate limiting.

A tier-agnostic windowed limiter per identity key, plus a tier table
that maps identity classes (anonymous, authenticated, business) to
window policies.
"""

from chandler.ratelimit.limiter import FixedWindowRateLimiter, RateLimiter, RedisRateLimiter
from chandler.ratelimit.models import RateLimitRecord, RateLimitResult
from chandler.ratelimit.tiers import TieredRateLimiter, rate_limit_headers, resolve_tier

__all__ = [
    "RateLimiter",
    "RateLimitRecord",
    "RateLimitResult",
    "RedisRateLimiter",
    "FixedWindowRateLimiter",
    "TieredRateLimiter",
    "rate_limit_headers",
    "resolve_tier",
]
