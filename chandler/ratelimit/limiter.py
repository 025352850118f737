"""Per-key windowed request admission control."""

from __future__ import annotations

import asyncio
import contextlib
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from chandler.observability.logging import get_logger
from chandler.ratelimit.models import RateLimitRecord, RateLimitResult

logger = get_logger(__name__)


class RateLimiter(ABC):
    """Abstract base class for rate limiters."""

    @abstractmethod
    def check(self, identity: str) -> RateLimitResult:
        """Count a request for ``identity`` and report whether it is allowed.

        Args:
            identity: Caller key (customer id, IP, account id)

        Returns:
            RateLimitResult indicating if request is allowed
        """

    @abstractmethod
    def reset(self, identity: str) -> None:
        """Clear rate limit state for one identity.

        Args:
            identity: Caller key whose window is dropped
        """

    async def start(self) -> None:  # noqa: B027
        """Start background maintenance, if any."""

    async def aclose(self) -> None:  # noqa: B027
        """Stop background maintenance and release state."""


class FixedWindowRateLimiter(RateLimiter):
    """In-memory windowed rate limiter.

    Each key gets a window that starts on its first request and lasts
    ``window_ms``. Requests inside the window increment a counter; the
    first request after the window ends starts a fresh one. A background
    sweep deletes expired windows so idle keys do not accumulate.

    For production use with multiple instances, use RedisRateLimiter.
    """

    def __init__(
        self,
        window_ms: int = 60_000,
        max_requests: int = 60,
        cleanup_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the rate limiter.

        Args:
            window_ms: Window length in milliseconds
            max_requests: Requests allowed per window
            cleanup_interval_seconds: Interval between expired-window sweeps
            clock: Wall-clock source in seconds, injectable for tests
        """
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._records: dict[str, RateLimitRecord] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def check(self, identity: str) -> RateLimitResult:
        """Count a request against the identity's current window.

        Args:
            identity: Caller key

        Returns:
            RateLimitResult; a request past ``max_requests`` is refused
            with ``retry_after`` set to the seconds left in the window
        """
        now = self._now_ms()
        record = self._records.get(identity)
        if record is None or now >= record.reset_at_ms:
            record = RateLimitRecord(count=0, reset_at_ms=now + self.window_ms)
            self._records[identity] = record

        record.count += 1
        result = RateLimitResult.from_record(record, self.max_requests, now)

        if not result.allowed:
            logger.debug(
                "rate_limit_window_exhausted",
                identity=identity,
                count=record.count,
                retry_after=result.retry_after,
            )
        return result

    def reset(self, identity: str) -> None:
        """Forget the identity's window so its next request opens a new one."""
        self._records.pop(identity, None)

    def sweep(self) -> int:
        """Delete every expired window.

        Returns:
            Number of records removed
        """
        now = self._now_ms()
        expired = [key for key, record in self._records.items() if now >= record.reset_at_ms]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug("rate_limit_sweep", removed=len(expired), remaining=len(self._records))
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            self.sweep()

    async def start(self) -> None:
        """Start the background sweep. Calling it again is a no-op."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def aclose(self) -> None:
        """Cancel the sweep task and drop every window."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
        self._records.clear()


class RedisRateLimiter(RateLimiter):
    """Redis-backed windowed rate limiter.

    Uses ``INCR`` plus ``PEXPIRE`` on a per-identity key so several
    application instances share one counter. Redis expires the key at the
    end of the window, which replaces the in-memory sweep.
    """

    def __init__(
        self,
        redis_client: Any,
        window_ms: int = 60_000,
        max_requests: int = 60,
        key_prefix: str = "ratelimit:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the Redis rate limiter.

        Args:
            redis_client: Synchronous redis client
            window_ms: Window length in milliseconds
            max_requests: Requests allowed per window
            key_prefix: Prefix for Redis keys
            clock: Wall-clock source in seconds
        """
        self._redis = redis_client
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._key_prefix = key_prefix
        self._clock = clock

    def _get_key(self, identity: str) -> str:
        return f"{self._key_prefix}{identity}"

    def check(self, identity: str) -> RateLimitResult:
        """Increment the shared Redis counter for the identity.

        Args:
            identity: Caller key, stored under ``key_prefix``

        Returns:
            RateLimitResult computed from the counter and the key's TTL
        """
        now = self._clock() * 1000
        key = self._get_key(identity)

        pipe = self._redis.pipeline()
        pipe.incr(key)
        pipe.pttl(key)
        count, ttl_ms = pipe.execute()

        # First hit in a window, or a key that lost its expiry
        if count == 1 or ttl_ms is None or ttl_ms < 0:
            self._redis.pexpire(key, self.window_ms)
            ttl_ms = self.window_ms

        record = RateLimitRecord(count=int(count), reset_at_ms=now + ttl_ms)
        return RateLimitResult.from_record(record, self.max_requests, now)

    def reset(self, identity: str) -> None:
        """Delete the identity's Redis key."""
        self._redis.delete(self._get_key(identity))
