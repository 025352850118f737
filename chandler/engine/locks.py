"""Per-thread mutual exclusion.

Turns in the same conversation thread run strictly one after another.
Different threads never contend.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.asyncio import Redis
from redis.exceptions import LockError

from chandler.errors import EngineError
from chandler.observability.logging import get_logger

logger = get_logger(__name__)


class ThreadLock(ABC):
    """Abstract per-thread lock."""

    @abstractmethod
    def hold(self, thread_id: str) -> AsyncIterator[None]:
        """Async context manager holding the lock for ``thread_id``."""

    async def aclose(self) -> None:  # noqa: B027
        """Release backend resources."""


class ThreadLockRegistry(ThreadLock):
    """In-process locks, one ``asyncio.Lock`` per thread id.

    Locks are dropped once no turn holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, thread_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._waiters[thread_id] = self._waiters.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[thread_id] -= 1
            if self._waiters[thread_id] == 0:
                del self._waiters[thread_id]
                del self._locks[thread_id]

    def is_locked(self, thread_id: str) -> bool:
        lock = self._locks.get(thread_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class RedisThreadLock(ThreadLock):
    """Redis-backed lock for deployments with several engine instances.

    Lock key format: chandler:threadlock:{thread_id}
    """

    def __init__(
        self,
        redis: Redis,
        lock_timeout: int = 30,
        blocking_timeout: float = 10.0,
    ):
        """Initialize thread lock.

        Args:
            redis: Redis client instance
            lock_timeout: How long the lock is held before auto-release (seconds)
            blocking_timeout: How long to wait when trying to acquire (seconds)
        """
        self._redis = redis
        self._lock_timeout = lock_timeout
        self._blocking_timeout = blocking_timeout

    def _key(self, thread_id: str) -> str:
        return f"chandler:threadlock:{thread_id}"

    @asynccontextmanager
    async def hold(self, thread_id: str) -> AsyncIterator[None]:
        lock = self._redis.lock(
            self._key(thread_id),
            timeout=self._lock_timeout,
            blocking_timeout=self._blocking_timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise EngineError(
                f"Timed out waiting for thread lock '{thread_id}'",
                {"thread_id": thread_id},
            )
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held
                logger.warning("thread_lock_expired", thread_id=thread_id)

    async def is_locked(self, thread_id: str) -> bool:
        return await self._redis.exists(self._key(thread_id)) > 0

    async def aclose(self) -> None:
        await self._redis.aclose()
