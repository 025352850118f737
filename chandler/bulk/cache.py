"""LRU + TTL product cache for bulk lookups."""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Generic, TypeVar

from chandler.bulk.models import CacheStats, ProductCacheEntry
from chandler.commerce.client import CommerceClient
from chandler.commerce.models import Product
from chandler.errors import CommerceError
from chandler.observability.logging import get_logger
from chandler.observability.metrics import PRODUCT_CACHE_EVENTS

logger = get_logger(__name__)

T = TypeVar("T")

WARM_CHUNK_SIZE = 10


class ProductCache(Generic[T]):
    """Bounded cache with per-entry TTL and least-recently-used eviction.

    Compound operations run under an ``asyncio.Lock`` so concurrent batch
    fetches never interleave a read-modify-write.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, ProductCacheEntry[T]] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    async def get(self, key: str) -> T | None:
        async with self._lock:
            return self._get(key)

    async def set(self, key: str, value: T) -> None:
        async with self._lock:
            self._set(key, value)

    async def batch_get(self, keys: Iterable[str]) -> dict[str, T | None]:
        async with self._lock:
            return {key: self._get(key) for key in keys}

    async def batch_set(self, values: Mapping[str, T]) -> None:
        async with self._lock:
            for key, value in values.items():
                self._set(key, value)

    async def invalidate(self, key_or_predicate: str | Callable[[str], bool]) -> int:
        """Drop one key, or every key matching a predicate. Returns the count."""
        async with self._lock:
            if isinstance(key_or_predicate, str):
                return 1 if self._entries.pop(key_or_predicate, None) is not None else 0
            doomed = [key for key in self._entries if key_or_predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._hits = self._misses = self._evictions = self._expirations = 0

    async def warm(self, keys: Iterable[str], loader: Callable[[str], Awaitable[T | None]]) -> int:
        """Preload keys in chunks of 10. Failed loads are skipped."""
        pending = list(dict.fromkeys(keys))
        loaded = 0
        for start in range(0, len(pending), WARM_CHUNK_SIZE):
            chunk = pending[start : start + WARM_CHUNK_SIZE]
            values = await asyncio.gather(*(loader(key) for key in chunk), return_exceptions=True)
            for key, value in zip(chunk, values, strict=True):
                if isinstance(value, Exception):
                    logger.warning("product_cache_warm_failed", key=key, error=str(value))
                    continue
                if value is not None:
                    await self.set(key, value)
                    loaded += 1
        return loaded

    def get_stats(self, top: int = 5) -> CacheStats:
        now = self._clock()
        lookups = self._hits + self._misses
        oldest = min((entry.timestamp for entry in self._entries.values()), default=None)
        most_accessed = sorted(
            ((key, entry.hits) for key, entry in self._entries.items() if entry.hits),
            key=lambda item: item[1],
            reverse=True,
        )[:top]
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            expirations=self._expirations,
            hit_rate=self._hits / lookups if lookups else 0.0,
            oldest_entry_age=round(now - oldest, 3) if oldest is not None else None,
            most_accessed=most_accessed,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def _get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            PRODUCT_CACHE_EVENTS.labels(event="miss").inc()
            return None
        if self._clock() - entry.timestamp > self._ttl:
            del self._entries[key]
            self._expirations += 1
            self._misses += 1
            PRODUCT_CACHE_EVENTS.labels(event="expired").inc()
            return None
        self._entries.move_to_end(key)
        entry.hits += 1
        self._hits += 1
        PRODUCT_CACHE_EVENTS.labels(event="hit").inc()
        return entry.value

    def _set(self, key: str, value: T) -> None:
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
            self._evictions += 1
            PRODUCT_CACHE_EVENTS.labels(event="evicted").inc()
        self._entries[key] = ProductCacheEntry(value=value, timestamp=self._clock())


class CachedProductFetcher:
    """Product lookups through a ProductCache."""

    def __init__(
        self,
        commerce: CommerceClient,
        cache: ProductCache[Product] | None = None,
        *,
        max_concurrency: int = 10,
    ) -> None:
        self._commerce = commerce
        self.cache = cache or ProductCache()
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def fetch(self, sku: str) -> Product | None:
        cached = await self.cache.get(sku)
        if cached is not None:
            return cached
        async with self._semaphore:
            product = await self._commerce.get_product(sku)
        if product is not None:
            await self.cache.set(sku, product)
        return product

    async def batch_fetch(self, skus: Iterable[str]) -> dict[str, Product]:
        """Fetch many SKUs; cache misses are looked up concurrently.

        SKUs that are unknown or fail to load are left out of the result.
        """
        unique = list(dict.fromkeys(skus))
        found = await self.cache.batch_get(unique)
        results = {sku: product for sku, product in found.items() if product is not None}
        misses = [sku for sku in unique if sku not in results]

        async def load(sku: str) -> Product | None:
            async with self._semaphore:
                try:
                    return await self._commerce.get_product(sku)
                except CommerceError as e:
                    logger.warning("product_fetch_failed", sku=sku, error=e.message)
                    return None

        loaded = await asyncio.gather(*(load(sku) for sku in misses))
        fresh = {sku: product for sku, product in zip(misses, loaded, strict=True) if product}
        await self.cache.batch_set(fresh)
        results.update(fresh)
        return results
