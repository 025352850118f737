"""Batch processing of parsed bulk order rows into a cart."""

import asyncio
import inspect
import math
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from chandler.bulk.cache import CachedProductFetcher
from chandler.bulk.models import (
    PRIORITY_ORDER,
    BulkItemError,
    BulkOrderRow,
    BulkPhase,
    BulkProgress,
    BulkResult,
)
from chandler.commerce.client import CommerceClient
from chandler.commerce.models import Product
from chandler.config.models.bulk import BulkConfig, RetryConfig
from chandler.conversation.commands import Command, UpdateCart, UpdateContext
from chandler.errors import CommerceError
from chandler.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[BulkProgress], Awaitable[None] | None]


@dataclass
class _Checked:
    row: BulkOrderRow
    product: Product | None = None
    available: int = 0
    error: str | None = None
    attempts: int = 1


class BulkProcessor:
    """Adds bulk rows to a cart in prioritized, bounded-concurrency batches.

    Rows are grouped by priority (high first) and split into batches.
    Batches run one after another; availability checks inside a batch run
    concurrently. Cart writes stay sequential so the cart sees them in
    row order. Transient commerce failures are retried with exponential
    backoff.
    """

    def __init__(
        self,
        commerce: CommerceClient,
        *,
        fetcher: CachedProductFetcher | None = None,
        config: BulkConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._commerce = commerce
        self._config = config or BulkConfig()
        self._fetcher = fetcher or CachedProductFetcher(
            commerce, max_concurrency=self._config.max_concurrency
        )
        self._retry: RetryConfig = self._config.retry
        self._sleep = sleep
        self._clock = clock

    async def process(
        self,
        rows: Sequence[BulkOrderRow],
        mode: str = "b2b",
        on_progress: ProgressCallback | None = None,
        *,
        cart_id: str,
    ) -> BulkResult:
        start = self._clock()
        result = BulkResult()
        batches = self._batches(rows)
        total = len(rows)
        log = logger.bind(cart_id=cart_id, mode=mode)
        log.info("bulk_processing_started", rows=total, batches=len(batches))

        async def report(phase: BulkPhase, processed: int, current: int) -> None:
            if on_progress is None:
                return
            progress = self._progress(phase, processed, total, current, len(batches), start)
            outcome = on_progress(progress)
            if inspect.isawaitable(outcome):
                await outcome

        await report("validating", 0, 0)
        processed = 0
        for index, batch in enumerate(batches, start=1):
            await report("checking_availability", processed, index)
            checked = await self._check_batch(batch, mode)

            await report("adding_to_cart", processed, index)
            for item in checked:
                await self._add(item, cart_id, result)
            processed += len(batch)
            result.items_processed = processed

            unavailable = [item.row.sku for item in checked if item.available == 0]
            await self._suggest(unavailable, result)
            await report("adding_to_cart" if index < len(batches) else "complete", processed, index)

        if not batches:
            await report("complete", 0, 0)

        result.total_value = round(result.total_value, 2)
        result.processing_time_ms = round((self._clock() - start) * 1000, 2)
        result.cart_commands = await self._commands(cart_id, result)
        log.info(
            "bulk_processing_completed",
            items_processed=result.items_processed,
            items_added=result.items_added,
            items_failed=result.items_failed,
            processing_time_ms=result.processing_time_ms,
        )
        return result

    def _batches(self, rows: Sequence[BulkOrderRow]) -> list[list[BulkOrderRow]]:
        size = self._config.batch_size
        batches = []
        for priority in PRIORITY_ORDER:
            group = [row for row in rows if row.priority == priority]
            batches.extend(group[i : i + size] for i in range(0, len(group), size))
        return batches

    async def _check_batch(self, batch: list[BulkOrderRow], mode: str) -> list[_Checked]:
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def check(row: BulkOrderRow) -> _Checked:
            async with semaphore:
                return await self._check(row, mode)

        return list(await asyncio.gather(*(check(row) for row in batch)))

    async def _check(self, row: BulkOrderRow, mode: str) -> _Checked:
        item = _Checked(row=row)
        try:
            product, attempts = await self._with_retry(lambda: self._fetcher.fetch(row.sku))
            item.attempts = attempts
            if product is None:
                item.error = f"Unknown product '{row.sku}'"
                return item
            if product.mode not in ("both", mode):
                item.error = f"{row.sku} is not available for {mode} orders"
                return item
            item.product = product
            availability, attempts = await self._with_retry(
                lambda: self._commerce.check_availability(row.sku, row.quantity)
            )
            item.attempts += attempts - 1
        except CommerceError as e:
            item.error = e.message
            item.attempts = int(e.details.get("attempts", item.attempts))
            return item

        item.available = min(row.quantity, availability.quantity_available)
        if item.available == 0:
            item.error = f"{row.sku} is out of stock"
        return item

    async def _add(self, item: _Checked, cart_id: str, result: BulkResult) -> None:
        row = item.row
        if item.available == 0 or item.product is None:
            result.items_failed += 1
            result.errors.append(
                BulkItemError(
                    sku=row.sku,
                    quantity=row.quantity,
                    error=item.error or "Unavailable",
                    attempts=item.attempts,
                )
            )
            return

        try:
            _, attempts = await self._with_retry(
                lambda: self._commerce.add_to_cart(cart_id, row.sku, item.available)
            )
        except CommerceError as e:
            result.items_failed += 1
            result.errors.append(
                BulkItemError(
                    sku=row.sku,
                    quantity=row.quantity,
                    error=f"Failed to add to cart: {e.message}",
                    attempts=int(e.details.get("attempts", 1)),
                )
            )
            return

        result.items_added += 1
        result.total_quantity += item.available
        result.total_value += item.available * item.product.price
        if item.available < row.quantity:
            result.errors.append(
                BulkItemError(
                    sku=row.sku,
                    quantity=row.quantity - item.available,
                    error=f"Only {item.available} units available out of {row.quantity} requested",
                    attempts=attempts,
                )
            )

    async def _suggest(self, skus: list[str], result: BulkResult) -> None:
        for sku in skus:
            if sku in result.alternatives:
                continue
            try:
                alternatives = await self._commerce.find_alternatives(sku)
            except CommerceError as e:
                logger.warning("bulk_alternatives_failed", sku=sku, error=e.message)
                continue
            if alternatives:
                result.alternatives[sku] = alternatives

    async def _with_retry(self, operation: Callable[[], Awaitable[T]]) -> tuple[T, int]:
        """Run ``operation``, retrying transient CommerceErrors.

        Returns the value and the number of attempts used. The final
        error carries ``attempts`` in its details.
        """
        delay = self._retry.initial_delay_seconds
        attempt = 1
        while True:
            try:
                return await operation(), attempt
            except CommerceError as e:
                if not e.transient or attempt >= self._retry.max_attempts:
                    e.details["attempts"] = attempt
                    raise
                logger.info(
                    "bulk_retry_scheduled",
                    attempt=attempt,
                    delay_seconds=delay,
                    error=e.message,
                )
                await self._sleep(delay)
                delay = min(delay * self._retry.backoff_multiplier, self._retry.max_delay_seconds)
                attempt += 1

    def _progress(
        self,
        phase: BulkPhase,
        processed: int,
        total: int,
        current_batch: int,
        total_batches: int,
        start: float,
    ) -> BulkProgress:
        elapsed = self._clock() - start
        eta = None
        if 0 < processed < total:
            eta = round(elapsed / processed * (total - processed), 2)
        elif total and processed >= total:
            eta = 0.0
        return BulkProgress(
            phase=phase,
            processed=processed,
            total=total,
            percentage=round(processed / total * 100, 1) if total else 100.0,
            current_batch=current_batch,
            total_batches=total_batches,
            eta_seconds=eta,
        )

    async def _commands(self, cart_id: str, result: BulkResult) -> list[Command]:
        commands: list[Command] = []
        if result.items_added:
            try:
                cart = await self._commerce.get_cart(cart_id)
                commands.append(UpdateCart(cart=cart.model_dump(mode="json")))
            except CommerceError as e:
                logger.warning("bulk_cart_snapshot_failed", cart_id=cart_id, error=e.message)
        success_rate = result.items_added / result.items_processed if result.items_processed else 0.0
        commands.append(
            UpdateContext(
                values={
                    "bulk_order": {
                        "items_added": result.items_added,
                        "items_failed": result.items_failed,
                        "total_quantity": result.total_quantity,
                        "total_value": result.total_value,
                        "success_rate": math.floor(success_rate * 1000) / 10,
                        "has_alternatives": bool(result.alternatives),
                    }
                }
            )
        )
        return commands
