"""Bulk order upload endpoints."""

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile
from sse_starlette.sse import EventSourceResponse, ServerSentEvent

from chandler.api.dependencies import AppContext, AppContextDep, CallerDep
from chandler.api.exceptions import ContentRejectedAPIError, InvalidRequestError
from chandler.api.models.bulk import BulkOrderAccepted, BulkOrderCompleted
from chandler.bulk.models import BulkProgress, BulkResult, CSVParseResult
from chandler.conversation.commands import apply_commands
from chandler.conversation.models import Mode
from chandler.errors import ErrorKind, user_message_for
from chandler.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/bulk")


async def _read_upload(file: UploadFile, context: AppContext) -> bytes:
    limit = context.settings.bulk.max_file_size
    content = await file.read(limit + 1)
    if len(content) > limit:
        raise ContentRejectedAPIError(f"Content exceeds maximum allowed size of {limit} bytes")
    return content


def _parse(content: bytes, context: AppContext) -> CSVParseResult:
    # Domain errors propagate to the global handler
    return context.parser.parse(content)


@router.post("/parse", response_model=CSVParseResult)
async def parse_upload(
    file: Annotated[UploadFile, File(description="CSV with SKU and Quantity columns")],
    caller: CallerDep,
    context: AppContextDep,
) -> CSVParseResult:
    """Validate a bulk order CSV without touching the cart."""
    content = await _read_upload(file, context)
    result = _parse(content, context)
    logger.info(
        "bulk_parse_completed",
        tier=caller.tier,
        valid_rows=result.summary.valid_rows,
        error_rows=result.summary.error_rows,
    )
    return result


async def _commit_to_thread(context: AppContext, thread_id: str, mode: Mode, result: BulkResult) -> None:
    async with context.locks.hold(thread_id):
        state = await context.store.get_or_create(thread_id, mode)
        await context.store.save(apply_commands(state, result.cart_commands))


@router.post("/orders")
async def submit_bulk_order(
    file: Annotated[UploadFile, File(description="CSV with SKU and Quantity columns")],
    caller: CallerDep,
    context: AppContextDep,
    cart_id: Annotated[str | None, Form()] = None,
    thread_id: Annotated[str | None, Form()] = None,
    mode: Annotated[Mode, Form()] = "b2b",
) -> EventSourceResponse:
    """Parse a CSV and add its rows to a cart, streaming progress.

    Events: ``accepted`` (parse summary), ``progress`` after each batch,
    ``result`` with the totals, then ``done``. When ``thread_id`` is given
    the resulting cart is committed to that conversation.
    """
    content = await _read_upload(file, context)
    parsed = _parse(content, context)
    if not parsed.rows:
        raise InvalidRequestError("The upload contains no valid rows")

    target_cart = cart_id or thread_id or caller.customer_id or caller.identity
    rejected = sorted({t.row for t in parsed.security_threats} | {e.row for e in parsed.errors})

    async def event_generator() -> AsyncGenerator[dict[str, str], None]:
        accepted = BulkOrderAccepted(
            cart_id=target_cart, mode=mode, summary=parsed.summary, rejected_rows=rejected
        )
        yield {"event": "accepted", "data": accepted.model_dump_json()}

        queue: asyncio.Queue[BulkProgress | None] = asyncio.Queue()
        task = asyncio.create_task(
            context.bulk_processor.process(
                parsed.rows, mode, queue.put_nowait, cart_id=target_cart
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while (progress := await queue.get()) is not None:
                yield {"event": "progress", "data": progress.model_dump_json()}
            result = await task
        except asyncio.CancelledError:
            task.cancel()
            logger.info("bulk_stream_disconnected", cart_id=target_cart)
            raise
        except Exception as e:
            logger.exception("bulk_order_error", cart_id=target_cart, error=str(e))
            yield {
                "event": "error",
                "data": json.dumps({"message": user_message_for(ErrorKind.ACTION_FAILED)}),
            }
            return

        if thread_id:
            await _commit_to_thread(context, thread_id, mode, result)

        completed = BulkOrderCompleted(
            cart_id=target_cart,
            items_processed=result.items_processed,
            items_added=result.items_added,
            items_failed=result.items_failed,
            total_quantity=result.total_quantity,
            total_value=result.total_value,
            processing_time_ms=result.processing_time_ms,
            errors=result.errors,
            alternatives={
                sku: [product.sku for product in products]
                for sku, products in result.alternatives.items()
            },
        )
        yield {"event": "result", "data": completed.model_dump_json()}
        yield {"event": "done", "data": "{}"}

    return EventSourceResponse(
        event_generator(),
        ping=context.settings.engine.keepalive_seconds,
        ping_message_factory=lambda: ServerSentEvent(comment="ping"),
        sep="\n",
    )
