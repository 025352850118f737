"""Chat endpoints for processing customer messages."""

import asyncio
import json
import uuid
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Response
from sse_starlette.sse import EventSourceResponse, ServerSentEvent

from chandler.api.dependencies import AppContextDep, CallerDep
from chandler.api.middleware.context import update_request_context
from chandler.api.models.chat import ChatRequest, ChatResponse
from chandler.api.models.context import CallerIdentity
from chandler.engine.cancellation import CancellationToken
from chandler.engine.chunks import EndChunk, ErrorChunk, StreamChunk
from chandler.engine.engine import TurnRequest
from chandler.engine.machine import TurnState
from chandler.errors import ErrorKind, user_message_for
from chandler.observability.logging import get_logger
from chandler.observability.metrics import ACTIVE_STREAMS

logger = get_logger(__name__)

router = APIRouter()

# Engine chunk types that are renamed on the wire
EVENT_NAMES = {"text-delta": "message", "end": "done"}


def _turn_request(body: ChatRequest, caller: CallerIdentity) -> TurnRequest:
    thread_id = body.thread_id or f"thread_{uuid.uuid4().hex[:16]}"
    context = body.context.model_dump(exclude_none=True)
    if caller.customer_id and "customer_id" not in context:
        context["customer_id"] = caller.customer_id
    update_request_context(thread_id=thread_id, customer_id=caller.customer_id)
    return TurnRequest(
        thread_id=thread_id,
        message=body.message,
        identity=caller.identity,
        tier=caller.tier,
        mode=body.mode,
        authenticated=caller.authenticated,
        context=context,
    )


def _event(chunk: StreamChunk) -> dict[str, str]:
    return {
        "event": EVENT_NAMES.get(chunk.type, chunk.type),
        "data": chunk.model_dump_json(exclude={"type"}),
    }


@router.post("/chat", response_model=ChatResponse)
async def process_message(
    body: ChatRequest,
    caller: CallerDep,
    context: AppContextDep,
    response: Response,
) -> ChatResponse:
    """Process a customer message and return the complete reply.

    Rate limit and security rejections are reported in ``errors``; a rate
    limited turn also sets status 429 and Retry-After.
    """
    turn = _turn_request(body, caller)
    logger.info("chat_request_received", tier=caller.tier, mode=body.mode)

    summary = await context.engine.run(turn)
    state = await context.store.get(summary.thread_id)

    if summary.final_state == TurnState.RATE_LIMITED.value:
        response.status_code = 429
        retry_after = next((e.retry_after for e in summary.errors if e.retry_after), None)
        if retry_after is not None:
            response.headers["Retry-After"] = str(retry_after)

    return ChatResponse(
        thread_id=summary.thread_id,
        mode=summary.mode,
        message=summary.message,
        final_state=summary.final_state,
        intent=summary.metadata.intent if summary.metadata else None,
        tools_used=summary.tools_used,
        errors=summary.errors,
        cart=state.cart if state else None,
        stage_timings=summary.metadata.stage_timings if summary.metadata else {},
    )


@router.post("/chat/stream")
async def process_message_stream(
    body: ChatRequest,
    caller: CallerDep,
    context: AppContextDep,
) -> EventSourceResponse:
    """Process a customer message, streaming the turn as Server-Sent Events.

    The first event is ``connection``; the last is ``done``. Idle streams
    receive a ``: ping`` comment. A client disconnect cancels the turn.
    """
    turn = _turn_request(body, caller)
    token = CancellationToken()
    logger.info("chat_stream_request_received", tier=caller.tier, mode=body.mode)

    async def event_generator() -> AsyncGenerator[dict[str, str], None]:
        ACTIVE_STREAMS.inc()
        mode = turn.mode or context.settings.engine.default_mode
        try:
            existing = await context.store.get(turn.thread_id)
            if turn.mode is None and existing is not None:
                mode = existing.mode
            yield {
                "event": "connection",
                "data": json.dumps({"thread_id": turn.thread_id, "mode": mode}),
            }
            async for chunk in context.engine.run_turn(turn, token):
                yield _event(chunk)
        except asyncio.CancelledError:
            token.cancel("client_disconnected")
            logger.info("chat_stream_disconnected", thread_id=turn.thread_id)
            raise
        except Exception as e:
            logger.exception("chat_stream_error", thread_id=turn.thread_id, error=str(e))
            yield _event(
                ErrorChunk(kind=ErrorKind.ENGINE.value, message=user_message_for(ErrorKind.ENGINE))
            )
            yield _event(
                EndChunk(thread_id=turn.thread_id, mode=mode, final_state=TurnState.ERROR.value)
            )
        finally:
            ACTIVE_STREAMS.dec()

    return EventSourceResponse(
        event_generator(),
        ping=context.settings.engine.keepalive_seconds,
        ping_message_factory=lambda: ServerSentEvent(comment="ping"),
        sep="\n",
    )
