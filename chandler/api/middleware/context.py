"""Request context middleware for observability."""

import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar

import structlog
from fastapi import Request, Response
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware

from chandler.api.models.context import RequestContext
from chandler.observability.logging import get_logger

logger = get_logger(__name__)

_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


def get_request_context() -> RequestContext | None:
    """Get the context of the current request, or None outside a request."""
    return _request_context.get()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a RequestContext for logging and tracing.

    The context is stored in a context variable, on ``request.state`` and
    in structlog's context variables, so every log line emitted while
    handling the request carries its ids.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        span_context = trace.get_current_span().get_span_context()
        trace_id = format(span_context.trace_id, "032x") if span_context.is_valid else ""
        span_id = format(span_context.span_id, "016x") if span_context.is_valid else ""

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        context = RequestContext(
            trace_id=trace_id or request_id,
            span_id=span_id,
            request_id=request_id,
        )
        _request_context.set(context)
        request.state.context = context

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            trace_id=context.trace_id,
            request_id=context.request_id,
        )

        logger.debug("request_started", method=request.method, path=request.url.path)
        response = await call_next(request)
        logger.debug(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )

        response.headers["X-Request-ID"] = context.request_id
        if context.trace_id:
            response.headers["X-Trace-ID"] = context.trace_id
        return response


def update_request_context(
    *,
    thread_id: str | None = None,
    customer_id: str | None = None,
) -> None:
    """Add identifiers to the current request context as they become known."""
    current = get_request_context()
    if current is None:
        return
    if thread_id:
        current.thread_id = thread_id
    if customer_id:
        current.customer_id = customer_id
    structlog.contextvars.bind_contextvars(
        **{k: v for k, v in {"thread_id": thread_id, "customer_id": customer_id}.items() if v}
    )
