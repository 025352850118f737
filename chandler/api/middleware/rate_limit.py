"""Request rate limiting middleware.

Chat turns are rate limited inside the engine so the rejection can be
delivered in-band; this middleware covers the remaining endpoints.
"""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from chandler.api.dependencies import get_caller
from chandler.api.models.errors import ErrorBody, ErrorCode, ErrorResponse
from chandler.errors import ErrorKind, user_message_for
from chandler.observability.logging import get_logger
from chandler.ratelimit.tiers import rate_limit_headers

logger = get_logger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the tiered limiter to each request.

    The caller's tier comes from the same headers the routes use. Allowed
    responses carry X-RateLimit-* headers; rejected ones get a 429
    ErrorResponse with Retry-After.
    """

    def __init__(
        self,
        app: ASGIApp,
        enabled: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self._enabled = enabled
        self._exclude_paths = set(exclude_paths or [])

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not self._enabled or request.url.path in self._exclude_paths:
            return await call_next(request)

        context = getattr(request.app.state, "context", None)
        if context is None:
            return await call_next(request)

        caller = get_caller(
            request,
            request.headers.get("X-Customer-Id"),
            request.headers.get("X-Account-Type"),
        )
        result = context.rate_limiter.check(caller.identity, caller.tier)
        headers = rate_limit_headers(result)

        if not result.allowed:
            logger.warning(
                "request_rate_limited",
                path=request.url.path,
                tier=caller.tier,
                retry_after=result.retry_after,
            )
            body = ErrorResponse(
                error=ErrorBody(
                    code=ErrorCode.RATE_LIMIT_EXCEEDED,
                    message=user_message_for(ErrorKind.RATE_LIMITED),
                    retry_after=result.retry_after,
                )
            )
            return JSONResponse(status_code=429, content=body.model_dump(mode="json"), headers=headers)

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
