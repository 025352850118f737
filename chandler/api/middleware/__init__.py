"""HTTP middleware."""

from chandler.api.middleware.context import (
    RequestContextMiddleware,
    get_request_context,
    update_request_context,
)
from chandler.api.middleware.rate_limit import RateLimitMiddleware

__all__ = [
    "RateLimitMiddleware",
    "RequestContextMiddleware",
    "get_request_context",
    "update_request_context",
]
