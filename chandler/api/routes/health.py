"""Health check and metrics endpoints."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from chandler import __version__
from chandler.api.dependencies import AppContextDep
from chandler.api.models.health import ComponentHealth, HealthResponse
from chandler.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

HEALTH_CHECK_TIMEOUT_SECONDS = 2.0


async def _check_component(name: str, check: Callable[[], Awaitable[Any]]) -> ComponentHealth:
    """Run one component check, timing it and capturing failures."""
    start = time.perf_counter()
    try:
        await asyncio.wait_for(check(), timeout=HEALTH_CHECK_TIMEOUT_SECONDS)
    except Exception as e:
        logger.warning("health_check_failed", component=name, error=str(e))
        return ComponentHealth(
            name=name,
            status="unhealthy",
            latency_ms=(time.perf_counter() - start) * 1000,
            message=str(e) or type(e).__name__,
        )
    return ComponentHealth(
        name=name, status="healthy", latency_ms=(time.perf_counter() - start) * 1000
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(context: AppContextDep) -> HealthResponse:
    """Check service health status.

    An empty action registry reports ``degraded``; a failing backend
    reports ``unhealthy``.
    """
    logger.debug("health_check_request")

    async def check_commerce() -> None:
        await context.commerce.search_products("", limit=1)

    async def check_store() -> None:
        await context.store.get("__health__")

    async def check_rate_limiter() -> None:
        if context.redis_client is not None:
            await asyncio.to_thread(context.redis_client.ping)

    registry = ComponentHealth(
        name="action_registry",
        status="healthy" if len(context.registry) else "degraded",
        message=f"{len(context.registry)} actions registered",
    )
    components = [
        registry,
        await _check_component("commerce", check_commerce),
        await _check_component("conversation_store", check_store),
        await _check_component("rate_limiter", check_rate_limiter),
    ]

    response = HealthResponse.aggregate(
        components, version=__version__, actions_registered=len(context.registry)
    )
    logger.debug("health_check_completed", status=response.status)
    return response


@router.get("/metrics")
async def get_metrics() -> Response:
    """Get Prometheus metrics in text format for scraping."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
