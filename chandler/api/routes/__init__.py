"""API route registration."""

from fastapi import APIRouter, FastAPI

from chandler.observability.logging import get_logger

logger = get_logger(__name__)


def create_v1_router() -> APIRouter:
    """Create the v1 API router with all routes."""
    router = APIRouter(prefix="/v1")

    from chandler.api.routes.actions import router as actions_router
    from chandler.api.routes.bulk import router as bulk_router
    from chandler.api.routes.chat import router as chat_router

    router.include_router(chat_router, tags=["Chat"])
    router.include_router(bulk_router, tags=["Bulk Orders"])
    router.include_router(actions_router, tags=["Actions"])

    logger.debug("v1_router_created", routes=["chat", "bulk", "actions"])

    return router


def register_routes(app: FastAPI) -> None:
    """Register v1 routes, plus health and metrics at the root."""
    app.include_router(create_v1_router())

    from chandler.api.routes.health import router as health_router

    app.include_router(health_router, tags=["Health"])

    logger.info("routes_registered")
