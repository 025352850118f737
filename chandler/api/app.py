"""FastAPI application factory.

Creates and configures the FastAPI application with middleware,
exception handlers, and route registration.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from pydantic import ValidationError

from chandler import __version__
from chandler.api.dependencies import AppContext, get_settings
from chandler.api.exceptions import ChandlerAPIError, from_domain_error
from chandler.api.middleware.context import RequestContextMiddleware
from chandler.api.middleware.rate_limit import RateLimitMiddleware
from chandler.api.models.errors import ErrorBody, ErrorCode, ErrorDetail, ErrorResponse
from chandler.api.routes import register_routes
from chandler.config.settings import Settings
from chandler.errors import ChandlerError
from chandler.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Chat is rate limited inside the turn so the limit surfaces as a stream event
ENGINE_RATE_LIMITED_PATHS = ["/v1/chat", "/v1/chat/stream"]


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration to use; loaded from config/ when omitted
        context: Prebuilt components; built from settings at startup when omitted

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = context.settings if context is not None else get_settings()

    log_config = settings.observability.logging
    setup_logging(level=log_config.level, format=log_config.format, redact_pii=log_config.redact_pii)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app_context = context or AppContext.from_settings(settings)
        await app_context.start()
        app.state.context = app_context
        logger.info("app_started", version=__version__)
        try:
            yield
        finally:
            await app_context.aclose()
            logger.info("app_stopped")

    app = FastAPI(
        title="Chandler API",
        description="Conversational commerce engine for B2C and B2B shopping",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=settings.api.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestContextMiddleware)

    app.add_middleware(
        RateLimitMiddleware,
        enabled=settings.rate_limit.enabled,
        exclude_paths=[*settings.api.rate_limit_exclude_paths, *ENGINE_RATE_LIMITED_PATHS],
    )

    _register_exception_handlers(app)

    register_routes(app)

    if settings.observability.tracing.enabled:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("opentelemetry_instrumentation_enabled")

    logger.info(
        "app_created",
        debug=settings.debug,
        cors_origins=settings.api.cors_origins,
    )

    return app


def _error_response(status_code: int, body: ErrorBody) -> JSONResponse:
    headers = {"Retry-After": str(body.retry_after)} if body.retry_after is not None else None
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=body).model_dump(mode="json"),
        headers=headers,
    )


def _validation_details(errors: list[dict]) -> list[ErrorDetail]:
    return [
        ErrorDetail(field=".".join(str(loc) for loc in error["loc"]), message=error["msg"])
        for error in errors
    ]


def _register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(ChandlerAPIError)
    async def chandler_api_error_handler(request: Request, exc: ChandlerAPIError) -> JSONResponse:
        logger.warning(
            "api_error",
            error_code=exc.error_code.value,
            message=exc.message,
            path=request.url.path,
        )
        body = ErrorBody(code=exc.error_code, message=exc.message, retry_after=exc.retry_after)
        return _error_response(exc.status_code, body)

    @app.exception_handler(ChandlerError)
    async def domain_error_handler(request: Request, exc: ChandlerError) -> JSONResponse:
        """Translate domain errors raised outside a turn."""
        return await chandler_api_error_handler(request, from_domain_error(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("validation_error", errors=exc.errors(), path=request.url.path)
        body = ErrorBody(
            code=ErrorCode.INVALID_REQUEST,
            message="Request validation failed",
            details=_validation_details(list(exc.errors())),
        )
        return _error_response(400, body)

    @app.exception_handler(ValidationError)
    async def pydantic_validation_error_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        logger.warning("pydantic_validation_error", errors=exc.errors(), path=request.url.path)
        body = ErrorBody(
            code=ErrorCode.INVALID_REQUEST,
            message="Data validation failed",
            details=_validation_details(list(exc.errors())),
        )
        return _error_response(400, body)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unexpected_error",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        body = ErrorBody(code=ErrorCode.INTERNAL_ERROR, message="An unexpected error occurred")
        return _error_response(500, body)

    logger.debug("exception_handlers_registered")


def run() -> None:
    """Serve the application with uvicorn using the configured address."""
    settings = get_settings()
    uvicorn.run(
        "chandler.api.app:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        workers=settings.api.workers,
        log_config=None,
    )
