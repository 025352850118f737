"""Dependency injection for API routes.

Core components are built once per application in ``AppContext`` (see
the lifespan in ``chandler.api.app``) and handed to routes through
FastAPI dependencies. Tests can build their own AppContext and pass it
to ``create_app``.
"""

from dataclasses import dataclass, field
from typing import Annotated

import redis
from fastapi import Depends, Header, Request

from chandler.actions.builtin import BUILTIN_HANDLERS, register_builtin_actions
from chandler.actions.factory import ActionFactory
from chandler.actions.loader import ActionConfigWatcher, load_action_definitions
from chandler.actions.monitoring import PerformanceTracker
from chandler.actions.registry import ActionRegistry
from chandler.api.models.context import CallerIdentity
from chandler.bulk.cache import CachedProductFetcher, ProductCache
from chandler.bulk.parser import SecureCSVParser
from chandler.bulk.processor import BulkProcessor
from chandler.commerce import create_commerce_client
from chandler.commerce.client import CommerceClient
from chandler.commerce.models import Product
from chandler.config import get_settings as load_settings
from chandler.config.settings import Settings, set_toml_config
from chandler.conversation.store import ConversationStore
from chandler.conversation.stores.inmemory import InMemoryConversationStore
from chandler.engine import create_thread_lock
from chandler.engine.engine import ExecutionEngine
from chandler.engine.formatter import ResponseFormatter
from chandler.engine.intent import IntentDetector
from chandler.engine.locks import ThreadLock
from chandler.observability.logging import get_logger
from chandler.providers.llm import LLMProvider, create_llm_provider
from chandler.ratelimit.tiers import TieredRateLimiter, resolve_tier
from chandler.security.judge import SecurityJudge

logger = get_logger(__name__)


def get_settings() -> Settings:
    """Get application settings.

    Falls back to defaults when no config directory is present.
    """
    try:
        return load_settings()
    except FileNotFoundError:
        logger.warning("config_file_not_found", msg="Using default configuration")
        set_toml_config({})
        return Settings()


@dataclass
class AppContext:
    """Components shared by every request of one application."""

    settings: Settings
    registry: ActionRegistry
    judge: SecurityJudge
    rate_limiter: TieredRateLimiter
    commerce: CommerceClient
    store: ConversationStore
    locks: ThreadLock
    engine: ExecutionEngine
    parser: SecureCSVParser
    product_cache: ProductCache[Product]
    bulk_processor: BulkProcessor
    llm: LLMProvider | None = None
    watcher: ActionConfigWatcher | None = None
    redis_client: redis.Redis | None = field(default=None, repr=False)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        commerce: CommerceClient | None = None,
        store: ConversationStore | None = None,
        llm: LLMProvider | None = None,
    ) -> "AppContext":
        """Build every component from configuration.

        Collaborators can be injected to replace the configured backends.
        """
        registry = ActionRegistry(
            ActionFactory(PerformanceTracker(settings.actions.metrics_retention_seconds)),
            cache_size=settings.actions.cache_size,
        )
        if settings.actions.register_builtin:
            register_builtin_actions(registry)

        watcher = None
        if settings.actions.config_path:
            if settings.actions.hot_reload:
                watcher = ActionConfigWatcher(
                    settings.actions.config_path,
                    registry,
                    BUILTIN_HANDLERS,
                    poll_interval_seconds=settings.actions.poll_interval_seconds,
                    debounce_ms=settings.actions.reload_debounce_ms,
                )
            else:
                registry.load_from_config(
                    load_action_definitions(settings.actions.config_path), BUILTIN_HANDLERS
                )

        redis_client = None
        if settings.rate_limit.enabled and settings.rate_limit.backend == "redis":
            redis_client = redis.Redis.from_url(settings.rate_limit.redis_url)
        rate_limiter = TieredRateLimiter.from_config(settings.rate_limit, redis_client)

        engine_config = settings.engine
        if llm is None and (engine_config.use_llm_intent or engine_config.use_llm_formatter):
            llm = create_llm_provider(settings.providers.llm)

        judge = SecurityJudge(settings.security)
        commerce = commerce or create_commerce_client(settings.commerce)
        store = store or InMemoryConversationStore()
        locks = create_thread_lock(engine_config)
        engine = ExecutionEngine(
            registry=registry,
            judge=judge,
            commerce=commerce,
            store=store,
            rate_limiter=rate_limiter if settings.rate_limit.enabled else None,
            locks=locks,
            intent_detector=IntentDetector(llm, use_llm=engine_config.use_llm_intent),
            formatter=ResponseFormatter(llm, use_llm=engine_config.use_llm_formatter),
            config=engine_config,
        )

        product_cache: ProductCache[Product] = ProductCache(
            ttl_seconds=settings.bulk.cache_ttl_seconds,
            max_size=settings.bulk.cache_max_size,
        )
        fetcher = CachedProductFetcher(
            commerce, product_cache, max_concurrency=settings.bulk.max_concurrency
        )

        logger.info(
            "app_context_created",
            actions=len(registry),
            commerce_backend=settings.commerce.backend,
            rate_limit_backend=settings.rate_limit.backend,
            lock_backend=engine_config.lock_backend,
        )
        return cls(
            settings=settings,
            registry=registry,
            judge=judge,
            rate_limiter=rate_limiter,
            commerce=commerce,
            store=store,
            locks=locks,
            engine=engine,
            parser=SecureCSVParser(settings.bulk),
            product_cache=product_cache,
            bulk_processor=BulkProcessor(commerce, fetcher=fetcher, config=settings.bulk),
            llm=llm,
            watcher=watcher,
            redis_client=redis_client,
        )

    async def start(self) -> None:
        await self.rate_limiter.start()
        if self.watcher is not None:
            await self.watcher.start()
        logger.info("app_context_started")

    async def aclose(self) -> None:
        """Stop background tasks, clear caches and close clients."""
        await self.rate_limiter.aclose()
        if self.watcher is not None:
            await self.watcher.aclose()
        await self.product_cache.clear()
        self.registry.clear()
        await self.locks.aclose()
        await self.commerce.aclose()
        if self.llm is not None:
            await self.llm.aclose()
        if self.redis_client is not None:
            self.redis_client.close()
        logger.info("app_context_closed")


def get_app_context(request: Request) -> AppContext:
    """Get the AppContext built by the application lifespan."""
    return request.app.state.context  # type: ignore[no-any-return]


def get_caller(
    request: Request,
    x_customer_id: Annotated[str | None, Header()] = None,
    x_account_type: Annotated[str | None, Header()] = None,
) -> CallerIdentity:
    """Derive the caller's identity and rate limit tier from headers."""
    customer_id = x_customer_id.strip() if x_customer_id else None
    authenticated = bool(customer_id)
    host = request.client.host if request.client else "unknown"
    return CallerIdentity(
        identity=customer_id or host,
        customer_id=customer_id,
        account_type=x_account_type,
        authenticated=authenticated,
        tier=resolve_tier(authenticated, x_account_type),
    )


def get_engine(context: Annotated[AppContext, Depends(get_app_context)]) -> ExecutionEngine:
    return context.engine


def get_registry(context: Annotated[AppContext, Depends(get_app_context)]) -> ActionRegistry:
    return context.registry


# Type aliases for dependency injection
AppContextDep = Annotated[AppContext, Depends(get_app_context)]
CallerDep = Annotated[CallerIdentity, Depends(get_caller)]
EngineDep = Annotated[ExecutionEngine, Depends(get_engine)]
RegistryDep = Annotated[ActionRegistry, Depends(get_registry)]
