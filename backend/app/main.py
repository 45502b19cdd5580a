"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from fastapi import FastAPI

from backend.app.api.errors import register_exception_handlers
from backend.app.api.routes.chats import router as chats_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.messages import router as messages_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.organizations import router as organizations_router
from backend.app.api.routes.users import router as users_router
from backend.app.auth.tokens import TokenService
from backend.app.config import Settings, get_settings
from backend.app.db.engine import create_store_from_settings
from backend.app.db.inmemory import InMemoryCounterStore, InMemoryStore
from backend.app.db.repositories import CounterStore, Store
from backend.app.middleware.ratelimit import RateLimitMiddleware
from backend.app.ratelimit import FixedWindowRateLimiter, RedisCounterStore
from backend.app.utils.logging import configure_logging

logger = logging.getLogger(__name__)

API_TITLE = "Chat Logger API"
API_VERSION = "1.0.0"


def create_counter_store(settings: Settings) -> CounterStore:
    """Shared Redis counters when configured, process-local otherwise."""
    if settings.redis_url:
        return RedisCounterStore(redis.from_url(settings.redis_url))
    return InMemoryCounterStore()


def create_rate_limiters(
    settings: Settings, counter_store: CounterStore
) -> dict[str, FixedWindowRateLimiter]:
    """One limiter per route class, sharing a counter store."""
    window = settings.rate_limit_window_seconds
    return {
        "api": FixedWindowRateLimiter(counter_store, settings.rate_limit_max, window),
        "auth": FixedWindowRateLimiter(counter_store, settings.auth_rate_limit_max, window),
    }


async def _open_store(settings: Settings) -> Store:
    if settings.database_url:
        return await create_store_from_settings(settings)
    logger.warning("DATABASE_URL is not set; using a non-persistent in-memory store")
    return InMemoryStore()


def create_app(
    settings: Settings | None = None,
    store: Store | None = None,
    counter_store: CounterStore | None = None,
    token_service: TokenService | None = None,
) -> FastAPI:
    """Build the application.

    Components not passed in are created from settings: the token service
    when a verification key is configured, the store at startup.

    Args:
        settings: Settings (defaults to environment)
        store: Persistence store
        counter_store: Rate limit counter store
        token_service: JWT service

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()
    configure_logging(settings)

    if token_service is None and (settings.jwt_secret or settings.jwt_public_key_pem):
        token_service = TokenService(settings)
    counter_store = counter_store or create_counter_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.token_service is None:
            # Refuse to start without a way to verify bearer tokens
            app.state.token_service = TokenService(settings)
        if app.state.store is None:
            app.state.store = await _open_store(settings)

        logger.info(
            "Application started",
            extra={"structured": {"environment": settings.environment}},
        )
        yield

        await app.state.store.close()
        close = getattr(app.state.counter_store, "close", None)
        if close is not None:
            await close()

    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)

    app.state.settings = settings
    app.state.store = store
    app.state.token_service = token_service
    app.state.counter_store = counter_store
    app.state.rate_limiters = create_rate_limiters(settings, counter_store)

    register_exception_handlers(app)
    app.add_middleware(RateLimitMiddleware, settings=settings)

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(chats_router, prefix=settings.api_prefix)
    app.include_router(messages_router, prefix=settings.api_prefix)
    app.include_router(organizations_router, prefix=settings.api_prefix)
    app.include_router(users_router, prefix=settings.api_prefix)

    @app.get(settings.api_prefix, tags=["root"])
    async def root() -> dict[str, str]:
        """Welcome document."""
        return {
            "message": f"Welcome to the {API_TITLE}",
            "version": API_VERSION,
            "docs": "/docs",
        }

    return app


app = create_app()
