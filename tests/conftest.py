"""Shared pytest fixtures for all test suites."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from backend.app.auth.tokens import TokenService
from backend.app.config import Settings
from backend.app.db.engine import create_schema, enable_sqlite_foreign_keys
from backend.app.db.inmemory import InMemoryCounterStore, InMemoryStore
from backend.app.db.sql_repositories import SqlStore
from backend.app.main import create_app
from tests.helpers import TEST_JWT_SECRET, Tenant, seed_tenant


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment's database and Redis."""
    return Settings(
        environment="test",
        database_url=None,
        redis_url=None,
        jwt_secret=TEST_JWT_SECRET,
        rate_limit_max=1000,
        auth_rate_limit_max=100,
    )


@pytest.fixture
def token_service(settings: Settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def app(settings: Settings, store: InMemoryStore, token_service: TokenService) -> FastAPI:
    """App wired to an in-memory store and a fresh rate-limit counter store."""
    return create_app(
        settings=settings,
        store=store,
        counter_store=InMemoryCounterStore(),
        token_service=token_service,
    )


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def tenant_a(store: InMemoryStore) -> Tenant:
    return await seed_tenant(store, "acme")


@pytest_asyncio.fixture
async def tenant_b(store: InMemoryStore) -> Tenant:
    return await seed_tenant(store, "globex")


@pytest_asyncio.fixture
async def sqlite_store() -> AsyncGenerator[SqlStore, None]:
    """SQL store on a private in-memory SQLite database.

    Usage:
        @pytest.mark.asyncio
        async def test_something(sqlite_store):
            await sqlite_store.chats.insert(...)
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    await create_schema(engine)

    store = SqlStore(engine)
    yield store

    await store.close()



@pytest_asyncio.fixture
async def sql_client(
    settings: Settings, sqlite_store: SqlStore, token_service: TokenService
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for an app backed by the SQLite store."""
    app = create_app(
        settings=settings,
        store=sqlite_store,
        counter_store=InMemoryCounterStore(),
        token_service=token_service,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
