"""Database engine and store factory."""

from typing import Any

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from backend.app.config import Settings
from backend.app.db.models import Base
from backend.app.db.repositories import Store
from backend.app.db.sql_repositories import SqlStore


def create_async_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create async SQLAlchemy engine from settings.

    Raises:
        ValueError: If DATABASE_URL is unset or empty.
    """
    database_url = settings.database_url

    if not database_url:
        raise ValueError(
            "DATABASE_URL must be set to a valid connection string. "
            "Please configure the database_url setting."
        )

    # Convert postgresql:// to postgresql+asyncpg://
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif database_url.startswith("sqlite://"):
        database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    engine = create_async_engine(database_url, pool_pre_ping=True, echo=False)
    if engine.dialect.name == "sqlite":
        enable_sqlite_foreign_keys(engine)
    return engine


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """SQLite ignores foreign keys unless asked per connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables (SQLite/dev only; Postgres goes through Alembic)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def create_store_from_settings(settings: Settings) -> Store:
    """Build the SQL-backed store for the configured database."""
    engine = create_async_engine_from_settings(settings)
    if engine.dialect.name == "sqlite":
        await create_schema(engine)
    return SqlStore(engine)


def get_store(request: Request) -> Store:
    """FastAPI dependency returning the application's store."""
    return request.app.state.store  # type: ignore[no-any-return]
