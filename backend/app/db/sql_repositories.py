"""SQL implementations of repository interfaces."""

import dataclasses
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import JSON, delete, func, or_, select, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from backend.app.db.context import Role
from backend.app.db.filters import Condition, QueryFilter
from backend.app.db.models import Chat, Message, Organization, User
from backend.app.db.repositories import (
    ChatRecord,
    MessageRecord,
    OrganizationRecord,
    SortKey,
    UserRecord,
    utcnow,
)
from backend.app.errors import Conflict, TransientStoreError

T = TypeVar("T")

# Record field -> ORM attribute, where they differ
_ATTR_RENAMES = {"metadata": "metadata_"}


async def _commit(session: AsyncSession, detail: str = "Resource already exists") -> None:
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise Conflict(detail) from e


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlCollection(Generic[T]):
    """SQL implementation of Collection over one ORM model."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: type[Any],
        record_cls: type[T],
        dialect: str = "sqlite",
    ) -> None:
        self._session_factory = session_factory
        self._dialect = dialect
        self._model = model
        self._record_cls = record_cls
        self._fields = [f.name for f in dataclasses.fields(record_cls)]  # type: ignore[arg-type]

    def _column(self, field: str) -> Any:
        return getattr(self._model, _ATTR_RENAMES.get(field, field))

    def _json_elements(self, column: Any) -> Any:
        """Table-valued expansion of a JSON array column into its text elements."""
        if self._dialect == "postgresql":
            return func.json_array_elements_text(column).table_valued("value")
        return func.json_each(column).table_valued("value")

    def _compile_condition(self, cond: Condition) -> ColumnElement[bool]:
        column = self._column(cond.field)

        if cond.op == "eq":
            return column.is_(None) if cond.value is None else column == cond.value
        if cond.op == "in":
            return column.in_(list(cond.value))
        if cond.op == "contains":
            pattern = f"%{_escape_like(str(cond.value))}%"
            if isinstance(column.type, JSON):
                element = self._json_elements(column)
                # List columns match when any element does
                return (
                    select(1)
                    .select_from(element)
                    .where(element.c.value.ilike(pattern, escape="\\"))
                    .exists()
                )
            return column.ilike(pattern, escape="\\")

        raise ValueError(f"Unknown filter operator: {cond.op}")

    def _where(self, query: QueryFilter) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = [
            self._column(field) == value for field, value in query.scope
        ]
        clauses.extend(self._compile_condition(cond) for cond in query.conditions)
        for group in query.any_groups:
            clauses.append(or_(*(self._compile_condition(cond) for cond in group)))
        return clauses

    def _to_record(self, row: Any) -> T:
        values: dict[str, Any] = {}
        for field in self._fields:
            value = getattr(row, _ATTR_RENAMES.get(field, field))
            if isinstance(value, datetime) and value.tzinfo is None:
                # SQLite drops tzinfo; everything is stored as UTC
                value = value.replace(tzinfo=timezone.utc)
            if field == "role" and self._record_cls is UserRecord:
                value = Role(value)
            values[field] = value
        return self._record_cls(**values)

    def _to_row(self, record: T) -> Any:
        values = {}
        for field in self._fields:
            value = getattr(record, field)
            if isinstance(value, Role):
                value = value.value
            values[_ATTR_RENAMES.get(field, field)] = value
        return self._model(**values)

    async def get(self, record_id: UUID) -> T | None:
        """Get record by ID."""
        try:
            async with self._session_factory() as session:
                row = await session.get(self._model, record_id)
                return self._to_record(row) if row is not None else None
        except OperationalError as e:
            raise TransientStoreError(str(e)) from e

    async def find_one(self, query: QueryFilter) -> T | None:
        """Get the first matching record."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(self._model).where(*self._where(query)).limit(1)
                )
                row = result.scalar_one_or_none()
                return self._to_record(row) if row is not None else None
        except OperationalError as e:
            raise TransientStoreError(str(e)) from e

    async def count(self, query: QueryFilter) -> int:
        """Count matching records."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(self._model).where(*self._where(query))
                )
                return int(result.scalar_one())
        except OperationalError as e:
            raise TransientStoreError(str(e)) from e

    async def find(
        self,
        query: QueryFilter,
        sort: Sequence[SortKey] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[T]:
        """Fetch a sorted slice of matching records."""
        stmt = select(self._model).where(*self._where(query))
        for key in sort:
            column = self._column(key.field)
            stmt = stmt.order_by(column.desc() if key.descending else column.asc())
        stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [self._to_record(row) for row in result.scalars().all()]
        except OperationalError as e:
            raise TransientStoreError(str(e)) from e

    async def insert(self, record: T) -> T:
        """Insert a record."""
        async with self._session_factory() as session:
            session.add(self._to_row(record))
            await _commit(session)
        return record

    async def insert_many(self, records: Sequence[T]) -> list[T]:
        """Insert records in one transaction."""
        async with self._session_factory() as session:
            session.add_all([self._to_row(record) for record in records])
            await _commit(session)
        return list(records)

    async def update(self, query: QueryFilter, changes: dict[str, Any]) -> T | None:
        """Apply changes to the first matching record."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(self._model).where(*self._where(query)).limit(1)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None

            changes = {"updated_at": utcnow(), **changes}
            for field, value in changes.items():
                if isinstance(value, Role):
                    value = value.value
                setattr(row, _ATTR_RENAMES.get(field, field), value)

            await _commit(session)
            await session.refresh(row)
            return self._to_record(row)

    async def delete(self, query: QueryFilter) -> int:
        """Delete matching records."""
        async with self._session_factory() as session:
            result = await session.execute(delete(self._model).where(*self._where(query)))
            await _commit(session, "Resource is still referenced")
            return int(result.rowcount or 0)


class SqlStore:
    """SQL implementation of Store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        dialect = engine.dialect.name

        self.organizations: SqlCollection[OrganizationRecord] = SqlCollection(
            self._session_factory, Organization, OrganizationRecord, dialect=dialect
        )
        self.users: SqlCollection[UserRecord] = SqlCollection(
            self._session_factory, User, UserRecord, dialect=dialect
        )
        self.chats: SqlCollection[ChatRecord] = SqlCollection(
            self._session_factory, Chat, ChatRecord, dialect=dialect
        )
        self.messages: SqlCollection[MessageRecord] = SqlCollection(
            self._session_factory, Message, MessageRecord, dialect=dialect
        )

    async def delete_organization(self, organization_id: UUID) -> bool:
        """Delete an organization with its users, chats and messages in one transaction."""
        async with self._session_factory() as session:
            # Children first so foreign keys hold at every statement
            for model in (Message, Chat, User):
                await session.execute(delete(model).where(model.organization_id == organization_id))
            result = await session.execute(
                delete(Organization).where(Organization.id == organization_id)
            )
            await _commit(session, "Resource is still referenced")
            return bool(result.rowcount)

    async def ping(self) -> None:
        """Run a trivial query."""
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        """Dispose the engine pool."""
        await self._engine.dispose()
