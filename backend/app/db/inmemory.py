"""In-memory implementations of repository interfaces."""

import dataclasses
import threading
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar
from uuid import UUID

from backend.app.db.filters import QueryFilter, eq
from backend.app.db.repositories import (
    ChatRecord,
    CounterHit,
    MessageRecord,
    OrganizationRecord,
    SortKey,
    UserRecord,
    utcnow,
    window_start_for,
)
from backend.app.errors import Conflict

T = TypeVar("T")


def _sort_records(records: list[Any], sort: Sequence[SortKey]) -> list[Any]:
    # Stable sorts applied from the least significant key up
    for key in reversed(sort):
        records.sort(
            key=lambda r, f=key.field: (getattr(r, f) is None, getattr(r, f)),
            reverse=key.descending,
        )
    return records


class InMemoryCollection(Generic[T]):
    """In-memory implementation of Collection."""

    def __init__(self, unique_fields: Sequence[str] = ()) -> None:
        self._records: dict[UUID, T] = {}
        self._unique_fields = tuple(unique_fields)

    def _check_unique(self, record: T, ignore_id: UUID | None = None) -> None:
        for field in self._unique_fields:
            value = getattr(record, field)
            if value is None:
                continue
            for existing in self._records.values():
                if getattr(existing, "id") == ignore_id:
                    continue
                if getattr(existing, field) == value:
                    raise Conflict(f"{field} already exists")

    async def get(self, record_id: UUID) -> T | None:
        """Get record by ID."""
        record = self._records.get(record_id)
        return dataclasses.replace(record) if record is not None else None  # type: ignore[type-var]

    async def find_one(self, query: QueryFilter) -> T | None:
        """Get the first matching record."""
        for record in self._records.values():
            if query.matches(record):
                return dataclasses.replace(record)  # type: ignore[type-var]
        return None

    async def count(self, query: QueryFilter) -> int:
        """Count matching records."""
        return sum(1 for record in self._records.values() if query.matches(record))

    async def find(
        self,
        query: QueryFilter,
        sort: Sequence[SortKey] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[T]:
        """Fetch a sorted slice of matching records."""
        results = [r for r in self._records.values() if query.matches(r)]
        results = _sort_records(results, sort)
        end = None if limit is None else skip + limit
        return [dataclasses.replace(r) for r in results[skip:end]]  # type: ignore[type-var]

    async def insert(self, record: T) -> T:
        """Insert a record."""
        self._check_unique(record)
        self._records[getattr(record, "id")] = dataclasses.replace(record)  # type: ignore[type-var]
        return dataclasses.replace(record)  # type: ignore[type-var]

    async def insert_many(self, records: Sequence[T]) -> list[T]:
        """Insert records in bulk."""
        return [await self.insert(record) for record in records]

    async def update(self, query: QueryFilter, changes: dict[str, Any]) -> T | None:
        """Apply changes to the first matching record."""
        for record_id, record in self._records.items():
            if not query.matches(record):
                continue

            updated = dataclasses.replace(record, **changes)  # type: ignore[type-var]
            if "updated_at" not in changes and hasattr(updated, "updated_at"):
                updated.updated_at = utcnow()
            self._check_unique(updated, ignore_id=record_id)
            self._records[record_id] = updated
            return dataclasses.replace(updated)
        return None

    async def delete(self, query: QueryFilter) -> int:
        """Delete matching records."""
        doomed = [rid for rid, record in self._records.items() if query.matches(record)]
        for record_id in doomed:
            del self._records[record_id]
        return len(doomed)


class InMemoryStore:
    """In-memory implementation of Store."""

    def __init__(self) -> None:
        self.organizations: InMemoryCollection[OrganizationRecord] = InMemoryCollection(
            unique_fields=("name", "api_key_hash")
        )
        self.users: InMemoryCollection[UserRecord] = InMemoryCollection(
            unique_fields=("username", "email", "api_key_hash")
        )
        self.chats: InMemoryCollection[ChatRecord] = InMemoryCollection()
        self.messages: InMemoryCollection[MessageRecord] = InMemoryCollection()

    async def delete_organization(self, organization_id: UUID) -> bool:
        """Delete an organization with its users, chats and messages."""
        scoped = QueryFilter().scoped_to("organization_id", organization_id)
        for collection in (self.messages, self.chats, self.users):
            await collection.delete(scoped)
        return bool(await self.organizations.delete(QueryFilter().where(eq("id", organization_id))))

    async def ping(self) -> None:
        """Always reachable."""

    async def close(self) -> None:
        """Nothing to release."""


class InMemoryCounterStore:
    """In-memory implementation of CounterStore using fixed windows.

    Suitable for single-instance deployments only. Expired windows are reset
    lazily on the next hit for the key.
    """

    def __init__(self) -> None:
        self._windows: dict[str, tuple[datetime, int]] = {}
        self._lock = threading.Lock()

    async def incr(self, key: str, window_seconds: int, now: datetime) -> CounterHit:
        """Atomically increment the counter for the current window."""
        window_start = window_start_for(now, window_seconds)

        # Window check, reset and increment form one critical section
        with self._lock:
            stored = self._windows.get(key)
            if stored is None or stored[0] != window_start:
                count = 1
            else:
                count = stored[1] + 1
            self._windows[key] = (window_start, count)

        return CounterHit(
            count=count,
            window_start=window_start,
            reset_at=window_start + timedelta(seconds=window_seconds),
        )
