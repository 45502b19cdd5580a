"""Repository protocol interfaces for data access."""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, TypeVar
from uuid import UUID

from backend.app.db.context import Role
from backend.app.db.filters import QueryFilter


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class OrganizationRecord:
    """Organization data record - top-level tenancy boundary."""

    name: str
    api_key_hash: str
    id: UUID = field(default_factory=uuid.uuid4)
    is_active: bool = True
    contact_email: str | None = None
    description: str = ""
    settings: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class UserRecord:
    """User data record. organization_id is None only for superadmins."""

    username: str
    email: str
    organization_id: UUID | None
    role: Role = Role.user
    id: UUID = field(default_factory=uuid.uuid4)
    api_key_hash: str | None = None
    is_active: bool = True
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ChatRecord:
    """Chat session data record (owner-scoped)."""

    organization_id: UUID
    owner_id: UUID
    title: str
    id: UUID = field(default_factory=uuid.uuid4)
    source: str = "web"
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class MessageRecord:
    """Chat message data record (owner-scoped)."""

    organization_id: UUID
    owner_id: UUID
    chat_id: UUID
    role: str
    content: str
    id: UUID = field(default_factory=uuid.uuid4)
    name: str | None = None
    function_call: dict[str, Any] | None = None
    tool_calls: list[Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency: float = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class SortKey:
    """One sort key on a record field."""

    field: str
    descending: bool = False


T = TypeVar("T")


class Collection(Protocol[T]):
    """Async collection of records queried through QueryFilter."""

    async def get(self, record_id: UUID) -> T | None:
        """Get record by ID without any tenancy scope.

        Only the identity resolver and superadmin-only endpoints call this.
        """
        ...

    async def find_one(self, query: QueryFilter) -> T | None:
        """Get the first record matching the filter."""
        ...

    async def count(self, query: QueryFilter) -> int:
        """Count records matching the filter."""
        ...

    async def find(
        self,
        query: QueryFilter,
        sort: Sequence[SortKey] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[T]:
        """Fetch a sorted, skipped and bounded slice of matching records."""
        ...

    async def insert(self, record: T) -> T:
        """Insert a record.

        Raises:
            Conflict: If a unique field is already taken
        """
        ...

    async def insert_many(self, records: Sequence[T]) -> list[T]:
        """Insert records in bulk."""
        ...

    async def update(self, query: QueryFilter, changes: dict[str, Any]) -> T | None:
        """Apply changes to the first matching record.

        Returns:
            The updated record, or None if nothing matched
        """
        ...

    async def delete(self, query: QueryFilter) -> int:
        """Delete all matching records and return how many were removed."""
        ...


class Store(Protocol):
    """Bundle of collections backing the API."""

    organizations: Collection[OrganizationRecord]
    users: Collection[UserRecord]
    chats: Collection[ChatRecord]
    messages: Collection[MessageRecord]

    async def delete_organization(self, organization_id: UUID) -> bool:
        """Delete an organization and every record scoped to it, atomically."""
        ...

    async def ping(self) -> None:
        """Raise if the store is unreachable."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...


def window_start_for(now: datetime, window_seconds: int) -> datetime:
    """Start of the fixed window containing ``now`` (epoch aligned, UTC).

    Every CounterStore implementation stamps windows with this value.
    """
    epoch = int(now.timestamp())
    return datetime.fromtimestamp(epoch - epoch % window_seconds, tz=timezone.utc)


@dataclass(frozen=True)
class CounterHit:
    """Post-increment state of a rate-limit counter."""

    count: int
    window_start: datetime
    reset_at: datetime


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class CounterStore(Protocol):
    """Shared counter store for rate limiting.

    ``incr`` must be a single atomic increment-and-read: concurrent callers
    on the same key observe distinct, consecutive counts.
    """

    async def incr(self, key: str, window_seconds: int, now: datetime) -> CounterHit:
        """Increment the counter for the window containing ``now``.

        Args:
            key: Counter key (client identity and route class)
            window_seconds: Window size in seconds
            now: Current timestamp

        Returns:
            Counter state after the increment
        """
        ...
