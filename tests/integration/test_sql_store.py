"""SQL store against in-memory SQLite."""

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.auth.tenancy import scope
from backend.app.db.context import AuthMethod, Role, SecurityContext
from backend.app.db.filters import QueryFilter, contains, eq
from backend.app.db.repositories import (
    ChatRecord,
    MessageRecord,
    OrganizationRecord,
    SortKey,
    UserRecord,
)
from backend.app.db.sql_repositories import SqlStore
from backend.app.errors import Conflict
from backend.app.pagination import PageQuery, paginate


async def _org_with_user(store: SqlStore, name: str) -> tuple[OrganizationRecord, UserRecord]:
    organization = await store.organizations.insert(
        OrganizationRecord(name=name, api_key_hash=f"{name}-hash")
    )
    user = await store.users.insert(
        UserRecord(
            username=f"{name}-user",
            email=f"user@{name}.example.com",
            organization_id=organization.id,
            role=Role.user,
        )
    )
    return organization, user


@pytest.mark.asyncio
async def test_insert_and_get_round_trip(sqlite_store: SqlStore) -> None:
    organization, user = await _org_with_user(sqlite_store, "acme")

    loaded = await sqlite_store.users.get(user.id)

    assert loaded is not None
    assert loaded.role is Role.user
    assert loaded.organization_id == organization.id
    assert loaded.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_unique_violation_raises_conflict(sqlite_store: SqlStore) -> None:
    await sqlite_store.organizations.insert(OrganizationRecord(name="acme", api_key_hash="a"))

    with pytest.raises(Conflict):
        await sqlite_store.organizations.insert(OrganizationRecord(name="acme", api_key_hash="b"))


@pytest.mark.asyncio
async def test_scope_clause_excludes_other_tenant(sqlite_store: SqlStore) -> None:
    org_a, user_a = await _org_with_user(sqlite_store, "acme")
    org_b, user_b = await _org_with_user(sqlite_store, "globex")
    chat_a = await sqlite_store.chats.insert(
        ChatRecord(organization_id=org_a.id, owner_id=user_a.id, title="a")
    )
    await sqlite_store.chats.insert(ChatRecord(organization_id=org_b.id, owner_id=user_b.id, title="b"))

    ctx = SecurityContext(
        subject_id=None,
        organization_id=org_b.id,
        role=None,
        auth_method=AuthMethod.organization_api_key,
    )
    query = scope(ctx, QueryFilter().where(eq("id", chat_a.id)))

    assert await sqlite_store.chats.find_one(query) is None
    assert await sqlite_store.chats.count(scope(ctx, QueryFilter())) == 1


@pytest.mark.asyncio
async def test_contains_matches_title_and_tags(sqlite_store: SqlStore) -> None:
    organization, user = await _org_with_user(sqlite_store, "acme")
    for title, tags in (("Refund 50%", []), ("Other", ["refunds"]), ("Nothing", ["misc"])):
        await sqlite_store.chats.insert(
            ChatRecord(organization_id=organization.id, owner_id=user.id, title=title, tags=tags)
        )

    found = await sqlite_store.chats.find(
        QueryFilter().where_any(contains("title", "REFUND"), contains("tags", "refund")),
        sort=[SortKey("title")],
    )
    assert [c.title for c in found] == ["Other", "Refund 50%"]

    # LIKE wildcards in the term are literal
    literal = await sqlite_store.chats.find(QueryFilter().where(contains("title", "%")))
    assert [c.title for c in literal] == ["Refund 50%"]


@pytest.mark.asyncio
async def test_paginate_with_tie_breaker(sqlite_store: SqlStore) -> None:
    organization, user = await _org_with_user(sqlite_store, "acme")
    same_time = datetime(2026, 3, 1, tzinfo=timezone.utc)
    for i in range(7):
        await sqlite_store.chats.insert(
            ChatRecord(
                organization_id=organization.id,
                owner_id=user.id,
                title=f"c{i}",
                created_at=same_time + timedelta(minutes=i // 2),
            )
        )

    sort = (SortKey("created_at", descending=True), SortKey("id"))
    seen: list[str] = []
    for page in (1, 2, 3):
        result = await paginate(
            sqlite_store.chats, QueryFilter(), PageQuery(page=page, limit=3, sort=sort)
        )
        seen.extend(c.title for c in result.items)

    assert result.total_items == 7
    assert result.total_pages == 3
    assert result.has_next is False
    assert sorted(seen) == [f"c{i}" for i in range(7)]


@pytest.mark.asyncio
async def test_update_merges_changes_and_bumps_timestamp(sqlite_store: SqlStore) -> None:
    organization, user = await _org_with_user(sqlite_store, "acme")
    chat = await sqlite_store.chats.insert(
        ChatRecord(
            organization_id=organization.id,
            owner_id=user.id,
            title="before",
            metadata={"a": 1},
            updated_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
    )

    updated = await sqlite_store.chats.update(
        QueryFilter().where(eq("id", chat.id)), {"title": "after", "metadata": {"a": 2}}
    )

    assert updated is not None
    assert updated.title == "after"
    assert updated.metadata == {"a": 2}
    assert updated.updated_at > chat.updated_at


@pytest.mark.asyncio
async def test_delete_and_insert_many(sqlite_store: SqlStore) -> None:
    organization, user = await _org_with_user(sqlite_store, "acme")
    chat = await sqlite_store.chats.insert(
        ChatRecord(organization_id=organization.id, owner_id=user.id, title="t")
    )
    messages = [
        MessageRecord(
            organization_id=organization.id,
            owner_id=user.id,
            chat_id=chat.id,
            role="user",
            content=str(i),
        )
        for i in range(4)
    ]

    await sqlite_store.messages.insert_many(messages)
    removed = await sqlite_store.messages.delete(QueryFilter().where(eq("chat_id", chat.id)))

    assert removed == 4
    assert await sqlite_store.messages.count(QueryFilter()) == 0


@pytest.mark.asyncio
async def test_ping(sqlite_store: SqlStore) -> None:
    await sqlite_store.ping()


@pytest.mark.asyncio
async def test_contains_matches_tag_elements(sqlite_store: SqlStore) -> None:
    organization, user = await _org_with_user(sqlite_store, "acme")
    for title, tags in (("French", ["café"]), ("Plain", ["misc"]), ("Untagged", [])):
        await sqlite_store.chats.insert(
            ChatRecord(organization_id=organization.id, owner_id=user.id, title=title, tags=tags)
        )

    accented = await sqlite_store.chats.find(QueryFilter().where(contains("tags", "café")))
    assert [c.title for c in accented] == ["French"]

    # JSON punctuation is not part of any tag
    for term in ('"', ",", "["):
        assert await sqlite_store.chats.count(QueryFilter().where(contains("tags", term))) == 0
