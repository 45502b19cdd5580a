"""Chat session endpoints."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backend.app.api.auth import CurrentContext, StoreDep
from backend.app.api.params import page_query_params, parse_bool_param, require_search_term
from backend.app.auth.tenancy import get_scoped_or_404, require_owner, scope, target_organization
from backend.app.db.filters import QueryFilter, contains, eq
from backend.app.db.repositories import ChatRecord, SortKey
from backend.app.errors import NotFound
from backend.app.models.chat import ChatCreate, ChatOut, ChatUpdate
from backend.app.models.common import Envelope, Page, StatusMessage, changes_from
from backend.app.pagination import PageQuery, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chats", tags=["chats"])

CHAT_SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
}

ChatPageQuery = Annotated[
    PageQuery,
    Depends(page_query_params(CHAT_SORT_FIELDS, SortKey("created_at", descending=True))),
]


@router.post("", response_model=Envelope[ChatOut], status_code=status.HTTP_201_CREATED)
async def create_chat(body: ChatCreate, ctx: CurrentContext, store: StoreDep) -> Envelope[ChatOut]:
    """Start a chat session owned by the calling user.

    Args:
        body: Chat fields
        ctx: Security context (must identify a user)
        store: Application store

    Returns:
        The created chat
    """
    owner_id = require_owner(ctx)
    organization_id = await target_organization(ctx, body.organization_id, store)

    chat = await store.chats.insert(
        ChatRecord(
            organization_id=organization_id,
            owner_id=owner_id,
            title=body.title,
            source=body.source,
            tags=body.tags,
            metadata=body.metadata,
        )
    )
    logger.info(
        "Chat created",
        extra={"structured": {"chat_id": str(chat.id), "organization_id": str(organization_id)}},
    )
    return Envelope[ChatOut](
        message="Chat session created successfully", data=ChatOut.model_validate(chat)
    )


@router.get("", response_model=Page[ChatOut])
async def list_chats(
    ctx: CurrentContext,
    store: StoreDep,
    page_query: ChatPageQuery,
    is_active: Annotated[str | None, Query(alias="isActive")] = None,
) -> Page[ChatOut]:
    """List chats visible to the caller, newest first by default."""
    base = QueryFilter()
    active = parse_bool_param(is_active, "isActive")
    if active is not None:
        base = base.where(eq("is_active", active))

    result = await paginate(store.chats, scope(ctx, base, owner_scoped=True), page_query)
    return Page[ChatOut].from_result(result)


@router.get("/search", response_model=Page[ChatOut])
async def search_chats(
    ctx: CurrentContext,
    store: StoreDep,
    page_query: ChatPageQuery,
    query: Annotated[str | None, Query()] = None,
) -> Page[ChatOut]:
    """Search chats by title or tag (case-insensitive substring)."""
    term = require_search_term(query)
    base = QueryFilter().where_any(contains("title", term), contains("tags", term))

    result = await paginate(store.chats, scope(ctx, base, owner_scoped=True), page_query)
    return Page[ChatOut].from_result(result)


@router.get("/{chat_id}", response_model=ChatOut)
async def get_chat(chat_id: UUID, ctx: CurrentContext, store: StoreDep) -> ChatOut:
    """Get one chat. Chats outside the caller's scope are reported as missing."""
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)
    return ChatOut.model_validate(chat)


@router.put("/{chat_id}", response_model=Envelope[ChatOut])
async def update_chat(
    chat_id: UUID, body: ChatUpdate, ctx: CurrentContext, store: StoreDep
) -> Envelope[ChatOut]:
    """Update title, tags, active flag; metadata keys are merged."""
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)

    changes = changes_from(body)
    if "metadata" in changes:
        changes["metadata"] = {**chat.metadata, **changes["metadata"]}

    query = scope(ctx, QueryFilter().where(eq("id", chat.id)), owner_scoped=True)
    updated = await store.chats.update(query, changes)
    if updated is None:
        raise NotFound("Chat not found")

    return Envelope[ChatOut](message="Chat updated successfully", data=ChatOut.model_validate(updated))


@router.delete("/{chat_id}", response_model=StatusMessage)
async def delete_chat(chat_id: UUID, ctx: CurrentContext, store: StoreDep) -> StatusMessage:
    """Delete a chat and every message in it."""
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)

    # Messages follow the chat's scope, not the caller's owner clause
    removed = await store.messages.delete(
        scope(ctx, QueryFilter().where(eq("chat_id", chat.id)))
    )
    await store.chats.delete(scope(ctx, QueryFilter().where(eq("id", chat.id)), owner_scoped=True))

    logger.info(
        "Chat deleted",
        extra={"structured": {"chat_id": str(chat.id), "messages_removed": removed}},
    )
    return StatusMessage(message="Chat and associated messages deleted successfully")
