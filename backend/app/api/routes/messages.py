"""Chat message endpoints.

Messages belong to the chat's owner and organization, so every message
query is scoped exactly like the parent chat lookup.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from backend.app.api.auth import CurrentContext, StoreDep
from backend.app.api.params import page_query_params
from backend.app.auth.tenancy import get_scoped_or_404, require_owner, scope
from backend.app.db.context import SecurityContext
from backend.app.db.filters import QueryFilter, eq
from backend.app.db.repositories import ChatRecord, MessageRecord, SortKey, Store
from backend.app.errors import NotFound
from backend.app.models.common import Envelope, Page, StatusMessage, changes_from
from backend.app.models.message import (
    BatchResult,
    MessageBatch,
    MessageCreate,
    MessageOut,
    MessageUpdate,
)
from backend.app.pagination import PageQuery, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])

MESSAGE_SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "tokens": "tokens",
    "latency": "latency",
}

# Conversations read in order
MessagePageQuery = Annotated[
    PageQuery,
    Depends(page_query_params(MESSAGE_SORT_FIELDS, SortKey("created_at"))),
]


def _to_record(chat: ChatRecord, body: MessageCreate) -> MessageRecord:
    return MessageRecord(
        organization_id=chat.organization_id,
        owner_id=chat.owner_id,
        chat_id=chat.id,
        role=body.role,
        content=body.content,
        name=body.name,
        function_call=body.function_call,
        tool_calls=body.tool_calls,
        metadata=body.metadata,
        tokens=body.tokens,
        prompt_tokens=body.prompt_tokens,
        completion_tokens=body.completion_tokens,
        latency=body.latency,
    )


def _message_query(ctx: SecurityContext, chat: ChatRecord, message_id: UUID | None = None) -> QueryFilter:
    base = QueryFilter().where(eq("chat_id", chat.id))
    if message_id is not None:
        base = base.where(eq("id", message_id))
    return scope(ctx, base, owner_scoped=True)


async def _touch_chat(store: Store, ctx: SecurityContext, chat: ChatRecord) -> None:
    """Bump the chat's last-activity timestamp."""
    await store.chats.update(scope(ctx, QueryFilter().where(eq("id", chat.id))), {})


@router.post("/{chat_id}", response_model=Envelope[MessageOut], status_code=status.HTTP_201_CREATED)
async def add_message(
    chat_id: UUID, body: MessageCreate, ctx: CurrentContext, store: StoreDep
) -> Envelope[MessageOut]:
    """Append one message to a chat.

    Args:
        chat_id: Parent chat
        body: Message fields
        ctx: Security context (must identify a user)
        store: Application store

    Returns:
        The stored message
    """
    require_owner(ctx)
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)

    message = await store.messages.insert(_to_record(chat, body))
    await _touch_chat(store, ctx, chat)

    return Envelope[MessageOut](
        message="Message added successfully", data=MessageOut.model_validate(message)
    )


@router.post(
    "/batch/{chat_id}", response_model=BatchResult, status_code=status.HTTP_201_CREATED
)
async def add_messages_batch(
    chat_id: UUID, body: MessageBatch, ctx: CurrentContext, store: StoreDep
) -> BatchResult:
    """Append several messages to a chat in one request."""
    require_owner(ctx)
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)

    inserted = await store.messages.insert_many([_to_record(chat, m) for m in body.messages])
    await _touch_chat(store, ctx, chat)

    logger.info(
        "Message batch stored",
        extra={"structured": {"chat_id": str(chat.id), "count": len(inserted)}},
    )
    return BatchResult(message=f"{len(inserted)} messages added successfully", count=len(inserted))


@router.get("/{chat_id}", response_model=Page[MessageOut])
async def list_messages(
    chat_id: UUID, ctx: CurrentContext, store: StoreDep, page_query: MessagePageQuery
) -> Page[MessageOut]:
    """List a chat's messages, oldest first by default."""
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)

    result = await paginate(store.messages, _message_query(ctx, chat), page_query)
    return Page[MessageOut].from_result(result)


@router.get("/{chat_id}/{message_id}", response_model=MessageOut)
async def get_message(
    chat_id: UUID, message_id: UUID, ctx: CurrentContext, store: StoreDep
) -> MessageOut:
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)

    message = await get_scoped_or_404(
        store.messages,
        ctx,
        message_id,
        resource="message",
        owner_scoped=True,
        extra=QueryFilter().where(eq("chat_id", chat.id)),
    )
    return MessageOut.model_validate(message)


@router.put("/{chat_id}/{message_id}", response_model=Envelope[MessageOut])
async def update_message(
    chat_id: UUID,
    message_id: UUID,
    body: MessageUpdate,
    ctx: CurrentContext,
    store: StoreDep,
) -> Envelope[MessageOut]:
    """Edit content; metadata keys are merged."""
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)
    message = await get_scoped_or_404(
        store.messages,
        ctx,
        message_id,
        resource="message",
        owner_scoped=True,
        extra=QueryFilter().where(eq("chat_id", chat.id)),
    )

    changes = changes_from(body)
    if "metadata" in changes:
        changes["metadata"] = {**message.metadata, **changes["metadata"]}

    updated = await store.messages.update(_message_query(ctx, chat, message.id), changes)
    if updated is None:
        raise NotFound("Message not found")

    return Envelope[MessageOut](
        message="Message updated successfully", data=MessageOut.model_validate(updated)
    )


@router.delete("/{chat_id}/{message_id}", response_model=StatusMessage)
async def delete_message(
    chat_id: UUID, message_id: UUID, ctx: CurrentContext, store: StoreDep
) -> StatusMessage:
    chat = await get_scoped_or_404(store.chats, ctx, chat_id, resource="chat", owner_scoped=True)

    removed = await store.messages.delete(_message_query(ctx, chat, message_id))
    if removed == 0:
        raise NotFound("Message not found")

    return StatusMessage(message="Message deleted successfully")
