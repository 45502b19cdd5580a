"""Chat message API models."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field

from backend.app.models.common import ApiModel

MessageRole = Literal["system", "user", "assistant", "function", "tool"]


class MessageCreate(ApiModel):
    """One message as logged by the client."""

    role: MessageRole
    content: str
    name: str | None = None
    function_call: dict[str, Any] | None = None
    tool_calls: list[Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    tokens: int = Field(0, ge=0)
    prompt_tokens: int = Field(0, ge=0)
    completion_tokens: int = Field(0, ge=0)
    latency: float = Field(0, ge=0, description="Generation latency in milliseconds")


class MessageBatch(ApiModel):
    """Request body for POST /messages/batch/{chat_id}."""

    messages: list[MessageCreate] = Field(..., min_length=1, max_length=1000)


class MessageUpdate(ApiModel):
    """Request body for PUT /messages/{chat_id}/{message_id}."""

    content: str | None = None
    metadata: dict[str, Any] | None = None


class MessageOut(ApiModel):
    id: UUID
    organization_id: UUID
    owner_id: UUID
    chat_id: UUID
    role: str
    content: str
    name: str | None
    function_call: dict[str, Any] | None
    tool_calls: list[Any] | None
    metadata: dict[str, Any]
    tokens: int
    prompt_tokens: int
    completion_tokens: int
    latency: float
    created_at: datetime
    updated_at: datetime


class BatchResult(ApiModel):
    message: str
    count: int
