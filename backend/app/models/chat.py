"""Chat session API models."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field

from backend.app.models.common import ApiModel

ChatSource = Literal["web", "mobile", "api", "widget"]


class ChatCreate(ApiModel):
    """Request body for POST /chats."""

    title: str = Field(..., min_length=1, max_length=200)
    source: ChatSource = "web"
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    organization_id: UUID | None = Field(
        None, description="Target organization (superadmin requests only)"
    )


class ChatUpdate(ApiModel):
    """Request body for PUT /chats/{id}. Metadata is merged, not replaced."""

    title: str | None = Field(None, min_length=1, max_length=200)
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None
    is_active: bool | None = None


class ChatOut(ApiModel):
    id: UUID
    organization_id: UUID
    owner_id: UUID
    title: str
    source: str
    tags: list[str]
    metadata: dict[str, Any]
    is_active: bool
    created_at: datetime
    updated_at: datetime
