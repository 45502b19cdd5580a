"""Organization API models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from backend.app.models.common import ApiModel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class OrganizationCreate(ApiModel):
    """Request body for POST /organizations."""

    name: str = Field(..., min_length=1, max_length=100)
    contact_email: str | None = Field(None, pattern=EMAIL_PATTERN)
    description: str = ""
    settings: dict[str, Any] = Field(default_factory=dict)


class OrganizationUpdate(ApiModel):
    """Request body for PUT /organizations/{id}. Settings are merged."""

    name: str | None = Field(None, min_length=1, max_length=100)
    contact_email: str | None = Field(None, pattern=EMAIL_PATTERN)
    description: str | None = None
    is_active: bool | None = None
    settings: dict[str, Any] | None = None


class OrganizationOut(ApiModel):
    """Organization as returned by the API (never includes the key digest)."""

    id: UUID
    name: str
    is_active: bool
    contact_email: str | None
    description: str
    settings: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class OrganizationDetail(OrganizationOut):
    user_count: int


class OrganizationCreated(ApiModel):
    message: str
    data: OrganizationOut
    api_key: str
