"""User API models."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from backend.app.db.context import Role
from backend.app.models.common import ApiModel
from backend.app.models.organization import EMAIL_PATTERN


class UserCreate(ApiModel):
    """Request body for POST /users."""

    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    role: Role = Role.user
    organization_id: UUID | None = Field(
        None, description="Target organization (superadmin requests only)"
    )
    first_name: str | None = None
    last_name: str | None = None


class UserUpdate(ApiModel):
    """Request body for PUT /users/{id}.

    ``role`` and ``is_active`` are honored for admins only.
    """

    username: str | None = Field(None, min_length=3, max_length=50)
    email: str | None = Field(None, pattern=EMAIL_PATTERN)
    first_name: str | None = None
    last_name: str | None = None
    role: Role | None = None
    is_active: bool | None = None


class UserOut(ApiModel):
    id: UUID
    username: str
    email: str
    organization_id: UUID | None
    role: Role
    is_active: bool
    first_name: str | None
    last_name: str | None
    created_at: datetime
    updated_at: datetime


class UserCreated(ApiModel):
    message: str
    data: UserOut
    api_key: str
