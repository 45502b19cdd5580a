"""Models package - re-exports for convenience."""

from backend.app.models.chat import ChatCreate, ChatOut, ChatUpdate
from backend.app.models.common import (
    ApiKeyIssued,
    ApiModel,
    Envelope,
    Page,
    StatusMessage,
    changes_from,
)
from backend.app.models.message import (
    BatchResult,
    MessageBatch,
    MessageCreate,
    MessageOut,
    MessageUpdate,
)
from backend.app.models.organization import (
    OrganizationCreate,
    OrganizationCreated,
    OrganizationDetail,
    OrganizationOut,
    OrganizationUpdate,
)
from backend.app.models.user import UserCreate, UserCreated, UserOut, UserUpdate

__all__ = [
    # Common
    "ApiModel",
    "ApiKeyIssued",
    "Envelope",
    "Page",
    "StatusMessage",
    "changes_from",
    # Chats
    "ChatCreate",
    "ChatUpdate",
    "ChatOut",
    # Messages
    "MessageCreate",
    "MessageBatch",
    "MessageUpdate",
    "MessageOut",
    "BatchResult",
    # Organizations
    "OrganizationCreate",
    "OrganizationUpdate",
    "OrganizationOut",
    "OrganizationDetail",
    "OrganizationCreated",
    # Users
    "UserCreate",
    "UserUpdate",
    "UserOut",
    "UserCreated",
]
