"""Security context for tenancy enforcement."""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    """User role."""

    superadmin = "superadmin"
    admin = "admin"
    user = "user"


class AuthMethod(str, Enum):
    """Credential type that produced a security context."""

    jwt = "jwt"
    user_api_key = "user_api_key"
    organization_api_key = "organization_api_key"


@dataclass(frozen=True)
class SecurityContext:
    """Resolved identity of the caller for one request.

    Used to enforce tenancy boundaries in all data operations. Organization
    API key contexts carry no subject and no role.
    """

    subject_id: UUID | None
    organization_id: UUID | None
    role: Role | None
    auth_method: AuthMethod

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.superadmin

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.admin, Role.superadmin)

    @property
    def is_organization_context(self) -> bool:
        return self.auth_method == AuthMethod.organization_api_key
