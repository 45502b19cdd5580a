"""Credential verification.

Turns request headers into exactly one verified credential. Headers are
tried in a fixed priority order and the first one present is the only one
considered: a present-but-invalid credential fails the request instead of
falling through to a weaker method.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar
from uuid import UUID

from backend.app.auth.api_keys import hash_api_key
from backend.app.auth.tokens import TokenService
from backend.app.db.context import AuthMethod, Role
from backend.app.db.filters import QueryFilter, eq
from backend.app.db.repositories import OrganizationRecord, Store, UserRecord
from backend.app.errors import TransientStoreError, Unauthenticated
from backend.app.utils.metrics import auth_attempts_total

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "authorization"
ORGANIZATION_API_KEY_HEADER = "x-organization-api-key"
USER_API_KEY_HEADER = "x-api-key"

R = TypeVar("R")


@dataclass(frozen=True)
class JwtCredential:
    """Verified bearer token claims."""

    subject_id: UUID
    organization_id: UUID | None
    role: Role


@dataclass(frozen=True)
class UserKeyCredential:
    """User looked up by API key digest."""

    user: UserRecord


@dataclass(frozen=True)
class OrgKeyCredential:
    """Organization looked up by API key digest."""

    organization: OrganizationRecord


VerifiedCredential = JwtCredential | UserKeyCredential | OrgKeyCredential


def _fail(method: AuthMethod, message: str) -> Unauthenticated:
    auth_attempts_total.labels(method=method.value, outcome="rejected").inc()
    logger.warning(
        "Credential rejected: %s",
        message,
        extra={"structured": {"auth_method": method.value, "reason": message}},
    )
    return Unauthenticated(message)


async def _with_retry(lookup: Callable[[], Awaitable[R]]) -> R:
    """Run a store lookup, retrying once on a transient failure."""
    try:
        return await lookup()
    except TransientStoreError:
        logger.warning("Transient store error during key lookup, retrying once")
        return await lookup()


def parse_claims(claims: dict[str, Any]) -> JwtCredential:
    """Convert verified JWT claims to a typed credential.

    Raises:
        Unauthenticated: If sub/org/role are malformed
    """
    try:
        subject_id = UUID(str(claims["sub"]))
        raw_org = claims.get("org")
        organization_id = UUID(str(raw_org)) if raw_org else None
        role = Role(claims["role"])
    except (KeyError, ValueError) as e:
        raise _fail(AuthMethod.jwt, "Invalid token claims") from e

    return JwtCredential(subject_id=subject_id, organization_id=organization_id, role=role)


async def verify_credentials(
    headers: Mapping[str, str], tokens: TokenService, store: Store
) -> VerifiedCredential:
    """Verify the highest-priority credential present in the headers.

    Priority: Authorization bearer token, organization API key, user API key.

    Args:
        headers: Request headers (case-insensitive mapping, or lowercase keys)
        tokens: Token service used to verify JWTs
        store: Store used for API key lookups

    Returns:
        The verified credential

    Raises:
        Unauthenticated: If no credential is present or the present one fails
    """
    authorization = headers.get(AUTHORIZATION_HEADER)
    if authorization is not None:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise _fail(AuthMethod.jwt, "Invalid authorization header format")

        try:
            claims = tokens.decode(token.strip())
        except Unauthenticated as e:
            raise _fail(AuthMethod.jwt, e.message) from e

        credential = parse_claims(claims)
        auth_attempts_total.labels(method=AuthMethod.jwt.value, outcome="verified").inc()
        return credential

    org_key = headers.get(ORGANIZATION_API_KEY_HEADER)
    if org_key is not None:
        digest = hash_api_key(org_key.strip())
        organization = await _with_retry(
            lambda: store.organizations.find_one(
                QueryFilter().where(eq("api_key_hash", digest))
            )
        )
        if organization is None:
            raise _fail(AuthMethod.organization_api_key, "Invalid organization API key")

        auth_attempts_total.labels(
            method=AuthMethod.organization_api_key.value, outcome="verified"
        ).inc()
        return OrgKeyCredential(organization=organization)

    user_key = headers.get(USER_API_KEY_HEADER)
    if user_key is not None:
        digest = hash_api_key(user_key.strip())
        user = await _with_retry(
            lambda: store.users.find_one(QueryFilter().where(eq("api_key_hash", digest)))
        )
        if user is None:
            raise _fail(AuthMethod.user_api_key, "Invalid API key")

        auth_attempts_total.labels(method=AuthMethod.user_api_key.value, outcome="verified").inc()
        return UserKeyCredential(user=user)

    auth_attempts_total.labels(method="none", outcome="rejected").inc()
    raise Unauthenticated("Authentication required")
