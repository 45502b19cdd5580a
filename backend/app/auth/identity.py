"""Identity resolution: verified credential -> SecurityContext."""

import logging

from backend.app.auth.credentials import (
    JwtCredential,
    OrgKeyCredential,
    UserKeyCredential,
    VerifiedCredential,
)
from backend.app.db.context import AuthMethod, Role, SecurityContext
from backend.app.db.repositories import Store, UserRecord
from backend.app.errors import AccountDisabled, Unauthenticated

logger = logging.getLogger(__name__)


async def _check_user_organization(user: UserRecord, store: Store) -> None:
    """Tenant-scoped users need an existing, active organization."""
    if user.role == Role.superadmin:
        return

    if user.organization_id is None:
        raise AccountDisabled("User is not assigned to an organization")

    organization = await store.organizations.get(user.organization_id)
    if organization is None or not organization.is_active:
        raise AccountDisabled("Organization is disabled")


async def _resolve_jwt(credential: JwtCredential, store: Store) -> SecurityContext:
    user = await store.users.get(credential.subject_id)
    if user is None:
        raise Unauthenticated("User not found")
    if not user.is_active:
        raise AccountDisabled()

    # Claims must still describe the stored user; otherwise the token is stale
    if credential.role != user.role:
        raise Unauthenticated("Token role does not match user")

    organization_id = credential.organization_id
    if user.role == Role.superadmin:
        if organization_id is not None and await store.organizations.get(organization_id) is None:
            raise Unauthenticated("Token organization does not exist")
    else:
        if organization_id != user.organization_id:
            logger.warning(
                "JWT organization mismatch",
                extra={"structured": {"user_id": str(user.id)}},
            )
            raise Unauthenticated("Token organization does not match user")
        await _check_user_organization(user, store)

    return SecurityContext(
        subject_id=user.id,
        organization_id=organization_id,
        role=user.role,
        auth_method=AuthMethod.jwt,
    )


async def _resolve_user_key(credential: UserKeyCredential, store: Store) -> SecurityContext:
    user = credential.user
    if not user.is_active:
        raise AccountDisabled()
    await _check_user_organization(user, store)

    return SecurityContext(
        subject_id=user.id,
        organization_id=user.organization_id,
        role=user.role,
        auth_method=AuthMethod.user_api_key,
    )


def _resolve_org_key(credential: OrgKeyCredential) -> SecurityContext:
    organization = credential.organization
    if not organization.is_active:
        raise AccountDisabled("Organization is disabled")

    return SecurityContext(
        subject_id=None,
        organization_id=organization.id,
        role=None,
        auth_method=AuthMethod.organization_api_key,
    )


async def resolve_identity(credential: VerifiedCredential, store: Store) -> SecurityContext:
    """Resolve a verified credential into the request's security context.

    Args:
        credential: Output of verify_credentials
        store: Store used to load the user / organization

    Returns:
        Immutable security context

    Raises:
        Unauthenticated: Stale or forged identity (unknown user, mismatched
            organization or role)
        AccountDisabled: User or organization is inactive
    """
    if isinstance(credential, OrgKeyCredential):
        return _resolve_org_key(credential)
    if isinstance(credential, UserKeyCredential):
        return await _resolve_user_key(credential, store)
    return await _resolve_jwt(credential, store)
