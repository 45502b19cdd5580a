"""Unit tests for identity resolution."""

import uuid

import pytest

from backend.app.auth.credentials import JwtCredential, OrgKeyCredential, UserKeyCredential
from backend.app.auth.identity import resolve_identity
from backend.app.db.context import AuthMethod, Role
from backend.app.db.filters import QueryFilter, eq
from backend.app.db.inmemory import InMemoryStore
from backend.app.errors import AccountDisabled, Unauthenticated
from tests.helpers import seed_superadmin, seed_tenant


async def _deactivate_org(store: InMemoryStore, organization_id: uuid.UUID) -> None:
    await store.organizations.update(
        QueryFilter().where(eq("id", organization_id)), {"is_active": False}
    )


@pytest.mark.asyncio
async def test_jwt_resolves_to_user_context() -> None:
    store = InMemoryStore()
    tenant = await seed_tenant(store, "acme")

    ctx = await resolve_identity(
        JwtCredential(tenant.user.id, tenant.organization.id, Role.user), store
    )

    assert ctx.subject_id == tenant.user.id
    assert ctx.organization_id == tenant.organization.id
    assert ctx.role == Role.user
    assert ctx.auth_method == AuthMethod.jwt


@pytest.mark.asyncio
async def test_jwt_with_mismatched_organization_is_rejected() -> None:
    """A token claiming a different org than the stored one is stale or forged."""
    store = InMemoryStore()
    tenant_a = await seed_tenant(store, "acme")
    tenant_b = await seed_tenant(store, "globex")

    with pytest.raises(Unauthenticated):
        await resolve_identity(
            JwtCredential(tenant_a.user.id, tenant_b.organization.id, Role.user), store
        )


@pytest.mark.asyncio
async def test_jwt_with_stale_role_is_rejected() -> None:
    store = InMemoryStore()
    tenant = await seed_tenant(store, "acme")

    with pytest.raises(Unauthenticated):
        await resolve_identity(
            JwtCredential(tenant.user.id, tenant.organization.id, Role.admin), store
        )


@pytest.mark.asyncio
async def test_jwt_for_unknown_user_is_rejected() -> None:
    with pytest.raises(Unauthenticated):
        await resolve_identity(JwtCredential(uuid.uuid4(), uuid.uuid4(), Role.user), InMemoryStore())


@pytest.mark.asyncio
async def test_inactive_user_is_disabled() -> None:
    store = InMemoryStore()
    tenant = await seed_tenant(store, "acme")
    await store.users.update(QueryFilter().where(eq("id", tenant.user.id)), {"is_active": False})

    with pytest.raises(AccountDisabled):
        await resolve_identity(
            JwtCredential(tenant.user.id, tenant.organization.id, Role.user), store
        )


@pytest.mark.asyncio
async def test_inactive_organization_disables_its_users_and_key() -> None:
    store = InMemoryStore()
    tenant = await seed_tenant(store, "acme")
    await _deactivate_org(store, tenant.organization.id)
    user = await store.users.get(tenant.user.id)
    organization = await store.organizations.get(tenant.organization.id)
    assert user is not None and organization is not None

    with pytest.raises(AccountDisabled):
        await resolve_identity(UserKeyCredential(user), store)
    with pytest.raises(AccountDisabled):
        await resolve_identity(OrgKeyCredential(organization), store)


@pytest.mark.asyncio
async def test_user_key_uses_stored_organization() -> None:
    store = InMemoryStore()
    tenant = await seed_tenant(store, "acme")

    ctx = await resolve_identity(UserKeyCredential(tenant.admin), store)

    assert ctx.organization_id == tenant.organization.id
    assert ctx.role == Role.admin
    assert ctx.auth_method == AuthMethod.user_api_key


@pytest.mark.asyncio
async def test_organization_key_has_no_subject_or_role() -> None:
    store = InMemoryStore()
    tenant = await seed_tenant(store, "acme")

    ctx = await resolve_identity(OrgKeyCredential(tenant.organization), store)

    assert ctx.subject_id is None
    assert ctx.role is None
    assert ctx.organization_id == tenant.organization.id
    assert ctx.is_organization_context


@pytest.mark.asyncio
async def test_superadmin_may_act_without_or_within_an_organization() -> None:
    store = InMemoryStore()
    tenant = await seed_tenant(store, "acme")
    superadmin, _ = await seed_superadmin(store)

    ctx = await resolve_identity(JwtCredential(superadmin.id, None, Role.superadmin), store)
    assert ctx.organization_id is None

    ctx = await resolve_identity(
        JwtCredential(superadmin.id, tenant.organization.id, Role.superadmin), store
    )
    assert ctx.organization_id == tenant.organization.id

    with pytest.raises(Unauthenticated):
        await resolve_identity(JwtCredential(superadmin.id, uuid.uuid4(), Role.superadmin), store)
