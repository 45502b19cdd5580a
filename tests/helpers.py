"""Seeding and auth helpers shared by test modules."""

from dataclasses import dataclass

from backend.app.auth.api_keys import generate_api_key, hash_api_key
from backend.app.auth.tokens import TokenService
from backend.app.db.context import Role
from backend.app.db.repositories import OrganizationRecord, Store, UserRecord

TEST_JWT_SECRET = "test-secret-key-with-enough-length-for-hs256"


@dataclass
class Tenant:
    """Seeded organization with one admin and one plain user."""

    organization: OrganizationRecord
    org_key: str
    admin: UserRecord
    admin_key: str
    user: UserRecord
    user_key: str


async def seed_tenant(store: Store, name: str) -> Tenant:
    """Create an organization, an admin and a user, each with an API key."""
    org_key = generate_api_key()
    organization = await store.organizations.insert(
        OrganizationRecord(name=name, api_key_hash=hash_api_key(org_key))
    )

    admin_key = generate_api_key()
    admin = await store.users.insert(
        UserRecord(
            username=f"{name}-admin",
            email=f"admin@{name}.example.com",
            organization_id=organization.id,
            role=Role.admin,
            api_key_hash=hash_api_key(admin_key),
        )
    )

    user_key = generate_api_key()
    user = await store.users.insert(
        UserRecord(
            username=f"{name}-user",
            email=f"user@{name}.example.com",
            organization_id=organization.id,
            role=Role.user,
            api_key_hash=hash_api_key(user_key),
        )
    )

    return Tenant(organization, org_key, admin, admin_key, user, user_key)


async def seed_superadmin(store: Store) -> tuple[UserRecord, str]:
    """Create a superadmin without an organization; returns it and its API key."""
    key = generate_api_key()
    superadmin = await store.users.insert(
        UserRecord(
            username="root",
            email="root@example.com",
            organization_id=None,
            role=Role.superadmin,
            api_key_hash=hash_api_key(key),
        )
    )
    return superadmin, key


def bearer(token_service: TokenService, user: UserRecord) -> dict[str, str]:
    """Authorization header for a token matching the stored user."""
    token = token_service.create_access_token(user.id, user.organization_id, user.role)
    return {"Authorization": f"Bearer {token}"}
