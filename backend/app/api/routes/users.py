"""User endpoints.

There is no password login: users authenticate with an API key (issued at
creation or through ``/users/generate-api-key``) or with a bearer token
minted by the operator tooling.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backend.app.api.auth import CurrentContext, StoreDep
from backend.app.api.params import page_query_params, parse_bool_param, require_search_term
from backend.app.auth.api_keys import generate_api_key, hash_api_key
from backend.app.auth.tenancy import (
    get_scoped_or_404,
    members_of,
    require_admin,
    require_owner,
    scope,
    target_organization,
)
from backend.app.db.context import Role, SecurityContext
from backend.app.db.filters import QueryFilter, contains, eq
from backend.app.db.repositories import SortKey, Store, UserRecord
from backend.app.errors import Forbidden, InvalidQuery, NotFound
from backend.app.models.common import ApiKeyIssued, Envelope, Page, changes_from
from backend.app.models.user import UserCreate, UserCreated, UserOut, UserUpdate
from backend.app.pagination import PageQuery, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

USER_SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "username": "username",
    "email": "email",
}

UserPageQuery = Annotated[
    PageQuery,
    Depends(page_query_params(USER_SORT_FIELDS, SortKey("created_at", descending=True))),
]


async def _directory_filter(
    ctx: SecurityContext, organization_id: UUID | None, store: Store, base: QueryFilter
) -> QueryFilter:
    """Scope a user-directory query, optionally to one named organization."""
    if organization_id is None:
        return scope(ctx, base)
    target = await target_organization(ctx, organization_id, store)
    return members_of(target, base)


async def _load_user(ctx: SecurityContext, user_id: UUID, store: Store) -> UserRecord:
    """Load a user the caller may see: themselves, or anyone in scope for admins."""
    if user_id == ctx.subject_id:
        user = await store.users.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    if not ctx.is_admin:
        raise Forbidden("Access denied: You can only access your own profile")
    return await get_scoped_or_404(store.users, ctx, user_id, resource="user")


@router.post("", response_model=UserCreated, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, ctx: CurrentContext, store: StoreDep) -> UserCreated:
    """Create a user and issue their first API key (admins only).

    Admins create users in their own organization and may not create
    superadmins. Superadmins must name the target organization for any
    tenant-scoped role.
    """
    require_admin(ctx)

    if body.role == Role.superadmin:
        if not ctx.is_superadmin:
            raise Forbidden("Access denied: Only superadmins can create superadmin users")
        organization_id = None
    else:
        organization_id = await target_organization(ctx, body.organization_id, store)

    api_key = generate_api_key()
    user = await store.users.insert(
        UserRecord(
            username=body.username,
            email=body.email,
            organization_id=organization_id,
            role=body.role,
            api_key_hash=hash_api_key(api_key),
            first_name=body.first_name,
            last_name=body.last_name,
        )
    )
    logger.info(
        "User created",
        extra={"structured": {"user_id": str(user.id), "role": user.role.value}},
    )
    return UserCreated(
        message="User created successfully", data=UserOut.model_validate(user), api_key=api_key
    )


@router.get("/profile", response_model=UserOut)
async def get_profile(ctx: CurrentContext, store: StoreDep) -> UserOut:
    """Profile of the calling user."""
    user_id = require_owner(ctx)
    user = await store.users.get(user_id)
    if user is None:
        raise NotFound("User not found")
    return UserOut.model_validate(user)


@router.post("/generate-api-key", response_model=ApiKeyIssued)
async def generate_user_api_key(ctx: CurrentContext, store: StoreDep) -> ApiKeyIssued:
    """Issue a new API key for the caller, replacing any previous one."""
    user_id = require_owner(ctx)

    api_key = generate_api_key()
    updated = await store.users.update(
        QueryFilter().where(eq("id", user_id)), {"api_key_hash": hash_api_key(api_key)}
    )
    if updated is None:
        raise NotFound("User not found")

    logger.info("User API key generated", extra={"structured": {"user_id": str(user_id)}})
    return ApiKeyIssued(message="API key generated successfully", api_key=api_key)


@router.get("/organization-users", response_model=Page[UserOut])
async def list_organization_users(
    ctx: CurrentContext,
    store: StoreDep,
    page_query: UserPageQuery,
    is_active: Annotated[str | None, Query(alias="isActive")] = None,
    organization_id: Annotated[UUID | None, Query(alias="organizationId")] = None,
) -> Page[UserOut]:
    """List users of the caller's organization (admins only)."""
    require_admin(ctx)

    base = QueryFilter()
    active = parse_bool_param(is_active, "isActive")
    if active is not None:
        base = base.where(eq("is_active", active))

    query = await _directory_filter(ctx, organization_id, store, base)
    result = await paginate(store.users, query, page_query)
    return Page[UserOut].from_result(result)


@router.get("/search", response_model=Page[UserOut])
async def search_users(
    ctx: CurrentContext,
    store: StoreDep,
    page_query: UserPageQuery,
    query: Annotated[str | None, Query()] = None,
    organization_id: Annotated[UUID | None, Query(alias="organizationId")] = None,
) -> Page[UserOut]:
    """Search users by username, email or name (admins only)."""
    require_admin(ctx)
    term = require_search_term(query)

    base = QueryFilter().where_any(
        contains("username", term),
        contains("email", term),
        contains("first_name", term),
        contains("last_name", term),
    )
    scoped = await _directory_filter(ctx, organization_id, store, base)
    result = await paginate(store.users, scoped, page_query)
    return Page[UserOut].from_result(result)


@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: UUID, ctx: CurrentContext, store: StoreDep) -> UserOut:
    user = await _load_user(ctx, user_id, store)
    return UserOut.model_validate(user)


@router.put("/{user_id}", response_model=Envelope[UserOut])
async def update_user(
    user_id: UUID, body: UserUpdate, ctx: CurrentContext, store: StoreDep
) -> Envelope[UserOut]:
    """Update a user.

    Anyone may edit their own profile fields; role and active status are
    only changed by admins, and only superadmins may grant superadmin.
    """
    user = await _load_user(ctx, user_id, store)

    changes = changes_from(body)
    if not ctx.is_admin:
        changes.pop("role", None)
        changes.pop("is_active", None)
    elif changes.get("role") == Role.superadmin and not ctx.is_superadmin:
        raise Forbidden("Access denied: Admins cannot create or promote users to superadmin")

    if (
        changes.get("role") not in (None, Role.superadmin)
        and user.organization_id is None
    ):
        raise InvalidQuery("A user without an organization can only be a superadmin")

    updated = await store.users.update(QueryFilter().where(eq("id", user.id)), changes)
    if updated is None:
        raise NotFound("User not found")

    return Envelope[UserOut](message="User updated successfully", data=UserOut.model_validate(updated))
