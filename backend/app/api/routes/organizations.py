"""Organization management endpoints."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from backend.app.api.auth import CurrentContext, StoreDep
from backend.app.api.params import page_query_params, parse_bool_param
from backend.app.auth.api_keys import generate_api_key, hash_api_key
from backend.app.auth.tenancy import members_of, require_admin, require_superadmin
from backend.app.db.context import Role, SecurityContext
from backend.app.db.filters import QueryFilter, eq
from backend.app.db.repositories import OrganizationRecord, SortKey, Store
from backend.app.errors import Conflict, Forbidden, NotFound
from backend.app.models.common import ApiKeyIssued, Envelope, Page, StatusMessage, changes_from
from backend.app.models.organization import (
    OrganizationCreate,
    OrganizationCreated,
    OrganizationDetail,
    OrganizationOut,
    OrganizationUpdate,
)
from backend.app.pagination import PageQuery, paginate
from backend.app.utils.metrics import tenancy_not_found_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations", tags=["organizations"])

ORGANIZATION_SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "name": "name",
}

OrganizationPageQuery = Annotated[
    PageQuery,
    Depends(page_query_params(ORGANIZATION_SORT_FIELDS, SortKey("created_at", descending=True))),
]


async def _load_organization(
    ctx: SecurityContext, organization_id: UUID, store: Store
) -> OrganizationRecord:
    """Load an organization the caller may see.

    Tenant-scoped callers only see their own organization; any other ID is
    reported as missing.
    """
    organization = None
    if ctx.is_superadmin or organization_id == ctx.organization_id:
        organization = await store.organizations.get(organization_id)

    if organization is None:
        tenancy_not_found_total.labels(resource="organization").inc()
        raise NotFound("Organization not found")
    return organization


@router.post("", response_model=OrganizationCreated, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrganizationCreate, ctx: CurrentContext, store: StoreDep
) -> OrganizationCreated:
    """Create an organization and issue its API key (superadmin only).

    Returns:
        The organization plus the plaintext key, which is not retrievable later
    """
    require_superadmin(ctx)

    api_key = generate_api_key()
    organization = await store.organizations.insert(
        OrganizationRecord(
            name=body.name,
            api_key_hash=hash_api_key(api_key),
            contact_email=body.contact_email,
            description=body.description,
            settings=body.settings,
        )
    )
    logger.info(
        "Organization created",
        extra={"structured": {"organization_id": str(organization.id)}},
    )
    return OrganizationCreated(
        message="Organization created successfully",
        data=OrganizationOut.model_validate(organization),
        api_key=api_key,
    )


@router.get("", response_model=Page[OrganizationOut])
async def list_organizations(
    ctx: CurrentContext,
    store: StoreDep,
    page_query: OrganizationPageQuery,
    is_active: Annotated[str | None, Query(alias="isActive")] = None,
) -> Page[OrganizationOut]:
    """List all organizations (superadmin only)."""
    require_superadmin(ctx)

    query = QueryFilter()
    active = parse_bool_param(is_active, "isActive")
    if active is not None:
        query = query.where(eq("is_active", active))

    result = await paginate(store.organizations, query, page_query)
    return Page[OrganizationOut].from_result(result)


@router.get("/{organization_id}", response_model=OrganizationDetail)
async def get_organization(
    organization_id: UUID, ctx: CurrentContext, store: StoreDep
) -> OrganizationDetail:
    """Get an organization with its user count."""
    organization = await _load_organization(ctx, organization_id, store)
    user_count = await store.users.count(members_of(organization.id))

    return OrganizationDetail.model_validate(
        {**OrganizationOut.model_validate(organization).model_dump(), "user_count": user_count}
    )


@router.put("/{organization_id}", response_model=Envelope[OrganizationOut])
async def update_organization(
    organization_id: UUID, body: OrganizationUpdate, ctx: CurrentContext, store: StoreDep
) -> Envelope[OrganizationOut]:
    """Update an organization (its admins or a superadmin); settings are merged."""
    require_admin(ctx)
    organization = await _load_organization(ctx, organization_id, store)

    changes = changes_from(body)
    if ctx.role == Role.admin and changes.get("is_active") is False:
        raise Forbidden("Admins cannot deactivate their own organization")
    if "settings" in changes:
        changes["settings"] = {**organization.settings, **changes["settings"]}

    updated = await store.organizations.update(
        QueryFilter().where(eq("id", organization.id)), changes
    )
    if updated is None:
        raise NotFound("Organization not found")

    return Envelope[OrganizationOut](
        message="Organization updated successfully", data=OrganizationOut.model_validate(updated)
    )


@router.delete("/{organization_id}", response_model=StatusMessage)
async def delete_organization(
    organization_id: UUID, ctx: CurrentContext, store: StoreDep
) -> StatusMessage:
    """Delete an organization that has no active users (superadmin only).

    Deactivated members, chats and messages go with it.
    """
    require_superadmin(ctx)
    organization = await _load_organization(ctx, organization_id, store)

    active_users = await store.users.count(
        members_of(organization.id, QueryFilter().where(eq("is_active", True)))
    )
    if active_users:
        raise Conflict(
            f"Cannot delete organization with {active_users} active user(s). "
            "Please deactivate or reassign users first."
        )

    await store.delete_organization(organization.id)
    logger.info(
        "Organization deleted",
        extra={"structured": {"organization_id": str(organization.id)}},
    )
    return StatusMessage(message="Organization deleted successfully")


@router.post("/{organization_id}/regenerate-key", response_model=ApiKeyIssued)
async def regenerate_api_key(
    organization_id: UUID, ctx: CurrentContext, store: StoreDep
) -> ApiKeyIssued:
    """Replace the organization's API key; the old key stops working at once."""
    require_admin(ctx)
    organization = await _load_organization(ctx, organization_id, store)

    api_key = generate_api_key()
    await store.organizations.update(
        QueryFilter().where(eq("id", organization.id)), {"api_key_hash": hash_api_key(api_key)}
    )
    logger.info(
        "Organization API key regenerated",
        extra={"structured": {"organization_id": str(organization.id)}},
    )
    return ApiKeyIssued(message="API key regenerated successfully", api_key=api_key)
