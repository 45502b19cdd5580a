"""Tenancy guard.

Every handler that reads or mutates a tenant resource passes its filter
through ``scope`` before querying. A scoped lookup miss is reported as
NotFound whether the record is absent or belongs to another tenant, so the
API never confirms that someone else's resource exists.
"""

from typing import TypeVar
from uuid import UUID

from backend.app.db.context import Role, SecurityContext
from backend.app.db.filters import QueryFilter, eq
from backend.app.db.repositories import Collection, Store
from backend.app.errors import Forbidden, InvalidQuery, NotFound, OwnerRequired
from backend.app.utils.metrics import tenancy_not_found_total

T = TypeVar("T")


def scope(
    ctx: SecurityContext, base: QueryFilter | None = None, *, owner_scoped: bool = False
) -> QueryFilter:
    """Confine a filter to the caller's tenancy.

    Args:
        ctx: Security context of the request
        base: Caller filter (may only narrow the result)
        owner_scoped: Whether the collection is owned by individual users;
            plain users are then further confined to their own records

    Returns:
        Filter with organization (and owner) clauses ANDed in
    """
    query = base or QueryFilter()

    if ctx.is_superadmin:
        # Cross-tenant unless the superadmin chose an organization
        if ctx.organization_id is not None:
            query = query.scoped_to("organization_id", ctx.organization_id)
        return query

    if ctx.organization_id is None:
        raise Forbidden("Organization context is required")

    query = query.scoped_to("organization_id", ctx.organization_id)

    if owner_scoped and ctx.role == Role.user and ctx.subject_id is not None:
        query = query.scoped_to("owner_id", ctx.subject_id)

    return query


async def get_scoped_or_404(
    collection: Collection[T],
    ctx: SecurityContext,
    record_id: UUID,
    *,
    resource: str,
    owner_scoped: bool = False,
    extra: QueryFilter | None = None,
) -> T:
    """Load one record by ID inside the caller's scope.

    Raises:
        NotFound: If the record is missing or outside the scope
    """
    base = (extra or QueryFilter()).where(eq("id", record_id))
    query = scope(ctx, base, owner_scoped=owner_scoped)
    record = await collection.find_one(query)
    if record is None:
        tenancy_not_found_total.labels(resource=resource).inc()
        raise NotFound(f"{resource.capitalize()} not found")
    return record


def require_owner(ctx: SecurityContext) -> UUID:
    """Return the acting user ID, rejecting organization-level contexts."""
    if ctx.subject_id is None:
        raise OwnerRequired()
    return ctx.subject_id


def require_admin(ctx: SecurityContext) -> None:
    """Allow admins and superadmins only."""
    if not ctx.is_admin:
        raise Forbidden("Access denied: Admin privileges required")


def require_superadmin(ctx: SecurityContext) -> None:
    """Allow superadmins only."""
    if not ctx.is_superadmin:
        raise Forbidden("Access denied: Superadmin privileges required")


async def target_organization(
    ctx: SecurityContext, requested: UUID | None, store: Store
) -> UUID:
    """Decide which organization a newly created resource belongs to.

    Tenant-scoped callers always write into their own organization; naming
    any other organization is treated like an unknown one. Superadmins must
    name an existing organization unless their context already carries one.

    Raises:
        NotFound: Requested organization is unknown or outside the scope
        InvalidQuery: Superadmin without any target organization
    """
    if not ctx.is_superadmin:
        if ctx.organization_id is None:
            raise Forbidden("Organization context is required")
        if requested is not None and requested != ctx.organization_id:
            tenancy_not_found_total.labels(resource="organization").inc()
            raise NotFound("Organization not found")
        return ctx.organization_id

    organization_id = requested or ctx.organization_id
    if organization_id is None:
        raise InvalidQuery("organizationId is required for superadmin requests")

    if await store.organizations.get(organization_id) is None:
        raise NotFound("Organization not found")
    return organization_id


def members_of(organization_id: UUID, base: QueryFilter | None = None) -> QueryFilter:
    """Filter confined to one organization, for organization-management reads.

    Callers must already have authorized access to ``organization_id``.
    """
    return (base or QueryFilter()).scoped_to("organization_id", organization_id)
