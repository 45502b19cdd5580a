"""Pagination engine shared by all list endpoints.

Converts raw page/limit/sort parameters into a bounded, deterministic page
request and executes it as two independent reads (count, then fetch). The
pair is not transactional: the total is best-effort and a page boundary can
shift by the number of writes landing between the two reads.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Generic, TypeVar

from backend.app.db.filters import QueryFilter
from backend.app.db.repositories import Collection, SortKey
from backend.app.errors import InvalidQuery

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

# API sort field -> record field
DEFAULT_SORT_FIELDS: Mapping[str, str] = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
DEFAULT_SORT = SortKey("created_at", descending=True)
TIE_BREAKER = SortKey("id")


@dataclass(frozen=True)
class PageQuery:
    """Validated page request."""

    page: int
    limit: int
    sort: tuple[SortKey, ...]

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class PageResult(Generic[T]):
    """One page of results plus navigation metadata."""

    items: list[T]
    page: int
    limit: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool


def _parse_int(raw: str, name: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as e:
        raise InvalidQuery(f"'{name}' must be an integer") from e


def parse_sort(
    raw: str | None,
    sort_fields: Mapping[str, str] = DEFAULT_SORT_FIELDS,
    default: SortKey = DEFAULT_SORT,
) -> tuple[SortKey, ...]:
    """Parse ``field[,asc|desc]`` into sort keys.

    Unknown fields fall back to the default sort; an unknown direction is
    rejected. The ID tie-breaker keeps page boundaries deterministic.
    """
    primary = default

    if raw and raw.strip():
        name, _, direction = raw.partition(",")
        direction = direction.strip().lower()
        if direction not in ("", "asc", "desc"):
            raise InvalidQuery("Sort direction must be 'asc' or 'desc'")

        field = sort_fields.get(name.strip())
        if field is not None:
            primary = SortKey(field, descending=direction == "desc")

    if primary.field == TIE_BREAKER.field:
        return (primary,)
    return (primary, TIE_BREAKER)


def parse_page_query(
    page: str | None = None,
    limit: str | None = None,
    sort: str | None = None,
    *,
    sort_fields: Mapping[str, str] = DEFAULT_SORT_FIELDS,
    default_sort: SortKey = DEFAULT_SORT,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> PageQuery:
    """Validate raw query parameters into a PageQuery.

    Args:
        page: 1-based page; values below 1 are coerced to 1
        limit: Page size; must be positive, clamped to ``max_limit``
        sort: ``field[,asc|desc]`` using API field names
        sort_fields: Allowed API sort fields mapped to record fields
        default_sort: Sort used when ``sort`` is absent or unrecognized
        default_limit: Page size when ``limit`` is absent
        max_limit: Upper bound for the page size

    Raises:
        InvalidQuery: Non-integer page/limit, non-positive limit, or bad
            sort direction
    """
    page_number = DEFAULT_PAGE if page is None or page == "" else _parse_int(page, "page")
    page_number = max(1, page_number)

    if limit is None or limit == "":
        page_size = default_limit
    else:
        page_size = _parse_int(limit, "limit")
        if page_size < 1:
            raise InvalidQuery("'limit' must be a positive integer")
    page_size = min(page_size, max_limit)

    return PageQuery(
        page=page_number,
        limit=page_size,
        sort=parse_sort(sort, sort_fields, default_sort),
    )


async def paginate(
    collection: Collection[T], query: QueryFilter, page_query: PageQuery
) -> PageResult[T]:
    """Execute a page request against an already scoped filter.

    A page past the end yields no items with accurate metadata.
    """
    total = await collection.count(query)
    total_pages = math.ceil(total / page_query.limit)

    # Past the end nothing is fetched, so huge page numbers never reach OFFSET
    items: list[T] = []
    if page_query.page <= total_pages:
        items = await collection.find(
            query, sort=page_query.sort, skip=page_query.skip, limit=page_query.limit
        )

    return PageResult(
        items=items,
        page=page_query.page,
        limit=page_query.limit,
        total_items=total,
        total_pages=total_pages,
        has_next=page_query.page < total_pages,
        has_prev=page_query.page > 1,
    )
