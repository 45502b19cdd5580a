"""Shared query-parameter dependencies for list endpoints.

Parameters arrive as raw strings so that malformed values surface as
InvalidQuery (400) from the pagination engine instead of FastAPI's 422.
"""

from collections.abc import Callable, Mapping
from typing import Annotated

from fastapi import Query, Request

from backend.app.config import Settings, get_settings
from backend.app.db.repositories import SortKey
from backend.app.errors import InvalidQuery
from backend.app.pagination import DEFAULT_SORT, DEFAULT_SORT_FIELDS, PageQuery, parse_page_query


def _settings_for(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def page_query_params(
    sort_fields: Mapping[str, str] = DEFAULT_SORT_FIELDS,
    default_sort: SortKey = DEFAULT_SORT,
) -> Callable[..., PageQuery]:
    """Build a dependency parsing ``page``, ``limit`` and ``sort``.

    Args:
        sort_fields: API sort fields allowed on the endpoint
        default_sort: Sort used when none (or an unknown field) is requested

    Returns:
        FastAPI dependency producing a PageQuery
    """

    def dependency(
        request: Request,
        page: Annotated[str | None, Query(description="1-based page number")] = None,
        limit: Annotated[str | None, Query(description="Page size")] = None,
        sort: Annotated[str | None, Query(description="field[,asc|desc]")] = None,
    ) -> PageQuery:
        settings = _settings_for(request)
        return parse_page_query(
            page,
            limit,
            sort,
            sort_fields=sort_fields,
            default_sort=default_sort,
            default_limit=settings.pagination_default_limit,
            max_limit=settings.pagination_max_limit,
        )

    return dependency


def parse_bool_param(raw: str | None, name: str) -> bool | None:
    """Parse an optional ``true``/``false`` query parameter."""
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise InvalidQuery(f"'{name}' must be 'true' or 'false'")


def require_search_term(raw: str | None) -> str:
    """Validate the ``query`` parameter of search endpoints."""
    if raw is None or not raw.strip():
        raise InvalidQuery("Search query parameter must be a non-empty string")
    return raw.strip()
