"""Common API model types shared across all resources."""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from backend.app.pagination import PageResult

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class StatusMessage(ApiModel):
    """Plain acknowledgement body."""

    message: str


class Page(ApiModel, Generic[T]):
    """Paginated list envelope."""

    results: list[T]
    page: int
    limit: int
    total_results: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def from_result(cls, result: PageResult[Any]) -> "Page[T]":
        """Build the envelope from an engine result, converting each record."""
        return cls.model_validate(
            {
                "results": result.items,
                "page": result.page,
                "limit": result.limit,
                "total_results": result.total_items,
                "total_pages": result.total_pages,
                "has_next": result.has_next,
                "has_prev": result.has_prev,
            },
            from_attributes=True,
        )


def changes_from(body: BaseModel) -> dict[str, Any]:
    """Fields explicitly provided in an update body, keyed by record field name.

    Explicit nulls are dropped; no updatable field is nullable on purpose.
    """
    return {
        name: value
        for name, value in body.model_dump(exclude_unset=True).items()
        if value is not None
    }


class Envelope(ApiModel, Generic[T]):
    """Acknowledgement carrying the affected resource."""

    message: str
    data: T


class ApiKeyIssued(ApiModel):
    """Freshly issued API key; the plaintext is shown only here."""

    message: str
    api_key: str
