"""Typed query filters.

A QueryFilter is an AND of caller conditions, optional OR groups, and a
separate set of tenancy scope clauses. Caller conditions may never name a
scope field; scope clauses are only added through ``scoped_to`` (used by
backend.app.auth.tenancy), so a caller filter can narrow a query but never
widen or override its tenancy scope.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from backend.app.errors import InvalidQuery

SCOPE_FIELDS = frozenset({"organization_id", "owner_id"})


@dataclass(frozen=True)
class Condition:
    """Single predicate on a record field."""

    field: str
    op: str
    value: Any


def _check_field(field: str) -> None:
    if field in SCOPE_FIELDS:
        raise InvalidQuery(f"Filtering on '{field}' is not allowed")


def eq(field: str, value: Any) -> Condition:
    """Field equals value."""
    _check_field(field)
    return Condition(field, "eq", value)


def in_(field: str, values: Iterable[Any]) -> Condition:
    """Field is one of values."""
    _check_field(field)
    return Condition(field, "in", tuple(values))


def contains(field: str, text: str) -> Condition:
    """Case-insensitive substring match.

    On list fields (tags) matches when any element contains the text.
    """
    _check_field(field)
    return Condition(field, "contains", text)


def _matches_condition(obj: Any, cond: Condition) -> bool:
    actual = getattr(obj, cond.field, None)

    if cond.op == "eq":
        return actual == cond.value
    if cond.op == "in":
        return actual in cond.value
    if cond.op == "contains":
        if actual is None:
            return False
        needle = str(cond.value).lower()
        if isinstance(actual, (list, tuple)):
            return any(needle in str(item).lower() for item in actual)
        return needle in str(actual).lower()

    raise ValueError(f"Unknown filter operator: {cond.op}")


@dataclass(frozen=True)
class QueryFilter:
    """Immutable filter built by chaining ``where``/``where_any``."""

    conditions: tuple[Condition, ...] = ()
    any_groups: tuple[tuple[Condition, ...], ...] = ()
    scope: tuple[tuple[str, UUID], ...] = ()

    def where(self, *conditions: Condition) -> "QueryFilter":
        """AND the given conditions into the filter."""
        for cond in conditions:
            _check_field(cond.field)
        return QueryFilter(self.conditions + conditions, self.any_groups, self.scope)

    def where_any(self, *conditions: Condition) -> "QueryFilter":
        """AND a group of conditions of which at least one must hold."""
        for cond in conditions:
            _check_field(cond.field)
        if not conditions:
            return self
        return QueryFilter(self.conditions, self.any_groups + (conditions,), self.scope)

    def scoped_to(self, field: str, value: UUID) -> "QueryFilter":
        """AND a tenancy equality clause. Reserved for the tenancy guard."""
        if field not in SCOPE_FIELDS:
            raise ValueError(f"{field} is not a scope field")
        return QueryFilter(self.conditions, self.any_groups, self.scope + ((field, value),))

    @property
    def is_scoped(self) -> bool:
        return bool(self.scope)

    def scope_value(self, field: str) -> UUID | None:
        """Value of a scope clause, if present."""
        for name, value in self.scope:
            if name == field:
                return value
        return None

    def matches(self, obj: Any) -> bool:
        """Evaluate the filter against a record in Python."""
        for field, value in self.scope:
            if getattr(obj, field, None) != value:
                return False

        if not all(_matches_condition(obj, cond) for cond in self.conditions):
            return False

        return all(
            any(_matches_condition(obj, cond) for cond in group) for group in self.any_groups
        )
