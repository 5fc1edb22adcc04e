"""Filter and ordering expression types for the litemap query DSL.

Every node is a frozen dataclass. Combining nodes with ``&``, ``|`` and ``~``
builds new trees that share the unchanged subtrees.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

NULL_EQ_ERROR = "Use .is_null() instead of == None in litemap query expressions."
NULL_NE_ERROR = "Use .is_not_null() instead of != None in litemap query expressions."

COMPARISON_OPS = ("==", "!=", ">", ">=", "<", "<=")
TEXT_OPS = ("STARTSWITH", "ENDSWITH", "CONTAINS")
NULL_OPS = ("IS_NULL", "IS_NOT_NULL")
SUPPORTED_OPS = COMPARISON_OPS + TEXT_OPS + NULL_OPS + ("IN",)


class FilterExpression:
    """Base class for filter expressions."""

    def __and__(self, other: FilterExpression) -> Conjunction:
        if isinstance(self, Conjunction):
            return Conjunction(self.children + (other,))
        return Conjunction((self, other))

    def __or__(self, other: FilterExpression) -> Disjunction:
        if isinstance(self, Disjunction):
            return Disjunction(self.children + (other,))
        return Disjunction((self, other))

    def __invert__(self) -> Negation:
        return Negation(self)


@dataclass(frozen=True)
class Predicate(FilterExpression):
    """A comparison between a column reference and an operand.

    ``column`` is an attribute or column name; it is resolved against the
    entity shape when the query is compiled.
    """

    column: str
    op: str
    value: Any = None


@dataclass(frozen=True)
class Conjunction(FilterExpression):
    """All children must hold."""

    children: tuple[FilterExpression, ...]


@dataclass(frozen=True)
class Disjunction(FilterExpression):
    """At least one child must hold."""

    children: tuple[FilterExpression, ...]


@dataclass(frozen=True)
class Negation(FilterExpression):
    child: FilterExpression


@dataclass(frozen=True)
class OrderBy:
    column: str
    descending: bool = False


class FieldProxy:
    """Proxy that generates filter and ordering expressions from field operations."""

    def __init__(self, column: str) -> None:
        self._column = column

    @property
    def column(self) -> str:
        return self._column

    def __eq__(self, other: object) -> Predicate:  # type: ignore[override]
        if other is None:
            raise TypeError(NULL_EQ_ERROR)
        return Predicate(self._column, "==", other)

    def __ne__(self, other: object) -> Predicate:  # type: ignore[override]
        if other is None:
            raise TypeError(NULL_NE_ERROR)
        return Predicate(self._column, "!=", other)

    def __gt__(self, other: Any) -> Predicate:
        return Predicate(self._column, ">", other)

    def __ge__(self, other: Any) -> Predicate:
        return Predicate(self._column, ">=", other)

    def __lt__(self, other: Any) -> Predicate:
        return Predicate(self._column, "<", other)

    def __le__(self, other: Any) -> Predicate:
        return Predicate(self._column, "<=", other)

    __hash__ = None  # type: ignore[assignment]

    def startswith(self, prefix: str) -> Predicate:
        return Predicate(self._column, "STARTSWITH", prefix)

    def endswith(self, suffix: str) -> Predicate:
        return Predicate(self._column, "ENDSWITH", suffix)

    def contains(self, substring: str) -> Predicate:
        return Predicate(self._column, "CONTAINS", substring)

    def in_(self, values: Iterable[Any]) -> Predicate:
        return Predicate(self._column, "IN", tuple(values))

    def is_null(self) -> Predicate:
        return Predicate(self._column, "IS_NULL")

    def is_not_null(self) -> Predicate:
        return Predicate(self._column, "IS_NOT_NULL")

    def asc(self) -> OrderBy:
        return OrderBy(self._column)

    def desc(self) -> OrderBy:
        return OrderBy(self._column, descending=True)

    def __repr__(self) -> str:
        return f"FieldProxy({self._column!r})"


def col(name: str) -> FieldProxy:
    """Reference a column by name, for targets without Field descriptors."""
    return FieldProxy(name)


def column_name_of(ref: Any) -> str:
    """Extract a column reference from a FieldProxy, OrderBy or plain string."""
    if isinstance(ref, FieldProxy):
        return ref.column
    if isinstance(ref, str):
        return ref
    raise TypeError(f"Cannot use {ref!r} as a column reference")
