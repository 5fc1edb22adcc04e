"""Query DSL: immutable TableQuery and its translation to parameterized SQL.

Translation is a single depth-first walk that appends to the parameter list
at the same moment it emits each ``?``, so placeholder order and parameter
order cannot drift apart.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, replace
from typing import Any, Generic, NamedTuple, Protocol, TypeVar

from litemap.codec import encode_operand, kind_of_value, to_storage
from litemap.errors import MappingError, RecordNotFoundError, TranslationError
from litemap.filters import (
    COMPARISON_OPS,
    SUPPORTED_OPS,
    Conjunction,
    Disjunction,
    FieldProxy,
    FilterExpression,
    Negation,
    OrderBy,
    Predicate,
    column_name_of,
)
from litemap.schema import ColumnSpec, EntityShape, quote_identifier, shape_of

E = TypeVar("E")

_SQL_COMPARISON = {"==": "=", "!=": "!=", ">": ">", ">=": ">=", "<": "<", "<=": "<="}
_LIKE_ESCAPE = "\\"


class PreparedStatement(NamedTuple):
    """SQL text plus its ordered bound parameters."""

    sql: str
    params: list[Any]


class QuerySource(Protocol):
    """What a bound TableQuery needs to run itself."""

    def query(self, target: Any, sql: str, *params: Any) -> Iterator[Any]: ...

    def scalar(self, sql: str, *params: Any) -> Any: ...

    def execute(self, sql: str, *params: Any) -> int: ...


def _resolve_column(shape: EntityShape, ref: str) -> ColumnSpec:
    col = shape.find_column(ref)
    if col is None:
        raise TranslationError(f"Unknown column '{ref}' for table '{shape.table}'")
    return col


def _encode_operand(value: Any, col: ColumnSpec) -> Any:
    if isinstance(value, FieldProxy):
        raise TranslationError(
            f"Column-to-column comparison on '{col.column}' is not supported; "
            "compare against a value"
        )
    if value is not None and kind_of_value(value) is None:
        raise TranslationError(
            f"Unsupported operand type {type(value).__name__} for column '{col.column}'"
        )
    try:
        return to_storage(value, col.declared)
    except MappingError:
        # e.g. a float compared against an INTEGER column
        return encode_operand(value)


def _like_pattern(value: Any, op: str, col: ColumnSpec) -> tuple[str, bool]:
    if not isinstance(value, str):
        raise TranslationError(
            f"{op} on column '{col.column}' requires a str operand, got {type(value).__name__}"
        )
    escaped = any(ch in value for ch in ("%", "_", _LIKE_ESCAPE))
    if escaped:
        value = (
            value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
            .replace("%", _LIKE_ESCAPE + "%")
            .replace("_", _LIKE_ESCAPE + "_")
        )
    if op == "STARTSWITH":
        return f"{value}%", escaped
    if op == "ENDSWITH":
        return f"%{value}", escaped
    return f"%{value}%", escaped


def _compile_predicate(expr: Predicate, shape: EntityShape, params: list[Any]) -> str:
    if expr.op not in SUPPORTED_OPS:
        raise TranslationError(f"Unsupported operator '{expr.op}' on column '{expr.column}'")
    col = _resolve_column(shape, expr.column)
    ident = quote_identifier(col.column)
    op = expr.op

    if op == "IS_NULL" or (op == "==" and expr.value is None):
        return f"{ident} IS NULL"
    if op == "IS_NOT_NULL" or (op == "!=" and expr.value is None):
        return f"{ident} IS NOT NULL"
    if op == "IN":
        if isinstance(expr.value, (str, bytes)) or not hasattr(expr.value, "__iter__"):
            raise TranslationError(
                f"IN on column '{col.column}' requires a collection operand, "
                f"got {type(expr.value).__name__}"
            )
        values = [_encode_operand(v, col) for v in expr.value]
        params.extend(values)
        return f"{ident} IN ({', '.join('?' for _ in values)})"
    if op in COMPARISON_OPS:
        params.append(_encode_operand(expr.value, col))
        return f"{ident} {_SQL_COMPARISON[op]} ?"

    pattern, escaped = _like_pattern(expr.value, op, col)
    params.append(pattern)
    if escaped:
        return f"{ident} LIKE ? ESCAPE '{_LIKE_ESCAPE}'"
    return f"{ident} LIKE ?"


def compile_filter(expr: FilterExpression, shape: EntityShape, params: list[Any]) -> str:
    """Compile a filter tree into a WHERE fragment, appending its parameters in order."""
    if isinstance(expr, Predicate):
        return _compile_predicate(expr, shape, params)
    if isinstance(expr, (Conjunction, Disjunction)):
        if not expr.children:
            return "1" if isinstance(expr, Conjunction) else "0"
        joiner = " AND " if isinstance(expr, Conjunction) else " OR "
        return "(" + joiner.join(compile_filter(c, shape, params) for c in expr.children) + ")"
    if isinstance(expr, Negation):
        return f"NOT ({compile_filter(expr.child, shape, params)})"
    raise TranslationError(f"Unsupported expression node: {type(expr).__name__}")


@dataclass(frozen=True)
class TableQuery(Generic[E]):
    """Immutable query over one table. Every combinator returns a new query.

    A query obtained from ``connection.table(cls)`` is bound to that
    connection and can run itself with ``to_list()``, ``first()``,
    ``count()`` and friends; an unbound query can still be compiled.
    """

    entity_cls: type[E]
    shape: EntityShape
    filter: FilterExpression | None = None
    orderings: tuple[OrderBy, ...] = ()
    limit_count: int | None = None
    offset_count: int | None = None
    columns: tuple[str, ...] = ()
    source: QuerySource | None = None

    @classmethod
    def of(
        cls,
        entity_cls: type[E],
        source: QuerySource | None = None,
        *,
        implicit_primary_key: str | None = "Id",
    ) -> TableQuery[E]:
        """Build an unbound (or explicitly bound) query over ``entity_cls``.

        ``implicit_primary_key`` follows the same rule as
        ``LitemapConfig.implicit_primary_key``; pass the connection's value
        so the derived shape matches the one its ``table()`` would use.
        """
        shape = shape_of(entity_cls, implicit_primary_key=implicit_primary_key)
        return cls(entity_cls=entity_cls, shape=shape, source=source)

    # Combinators

    def where(self, expr: FilterExpression) -> TableQuery[E]:
        if not isinstance(expr, FilterExpression):
            raise TranslationError(f"where() expects a filter expression, got {expr!r}")
        combined = expr if self.filter is None else self.filter & expr
        return replace(self, filter=combined)

    def order_by(self, ref: Any) -> TableQuery[E]:
        if isinstance(ref, OrderBy):
            return replace(self, orderings=(ref,))
        return replace(self, orderings=(OrderBy(column_name_of(ref)),))

    def order_by_desc(self, ref: Any) -> TableQuery[E]:
        return replace(self, orderings=(OrderBy(column_name_of(ref), descending=True),))

    def then_by(self, ref: Any) -> TableQuery[E]:
        if isinstance(ref, OrderBy):
            return replace(self, orderings=self.orderings + (ref,))
        return replace(self, orderings=self.orderings + (OrderBy(column_name_of(ref)),))

    def then_by_desc(self, ref: Any) -> TableQuery[E]:
        ordering = OrderBy(column_name_of(ref), descending=True)
        return replace(self, orderings=self.orderings + (ordering,))

    def limit(self, n: int) -> TableQuery[E]:
        if n < 0:
            raise ValueError(f"limit must be non-negative, got {n}")
        return replace(self, limit_count=n)

    take = limit

    def skip(self, n: int) -> TableQuery[E]:
        if n < 0:
            raise ValueError(f"skip must be non-negative, got {n}")
        return replace(self, offset_count=n)

    def select(self, *refs: Any) -> TableQuery[E]:
        return replace(self, columns=tuple(column_name_of(r) for r in refs))

    def bind(self, source: QuerySource) -> TableQuery[E]:
        return replace(self, source=source)

    # Translation

    def compile(self) -> PreparedStatement:
        return compile_select(self)

    # Terminals

    def _require_source(self) -> QuerySource:
        if self.source is None:
            raise TypeError("TableQuery is not bound to a connection; use connection.table()")
        return self.source

    def __iter__(self) -> Iterator[E]:
        stmt = self.compile()
        return self._require_source().query(self.entity_cls, stmt.sql, *stmt.params)

    def to_list(self) -> list[E]:
        return list(iter(self))

    def first_or_default(self, default: E | None = None) -> E | None:
        results = self.limit(1).to_list()
        return results[0] if results else default

    def first(self) -> E:
        results = self.limit(1).to_list()
        if not results:
            raise RecordNotFoundError(self.shape.table, detail=f"No rows in '{self.shape.table}'")
        return results[0]

    def element_at(self, index: int) -> E:
        return self.skip(index).first()

    def count(self) -> int:
        stmt = compile_count(self)
        return int(self._require_source().scalar(stmt.sql, *stmt.params))

    def delete(self) -> int:
        stmt = compile_delete(self)
        return self._require_source().execute(stmt.sql, *stmt.params)


def _where_clause(query: TableQuery[Any], params: list[Any]) -> str:
    if query.filter is None:
        return ""
    return " WHERE " + compile_filter(query.filter, query.shape, params)


def compile_select(query: TableQuery[Any]) -> PreparedStatement:
    """Translate a TableQuery into SELECT text with positional parameters."""
    shape = query.shape
    params: list[Any] = []

    if query.columns:
        select_list = ", ".join(
            quote_identifier(_resolve_column(shape, c).column) for c in query.columns
        )
    else:
        select_list = "*"
    sql = f"SELECT {select_list} FROM {quote_identifier(shape.table)}"
    sql += _where_clause(query, params)

    if query.orderings:
        terms = [
            f"{quote_identifier(_resolve_column(shape, o.column).column)} "
            f"{'DESC' if o.descending else 'ASC'}"
            for o in query.orderings
        ]
        sql += " ORDER BY " + ", ".join(terms)

    if query.limit_count is not None:
        sql += " LIMIT ?"
        params.append(query.limit_count)
    elif query.offset_count is not None:
        sql += " LIMIT -1"
    if query.offset_count is not None:
        sql += " OFFSET ?"
        params.append(query.offset_count)

    return PreparedStatement(sql, params)


def compile_count(query: TableQuery[Any]) -> PreparedStatement:
    """Translate a TableQuery into a COUNT(*) honoring its filter, limit and offset."""
    if query.limit_count is not None or query.offset_count is not None:
        inner = compile_select(replace(query, columns=(), orderings=()))
        return PreparedStatement(f"SELECT COUNT(*) FROM ({inner.sql})", inner.params)
    params: list[Any] = []
    sql = f"SELECT COUNT(*) FROM {quote_identifier(query.shape.table)}"
    sql += _where_clause(query, params)
    return PreparedStatement(sql, params)


def compile_delete(query: TableQuery[Any]) -> PreparedStatement:
    """Translate a TableQuery into a DELETE of every matching row."""
    if query.limit_count is not None or query.offset_count is not None:
        raise TranslationError("DELETE does not support limit/skip")
    params: list[Any] = []
    sql = f"DELETE FROM {quote_identifier(query.shape.table)}"
    sql += _where_clause(query, params)
    return PreparedStatement(sql, params)
