"""Schema mapper: derives table shapes from entity descriptors and emits DDL."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field, replace
from typing import Any

from litemap.codec import DeclaredType, ValueKind, resolve_type, to_storage
from litemap.errors import MappingError, SchemaError
from litemap.types import EntityDescriptor, FieldDescriptor, describe


@dataclass(frozen=True)
class ColumnSpec:
    """One derived column.

    ``nullable`` is the SQL constraint (``NOT NULL`` when False); the
    annotation's own optionality lives on ``declared``.
    """

    name: str
    column: str
    declared: DeclaredType
    nullable: bool = True
    unique: bool = False
    default: Any = None
    primary_key: bool = False
    auto_increment: bool = False
    collation: str | None = None
    required: bool = True

    @property
    def kind(self) -> ValueKind:
        return self.declared.kind


@dataclass(frozen=True)
class IndexSpec:
    name: str
    columns: tuple[str, ...]
    unique: bool = False


@dataclass(frozen=True)
class EntityShape:
    """Table metadata derived once per entity type."""

    table: str
    columns: tuple[ColumnSpec, ...]
    primary_key: ColumnSpec | None = None
    auto_increment: bool = False
    indices: tuple[IndexSpec, ...] = ()
    _lookup: dict[str, ColumnSpec] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        lookup: dict[str, ColumnSpec] = {}
        for c in self.columns:
            lookup[c.column.lower()] = c
            lookup.setdefault(c.name.lower(), c)
        object.__setattr__(self, "_lookup", lookup)

    def find_column(self, ref: str) -> ColumnSpec | None:
        """Resolve an attribute or column name, case-insensitively."""
        return self._lookup.get(ref.lower())

    @property
    def insert_columns(self) -> tuple[ColumnSpec, ...]:
        """Columns written by INSERT (the engine assigns auto-increment keys)."""
        return tuple(c for c in self.columns if not c.auto_increment)


def quote_identifier(name: str) -> str:
    """Double-quote an SQL identifier."""
    return '"' + name.replace('"', '""') + '"'


def _derive_column(desc: FieldDescriptor, table: str) -> ColumnSpec:
    try:
        declared = resolve_type(desc.annotation)
    except MappingError as e:
        raise MappingError(f"{table}.{desc.name}: {e}") from e

    default = None
    if not desc.required and desc.default is not None:
        try:
            to_storage(desc.default, declared)
        except MappingError as e:
            raise MappingError(f"{table}.{desc.name}: invalid default: {e}") from e
        default = desc.default

    return ColumnSpec(
        name=desc.name,
        column=desc.column_name,
        declared=declared,
        nullable=not (desc.not_null or desc.primary_key),
        unique=desc.unique,
        default=default,
        primary_key=desc.primary_key,
        auto_increment=desc.auto_increment,
        collation=desc.collation,
        required=desc.required,
    )


def _derive_indices(
    table: str, columns: list[ColumnSpec], descs: tuple[FieldDescriptor, ...]
) -> tuple[IndexSpec, ...]:
    groups: dict[str, list[ColumnSpec]] = {}
    uniqueness: dict[str, set[bool]] = {}
    for col, desc in zip(columns, descs):
        if not (desc.index or desc.unique):
            continue
        name = desc.index if isinstance(desc.index, str) else f"{table}_{col.column}"
        groups.setdefault(name, []).append(col)
        uniqueness.setdefault(name, set()).add(desc.unique)

    indices = []
    for name, cols in groups.items():
        if len(uniqueness[name]) > 1:
            raise SchemaError(f"Index '{name}' on '{table}' mixes unique and non-unique columns")
        indices.append(
            IndexSpec(
                name=name,
                columns=tuple(c.column for c in cols),
                unique=uniqueness[name].pop(),
            )
        )
    return tuple(indices)


def derive_shape(
    descriptor: EntityDescriptor, *, implicit_primary_key: str | None = "Id"
) -> EntityShape:
    """Derive an EntityShape from a descriptor.

    An explicitly marked primary key wins. Otherwise an integer field named
    ``implicit_primary_key`` (case-insensitive) becomes an auto-increment
    primary key; pass None to disable that rule. Tables without a primary
    key are valid.
    """
    table = descriptor.name
    descs = descriptor.fields

    marked = [d.name for d in descs if d.primary_key]
    if len(marked) > 1:
        raise SchemaError(f"Entity '{table}' has multiple primary keys: {marked}")

    columns: list[ColumnSpec] = []
    seen: dict[str, str] = {}
    for desc in descs:
        col = _derive_column(desc, table)
        key = col.column.lower()
        if key in seen:
            raise SchemaError(
                f"Entity '{table}' maps fields '{seen[key]}' and '{desc.name}' "
                f"to the same column '{col.column}'"
            )
        seen[key] = desc.name
        columns.append(col)

    if not marked and implicit_primary_key:
        for i, col in enumerate(columns):
            if col.name.lower() == implicit_primary_key.lower() and col.kind is ValueKind.INTEGER:
                columns[i] = replace(col, primary_key=True, auto_increment=True, nullable=False)
                break

    for col in columns:
        if col.auto_increment and not col.primary_key:
            raise SchemaError(f"{table}.{col.name}: auto_increment requires primary_key")
        if col.auto_increment and col.kind is not ValueKind.INTEGER:
            raise SchemaError(f"{table}.{col.name}: auto_increment requires an integer column")

    pk = next((c for c in columns if c.primary_key), None)
    return EntityShape(
        table=table,
        columns=tuple(columns),
        primary_key=pk,
        auto_increment=bool(pk and pk.auto_increment),
        indices=_derive_indices(table, columns, descs),
    )


@functools.lru_cache(maxsize=None)
def shape_of(entity_cls: type, *, implicit_primary_key: str | None = "Id") -> EntityShape:
    """Derive (once per type and primary-key rule) the shape of an entity type."""
    return derive_shape(describe(entity_cls), implicit_primary_key=implicit_primary_key)


def _default_literal(col: ColumnSpec) -> str:
    value = to_storage(col.default, col.declared)
    if isinstance(value, bytes):
        return f"X'{value.hex()}'"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    return repr(value)


def column_definition(col: ColumnSpec) -> str:
    parts = [quote_identifier(col.column), col.declared.sql_type]
    if col.primary_key:
        parts.append("PRIMARY KEY AUTOINCREMENT" if col.auto_increment else "PRIMARY KEY")
        # Only INTEGER PRIMARY KEY aliases the rowid; other keys admit NULL unless told not to
        if col.declared.sql_type != "INTEGER":
            parts.append("NOT NULL")
    elif not col.nullable:
        parts.append("NOT NULL")
    if col.default is not None:
        parts.append(f"DEFAULT {_default_literal(col)}")
    if col.collation:
        parts.append(f"COLLATE {col.collation}")
    return " ".join(parts)


def create_table_sql(shape: EntityShape) -> str:
    """Emit CREATE TABLE IF NOT EXISTS with columns in declaration order."""
    defs = ", ".join(column_definition(c) for c in shape.columns)
    return f"CREATE TABLE IF NOT EXISTS {quote_identifier(shape.table)} ({defs})"


def create_index_sql(shape: EntityShape) -> list[str]:
    """Emit one CREATE [UNIQUE] INDEX IF NOT EXISTS statement per declared index."""
    statements = []
    for idx in shape.indices:
        unique = "UNIQUE " if idx.unique else ""
        cols = ", ".join(quote_identifier(c) for c in idx.columns)
        statements.append(
            f"CREATE {unique}INDEX IF NOT EXISTS {quote_identifier(idx.name)} "
            f"ON {quote_identifier(shape.table)} ({cols})"
        )
    return statements


def add_column_sql(shape: EntityShape, col: ColumnSpec) -> str:
    if col.primary_key:
        raise SchemaError(
            f"Cannot add primary key column '{col.column}' to existing table '{shape.table}'"
        )
    return f"ALTER TABLE {quote_identifier(shape.table)} ADD COLUMN {column_definition(col)}"


def drop_table_sql(shape: EntityShape) -> str:
    return f"DROP TABLE IF EXISTS {quote_identifier(shape.table)}"
