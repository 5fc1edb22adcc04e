"""Value codec: conversions between declared field types and SQLite storage primitives.

Every declared type maps to one of SQLite's storage classes (INTEGER, REAL,
TEXT, BLOB). ``None`` always maps to NULL and back, whatever the declared
type; nullability is enforced by the executor, not here.

Lexical encodings:
  - DECIMAL is stored as ``str(value)``, which ``Decimal(text)`` reproduces
    exactly (digits, exponent and sign), so no precision is lost.
  - DATETIME/DATE/TIME are stored as ISO-8601 text from ``isoformat()``,
    which ``fromisoformat()`` reproduces including microseconds and UTC offset.
"""

from __future__ import annotations

import enum
import types
import typing
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, get_args, get_origin

from litemap.errors import MappingError


class ValueKind(str, enum.Enum):
    """Semantic field kinds understood by the codec."""

    INTEGER = "integer"
    REAL = "real"
    TEXT = "text"
    BLOB = "blob"
    BOOLEAN = "boolean"
    DECIMAL = "decimal"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    TIMEDELTA = "timedelta"
    UUID = "uuid"
    ENUM = "enum"


_SQL_TYPES: dict[ValueKind, str] = {
    ValueKind.INTEGER: "INTEGER",
    ValueKind.REAL: "REAL",
    ValueKind.TEXT: "TEXT",
    ValueKind.BLOB: "BLOB",
    ValueKind.BOOLEAN: "INTEGER",
    ValueKind.DECIMAL: "TEXT",
    ValueKind.DATETIME: "TEXT",
    ValueKind.DATE: "TEXT",
    ValueKind.TIME: "TEXT",
    ValueKind.TIMEDELTA: "INTEGER",
    ValueKind.UUID: "TEXT",
}

# Order matters: bool before int, datetime before date.
_KIND_BY_TYPE: tuple[tuple[type, ValueKind], ...] = (
    (bool, ValueKind.BOOLEAN),
    (int, ValueKind.INTEGER),
    (float, ValueKind.REAL),
    (str, ValueKind.TEXT),
    (bytes, ValueKind.BLOB),
    (bytearray, ValueKind.BLOB),
    (Decimal, ValueKind.DECIMAL),
    (datetime, ValueKind.DATETIME),
    (date, ValueKind.DATE),
    (time, ValueKind.TIME),
    (timedelta, ValueKind.TIMEDELTA),
    (uuid.UUID, ValueKind.UUID),
)

_MICROS_PER_DAY = 86_400 * 1_000_000


@dataclass(frozen=True)
class DeclaredType:
    """A resolved field type: semantic kind, nullability and storage class."""

    kind: ValueKind
    nullable: bool = False
    sql_type: str = "TEXT"
    enum_type: type[enum.Enum] | None = None


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = get_args(annotation)
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) == 1 and len(non_none) < len(args):
            return non_none[0], True
        raise MappingError(f"Union types are not supported as column types: {annotation!r}")
    return annotation, False


def _enum_sql_type(enum_type: type[enum.Enum]) -> str:
    values = [m.value for m in enum_type]
    if values and all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return "INTEGER"
    if values and all(isinstance(v, str) for v in values):
        return "TEXT"
    raise MappingError(
        f"Enum '{enum_type.__name__}' must have all-int or all-str member values to be stored"
    )


def resolve_type(annotation: Any) -> DeclaredType:
    """Resolve a declared annotation to a DeclaredType, raising MappingError if unsupported."""
    inner, nullable = _unwrap_optional(annotation)
    if isinstance(inner, type):
        if issubclass(inner, enum.Enum):
            return DeclaredType(
                ValueKind.ENUM, nullable, sql_type=_enum_sql_type(inner), enum_type=inner
            )
        for py_type, kind in _KIND_BY_TYPE:
            if issubclass(inner, py_type):
                return DeclaredType(kind, nullable, sql_type=_SQL_TYPES[kind])
    raise MappingError(f"Unsupported declared type: {annotation!r}")


def kind_of_value(value: Any) -> ValueKind | None:
    """Infer the ValueKind of a raw Python value, or None if it has no mapping."""
    if isinstance(value, enum.Enum):
        return ValueKind.ENUM
    for py_type, kind in _KIND_BY_TYPE:
        if isinstance(value, py_type):
            return kind
    return None


def _timedelta_to_micros(value: timedelta) -> int:
    return value.days * _MICROS_PER_DAY + value.seconds * 1_000_000 + value.microseconds


def _encode(value: Any, kind: ValueKind) -> Any:
    if kind is ValueKind.INTEGER:
        if not isinstance(value, int):
            raise TypeError
        return int(value)
    if kind is ValueKind.REAL:
        if not isinstance(value, (int, float)):
            raise TypeError
        return float(value)
    if kind is ValueKind.TEXT:
        if not isinstance(value, str):
            raise TypeError
        return value
    if kind is ValueKind.BLOB:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError
        return bytes(value)
    if kind is ValueKind.BOOLEAN:
        if not isinstance(value, int):
            raise TypeError
        return 1 if value else 0
    if kind is ValueKind.DECIMAL:
        if isinstance(value, float):
            # repr() of a float is its shortest round-tripping text form
            return str(Decimal(repr(value)))
        return str(Decimal(value))
    if kind is ValueKind.DATETIME:
        if not isinstance(value, datetime):
            raise TypeError
        return value.isoformat()
    if kind is ValueKind.DATE:
        if isinstance(value, datetime) or not isinstance(value, date):
            raise TypeError
        return value.isoformat()
    if kind is ValueKind.TIME:
        if not isinstance(value, time):
            raise TypeError
        return value.isoformat()
    if kind is ValueKind.TIMEDELTA:
        if not isinstance(value, timedelta):
            raise TypeError
        return _timedelta_to_micros(value)
    if kind is ValueKind.UUID:
        return str(value if isinstance(value, uuid.UUID) else uuid.UUID(str(value)))
    raise TypeError


def to_storage(value: Any, declared: DeclaredType) -> Any:
    """Convert a field value to the primitive stored by SQLite."""
    if value is None:
        return None
    if declared.kind is ValueKind.ENUM:
        assert declared.enum_type is not None
        try:
            member = value if isinstance(value, declared.enum_type) else declared.enum_type(value)
        except ValueError as e:
            raise MappingError(f"{value!r} is not a member of {declared.enum_type.__name__}") from e
        return member.value
    try:
        return _encode(value, declared.kind)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise MappingError(
            f"Cannot store {type(value).__name__} value as {declared.kind.value}"
        ) from e


def from_storage(primitive: Any, declared: DeclaredType) -> Any:
    """Convert a stored primitive back to the declared field type."""
    if primitive is None:
        return None
    kind = declared.kind
    try:
        if kind is ValueKind.INTEGER:
            return int(primitive)
        if kind is ValueKind.REAL:
            return float(primitive)
        if kind is ValueKind.TEXT:
            return primitive if isinstance(primitive, str) else str(primitive)
        if kind is ValueKind.BLOB:
            return bytes(primitive)
        if kind is ValueKind.BOOLEAN:
            return bool(primitive)
        if kind is ValueKind.DECIMAL:
            return Decimal(str(primitive))
        if kind is ValueKind.DATETIME:
            return datetime.fromisoformat(primitive)
        if kind is ValueKind.DATE:
            return date.fromisoformat(primitive)
        if kind is ValueKind.TIME:
            return time.fromisoformat(primitive)
        if kind is ValueKind.TIMEDELTA:
            return timedelta(microseconds=int(primitive))
        if kind is ValueKind.UUID:
            if isinstance(primitive, bytes):
                return uuid.UUID(bytes=primitive)
            return uuid.UUID(primitive)
        if kind is ValueKind.ENUM:
            assert declared.enum_type is not None
            return declared.enum_type(primitive)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise MappingError(f"Cannot read stored {primitive!r} as {kind.value}") from e
    raise MappingError(f"Unsupported kind: {kind}")


def encode_operand(value: Any) -> Any:
    """Encode a raw Python value with no column context (manual SQL parameters)."""
    if value is None:
        return None
    kind = kind_of_value(value)
    if kind is None:
        raise MappingError(f"Unsupported parameter type: {type(value).__name__}")
    if kind is ValueKind.ENUM:
        return value.value
    return _encode(value, kind)
