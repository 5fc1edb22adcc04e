"""Structured error types for litemap."""

from __future__ import annotations

from typing import Any


class LitemapError(Exception):
    """Base error for all litemap errors."""


class ConfigurationError(LitemapError):
    """Raised when a connection URI or configuration value is invalid."""

    def __init__(self, uri: str, detail: str) -> None:
        self.uri = uri
        self.detail = detail
        super().__init__(f"Invalid connection URI '{uri}': {detail}")


class SchemaError(LitemapError):
    """Raised when an entity shape is ambiguous or invalid (e.g. multiple primary keys)."""


class MappingError(LitemapError):
    """Raised when a declared type cannot be mapped or a row cannot be bound to a target."""


class TranslationError(LitemapError):
    """Raised when a query expression references an unknown column or unsupported construct."""


class ConstraintError(LitemapError):
    """Raised for NOT NULL, uniqueness or foreign-key violations.

    Carries the attempted SQL and its parameter count; parameter values are
    never included.
    """

    def __init__(self, detail: str, sql: str | None = None, param_count: int = 0) -> None:
        self.detail = detail
        self.sql = sql
        self.param_count = param_count
        if sql is None:
            super().__init__(f"Constraint violation: {detail}")
        else:
            super().__init__(
                f"Constraint violation: {detail} (sql={sql!r}, {param_count} parameter(s))"
            )


class EngineError(LitemapError):
    """Opaque failure reported by the SQLite driver, wrapped with statement context."""

    def __init__(self, detail: str, sql: str | None = None, param_count: int = 0) -> None:
        self.detail = detail
        self.sql = sql
        self.param_count = param_count
        if sql is None:
            super().__init__(f"Engine error: {detail}")
        else:
            super().__init__(f"Engine error: {detail} (sql={sql!r}, {param_count} parameter(s))")


class NotReadyError(LitemapError):
    """Raised when an operation is attempted before the connection is ready."""

    def __init__(self, state: Any, cause: BaseException | None = None) -> None:
        self.state = state
        self.cause = cause
        name = getattr(state, "value", state)
        if cause is not None:
            super().__init__(f"Connection is not ready (state={name}): {cause}")
        else:
            super().__init__(f"Connection is not ready (state={name}); retry once it is ready")


class RecordNotFoundError(LitemapError, LookupError):
    """Raised by get() and first() when no matching row exists."""

    def __init__(self, table: str, key: Any = None, *, detail: str | None = None) -> None:
        self.table = table
        self.key = key
        super().__init__(detail or f"No row in '{table}' with primary key {key!r}")
