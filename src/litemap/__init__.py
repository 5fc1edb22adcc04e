"""litemap: typed entities over SQLite, with readiness-gated and asynchronous connections."""

__version__ = "0.1.0"

from litemap.async_connection import AsyncConnection, AsyncTableQuery
from litemap.codec import DeclaredType, ValueKind
from litemap.config import LitemapConfig, ReadinessPolicy
from litemap.connection import (
    Connection,
    ConnectionTarget,
    DriverEvents,
    ExternalDriver,
    LocalDriver,
    NodeRole,
    parse_connection_uri,
)
from litemap.errors import (
    ConfigurationError,
    ConstraintError,
    EngineError,
    LitemapError,
    MappingError,
    NotReadyError,
    RecordNotFoundError,
    SchemaError,
    TranslationError,
)
from litemap.executor import CreateTableResult, StatementExecutor
from litemap.filters import col
from litemap.query import (
    PreparedStatement,
    TableQuery,
    compile_count,
    compile_delete,
    compile_select,
)
from litemap.readiness import ReadinessController, ReadinessState
from litemap.schema import EntityShape, create_table_sql, derive_shape, shape_of
from litemap.types import Entity, Field

__all__ = [
    "__version__",
    "Entity",
    "Field",
    "col",
    "ValueKind",
    "DeclaredType",
    "EntityShape",
    "derive_shape",
    "shape_of",
    "create_table_sql",
    "TableQuery",
    "PreparedStatement",
    "compile_select",
    "compile_count",
    "compile_delete",
    "StatementExecutor",
    "CreateTableResult",
    "ReadinessController",
    "ReadinessState",
    "Connection",
    "ConnectionTarget",
    "NodeRole",
    "DriverEvents",
    "LocalDriver",
    "ExternalDriver",
    "parse_connection_uri",
    "AsyncConnection",
    "AsyncTableQuery",
    "LitemapConfig",
    "ReadinessPolicy",
    "LitemapError",
    "ConfigurationError",
    "SchemaError",
    "MappingError",
    "TranslationError",
    "ConstraintError",
    "EngineError",
    "NotReadyError",
    "RecordNotFoundError",
]
