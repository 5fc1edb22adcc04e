"""Connections: URI parsing, readiness drivers and the readiness-gated Connection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeVar
from urllib.parse import parse_qsl, urlencode, urlparse

from litemap.config import LitemapConfig, ReadinessPolicy
from litemap.errors import ConfigurationError, EngineError, NotReadyError
from litemap.executor import CreateTableResult, StatementExecutor, open_sqlite
from litemap.query import TableQuery
from litemap.readiness import Dispatch, ReadinessController, ReadinessState
from litemap.schema import EntityShape

logger = logging.getLogger(__name__)

E = TypeVar("E")
T = TypeVar("T")

SQLITE_URI_PARAMS = ("mode", "cache", "immutable", "vfs", "nolock")


class NodeRole(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class ConnectionTarget:
    """Resolved connection target.

    ``database`` is what sqlite3 opens; ``uri_mode`` tells sqlite3 to parse it
    as a ``file:`` URI. ``connect``/``bind`` are replication endpoints handed
    to the driver and never interpreted here.
    """

    uri: str
    database: str
    uri_mode: bool = False
    role: NodeRole = NodeRole.PRIMARY
    connect: str | None = None
    bind: str | None = None
    sqlite_params: dict[str, str] = field(default_factory=dict)

    @property
    def location(self) -> str:
        return self.database.split("?", 1)[0].removeprefix("file:")


def parse_connection_uri(uri: str) -> ConnectionTarget:
    """Parse a plain path, ``:memory:`` or a ``file:`` URI with query parameters.

    Recognized parameters are ``node`` (primary|secondary), ``connect``,
    ``bind`` and SQLite's own ``mode``, ``cache``, ``immutable``, ``vfs`` and
    ``nolock``; anything else is ignored.
    """
    if uri is None or not uri.strip():
        raise ConfigurationError(str(uri), "empty location")

    if not uri.startswith("file:"):
        return ConnectionTarget(uri=uri, database=uri)

    parsed = urlparse(uri)
    if parsed.netloc not in ("", "localhost"):
        raise ConfigurationError(uri, f"non-local authority '{parsed.netloc}'")
    path = parsed.path
    if not path:
        raise ConfigurationError(uri, "empty location")

    params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    node = params.get("node", NodeRole.PRIMARY.value).lower()
    try:
        role = NodeRole(node)
    except ValueError:
        raise ConfigurationError(
            uri, f"node must be 'primary' or 'secondary', got '{params['node']}'"
        ) from None

    connect = params.get("connect") or None
    bind = params.get("bind") or None
    if role is NodeRole.SECONDARY and connect is None:
        raise ConfigurationError(uri, "a secondary node requires a 'connect' endpoint")

    sqlite_params = {k: params[k] for k in SQLITE_URI_PARAMS if k in params}
    database = f"file:{path}"
    if sqlite_params:
        database += "?" + urlencode(sqlite_params)
    return ConnectionTarget(
        uri=uri,
        database=database,
        uri_mode=True,
        role=role,
        connect=connect,
        bind=bind,
        sqlite_params=sqlite_params,
    )


class DriverEvents:
    """Handle through which a driver reports readiness, failure and sync events."""

    def __init__(self, controller: ReadinessController) -> None:
        self._controller = controller

    def ready(self) -> None:
        self._controller.mark_ready()

    def failed(self, error: BaseException) -> None:
        self._controller.mark_failed(error)

    def sync(self) -> None:
        self._controller.notify_sync()


class Driver(Protocol):
    def attach(self, target: ConnectionTarget, events: DriverEvents) -> None: ...

    def close(self) -> None: ...


class LocalDriver:
    """Driver for local databases: ready as soon as it is attached."""

    def attach(self, target: ConnectionTarget, events: DriverEvents) -> None:
        events.ready()

    def close(self) -> None:
        pass


class ExternalDriver:
    """Driver whose readiness is reported by an outside party (e.g. a replication transport).

    The outside party calls ``driver.events.ready()``, ``.failed(err)`` or
    ``.sync()`` once attached.
    """

    def __init__(self) -> None:
        self.events: DriverEvents | None = None
        self.target: ConnectionTarget | None = None

    def attach(self, target: ConnectionTarget, events: DriverEvents) -> None:
        self.target = target
        self.events = events
        logger.info(
            "Waiting for node %s to report readiness (connect=%s)", target.uri, target.connect
        )

    def close(self) -> None:
        self.events = None


def default_driver(target: ConnectionTarget) -> Driver:
    if target.role is NodeRole.SECONDARY:
        return ExternalDriver()
    return LocalDriver()


class Connection:
    """A database connection whose operations all pass a readiness gate.

    With ``ReadinessPolicy.FAIL_FAST`` an operation attempted before the
    connection is ready raises NotReadyError; with ``ReadinessPolicy.QUEUE``
    it waits for readiness. Either way a FAILED connection raises.
    """

    def __init__(
        self,
        uri: str,
        *,
        config: LitemapConfig | None = None,
        driver: Driver | None = None,
        dispatch: Dispatch | None = None,
    ) -> None:
        self.config = config or LitemapConfig()
        self.target = parse_connection_uri(uri)
        self.readiness = ReadinessController(dispatch)
        self._executor = StatementExecutor(
            open_sqlite(self.target.database, uri=self.target.uri_mode, config=self.config),
            self.config,
        )
        self._closed = False
        logger.info("Opened %s (role=%s)", self.target.location, self.target.role.value)

        self._driver = driver or default_driver(self.target)
        try:
            self._driver.attach(self.target, DriverEvents(self.readiness))
        except BaseException:
            self._executor.close()
            raise

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._driver.close()
        finally:
            self._executor.close()
        logger.info("Closed %s", self.target.location)

    @property
    def closed(self) -> bool:
        return self._closed

    # --- Readiness ---

    @property
    def state(self) -> ReadinessState:
        return self.readiness.state

    def is_ready(self) -> bool:
        return self.readiness.is_ready()

    def on_ready(self, callback: Callable[[], Any]) -> None:
        self.readiness.on_ready(callback)

    def on_sync(self, callback: Callable[[], Any]) -> None:
        self.readiness.on_sync(callback)

    def wait_ready(self, timeout: float | None = None) -> bool:
        return self.readiness.wait_ready(timeout)

    def _gate(self) -> StatementExecutor:
        if self._closed:
            raise EngineError("connection is closed")
        state = self.readiness.state
        if state is ReadinessState.READY:
            return self._executor
        if (
            state is ReadinessState.CONNECTING
            and self.config.readiness_policy is ReadinessPolicy.QUEUE
        ):
            if self.readiness.wait_ready():
                return self._executor
            state = self.readiness.state
        raise NotReadyError(state, self.readiness.error)

    # --- Gated operations ---

    def shape_for(self, entity_cls: type) -> EntityShape:
        return self._executor.shape_for(entity_cls)

    def execute(self, sql: str, *params: Any) -> int:
        return self._gate().execute(sql, *params)

    def query(self, target: Any, sql: str, *params: Any) -> Iterator[Any]:
        return self._gate().query(target, sql, *params)

    def scalar(self, sql: str, *params: Any, as_type: Any = None) -> Any:
        return self._gate().scalar(sql, *params, as_type=as_type)

    def create_table(self, entity_cls: type) -> CreateTableResult:
        return self._gate().create_table(entity_cls)

    def drop_table(self, entity_cls: type) -> int:
        return self._gate().drop_table(entity_cls)

    def insert(self, entity: Any, *, or_replace: bool = False) -> int:
        return self._gate().insert(entity, or_replace=or_replace)

    def insert_or_replace(self, entity: Any) -> int:
        return self._gate().insert_or_replace(entity)

    def insert_all(self, entities: Iterable[Any], *, or_replace: bool = False) -> int:
        return self._gate().insert_all(entities, or_replace=or_replace)

    def update(self, entity: Any) -> int:
        return self._gate().update(entity)

    def update_all(self, entities: Iterable[Any]) -> int:
        return self._gate().update_all(entities)

    def delete(self, entity: Any) -> int:
        return self._gate().delete(entity)

    def delete_by_key(self, entity_cls: type, key: Any) -> int:
        return self._gate().delete_by_key(entity_cls, key)

    def delete_all(self, entity_cls: type) -> int:
        return self._gate().delete_all(entity_cls)

    def find(self, entity_cls: type[E], key: Any) -> E | None:
        return self._gate().find(entity_cls, key)

    def get(self, entity_cls: type[E], key: Any) -> E:
        return self._gate().get(entity_cls, key)

    def table(self, entity_cls: type[E]) -> TableQuery[E]:
        """Start a query bound to this connection; its terminals pass the gate when run."""
        return TableQuery(entity_cls=entity_cls, shape=self.shape_for(entity_cls), source=self)

    # --- Transactions ---

    @property
    def in_transaction(self) -> bool:
        return self._executor.in_transaction

    def run_in_transaction(self, unit_of_work: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return self._gate().run_in_transaction(unit_of_work, *args, **kwargs)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        with self._gate().transaction():
            yield self

    def begin_transaction(self) -> None:
        self._gate().begin_transaction()

    def commit(self) -> None:
        self._gate().commit()

    def rollback(self) -> None:
        self._gate().rollback()

    def save_transaction_point(self) -> str:
        return self._gate().save_transaction_point()

    def release(self, savepoint: str) -> None:
        self._gate().release(savepoint)

    def rollback_to(self, savepoint: str) -> None:
        self._gate().rollback_to(savepoint)
