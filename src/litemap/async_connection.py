"""Non-blocking façade: one worker thread per connection, results delivered as Futures.

Operations are queued in submission order and complete in that order. A
future still waiting in the queue can be cancelled; one already running
completes. A failed operation fails only its own future. Use
``asyncio.wrap_future`` to await results from an event loop.
"""

from __future__ import annotations

import functools
import logging
import queue
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from typing import Any, Generic, TypeVar

from litemap.config import LitemapConfig
from litemap.connection import Connection, Driver
from litemap.executor import CreateTableResult
from litemap.query import PreparedStatement, TableQuery
from litemap.readiness import ReadinessState

logger = logging.getLogger(__name__)

E = TypeVar("E")
T = TypeVar("T")

_STOP = object()


class AsyncConnection:
    """Serializes every operation on one Connection onto a single daemon worker thread."""

    def __init__(
        self,
        target: str | Connection,
        *,
        config: LitemapConfig | None = None,
        driver: Driver | None = None,
    ) -> None:
        self._queue: queue.Queue[Any] = queue.Queue()
        self._shutdown = False
        self._shutdown_lock = threading.Lock()
        self._worker = threading.Thread(target=self._drain, name="litemap-worker", daemon=True)
        self._worker.start()
        logger.debug("Worker %s started", self._worker.name)

        if isinstance(target, Connection):
            self.connection = target
            target.readiness.set_dispatch(self._post)
        else:
            try:
                self.connection = Connection(
                    target, config=config, driver=driver, dispatch=self._post
                )
            except BaseException:
                self._shutdown = True
                self._queue.put(_STOP)
                raise

    # --- Worker ---

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            future, fn = item
            if future is None:
                # Readiness and sync callbacks; they log their own failures
                fn()
                continue
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn()
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(result)
        logger.debug("Worker %s stopped", threading.current_thread().name)

    def _post(self, fn: Callable[[], None]) -> None:
        self._queue.put((None, fn))

    def _submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        with self._shutdown_lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new operations after close")
            future: Future[T] = Future()
            self._queue.put((future, functools.partial(fn, *args, **kwargs)))
        return future

    # --- Readiness ---

    @property
    def state(self) -> ReadinessState:
        return self.connection.state

    def is_ready(self) -> bool:
        return self.connection.is_ready()

    def on_ready(self, callback: Callable[[], Any]) -> None:
        """Register a READY observer; it runs on the worker thread.

        If the connection is already READY the callback is queued behind any
        pending operations rather than invoked before ``on_ready`` returns.
        """
        self.connection.on_ready(callback)

    def on_sync(self, callback: Callable[[], Any]) -> None:
        """Register a SYNC observer; it runs on the worker thread."""
        self.connection.on_sync(callback)

    def wait_ready(self, timeout: float | None = None) -> bool:
        return self.connection.wait_ready(timeout)

    # --- Operations ---

    def _query_list(self, target: Any, sql: str, *params: Any) -> list[Any]:
        return list(self.connection.query(target, sql, *params))

    def query_async(self, target: Any, sql: str, *params: Any) -> Future[list[Any]]:
        return self._submit(self._query_list, target, sql, *params)

    def execute_async(self, sql: str, *params: Any) -> Future[int]:
        return self._submit(self.connection.execute, sql, *params)

    def execute_scalar_async(self, sql: str, *params: Any, as_type: Any = None) -> Future[Any]:
        return self._submit(self.connection.scalar, sql, *params, as_type=as_type)

    def create_table_async(self, entity_cls: type) -> Future[CreateTableResult]:
        return self._submit(self.connection.create_table, entity_cls)

    def drop_table_async(self, entity_cls: type) -> Future[int]:
        return self._submit(self.connection.drop_table, entity_cls)

    def insert_async(self, entity: Any, *, or_replace: bool = False) -> Future[int]:
        return self._submit(self.connection.insert, entity, or_replace=or_replace)

    def insert_or_replace_async(self, entity: Any) -> Future[int]:
        return self._submit(self.connection.insert_or_replace, entity)

    def insert_all_async(self, entities: Iterable[Any]) -> Future[int]:
        return self._submit(self.connection.insert_all, list(entities))

    def update_async(self, entity: Any) -> Future[int]:
        return self._submit(self.connection.update, entity)

    def update_all_async(self, entities: Iterable[Any]) -> Future[int]:
        return self._submit(self.connection.update_all, list(entities))

    def delete_async(self, entity: Any) -> Future[int]:
        return self._submit(self.connection.delete, entity)

    def delete_by_key_async(self, entity_cls: type, key: Any) -> Future[int]:
        return self._submit(self.connection.delete_by_key, entity_cls, key)

    def delete_all_async(self, entity_cls: type) -> Future[int]:
        return self._submit(self.connection.delete_all, entity_cls)

    def find_async(self, entity_cls: type[E], key: Any) -> Future[E | None]:
        return self._submit(self.connection.find, entity_cls, key)

    def get_async(self, entity_cls: type[E], key: Any) -> Future[E]:
        return self._submit(self.connection.get, entity_cls, key)

    def run_in_transaction_async(self, unit_of_work: Callable[[Connection], T]) -> Future[T]:
        """Run ``unit_of_work(connection)`` in one transaction on the worker."""
        return self._submit(self.connection.run_in_transaction, unit_of_work, self.connection)

    def table(self, entity_cls: type[E]) -> AsyncTableQuery[E]:
        return AsyncTableQuery(self, self.connection.table(entity_cls))

    # --- Lifecycle ---

    def close_async(self) -> Future[None]:
        """Close the connection after every already-queued operation, then stop the worker."""
        with self._shutdown_lock:
            if self._shutdown:
                raise RuntimeError("connection already closed")
            future: Future[None] = Future()
            self._queue.put((future, self.connection.close))
            self._queue.put(_STOP)
            self._shutdown = True
        return future

    def close(self) -> None:
        if not self._shutdown:
            self.close_async().result()
        self._worker.join()

    def __enter__(self) -> AsyncConnection:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class AsyncTableQuery(Generic[E]):
    """Immutable query whose terminal operations run on the connection's worker."""

    def __init__(self, owner: AsyncConnection, query: TableQuery[E]) -> None:
        self._owner = owner
        self._query = query

    @property
    def query(self) -> TableQuery[E]:
        return self._query

    def _derive(self, query: TableQuery[E]) -> AsyncTableQuery[E]:
        return AsyncTableQuery(self._owner, query)

    def where(self, expr: Any) -> AsyncTableQuery[E]:
        return self._derive(self._query.where(expr))

    def order_by(self, ref: Any) -> AsyncTableQuery[E]:
        return self._derive(self._query.order_by(ref))

    def order_by_desc(self, ref: Any) -> AsyncTableQuery[E]:
        return self._derive(self._query.order_by_desc(ref))

    def then_by(self, ref: Any) -> AsyncTableQuery[E]:
        return self._derive(self._query.then_by(ref))

    def then_by_desc(self, ref: Any) -> AsyncTableQuery[E]:
        return self._derive(self._query.then_by_desc(ref))

    def limit(self, n: int) -> AsyncTableQuery[E]:
        return self._derive(self._query.limit(n))

    take = limit

    def skip(self, n: int) -> AsyncTableQuery[E]:
        return self._derive(self._query.skip(n))

    def select(self, *refs: Any) -> AsyncTableQuery[E]:
        return self._derive(self._query.select(*refs))

    def compile(self) -> PreparedStatement:
        return self._query.compile()

    def to_list_async(self) -> Future[list[E]]:
        return self._owner._submit(self._query.to_list)

    def first_async(self) -> Future[E]:
        return self._owner._submit(self._query.first)

    def first_or_default_async(self, default: E | None = None) -> Future[E | None]:
        return self._owner._submit(self._query.first_or_default, default)

    def element_at_async(self, index: int) -> Future[E]:
        return self._owner._submit(self._query.element_at, index)

    def count_async(self) -> Future[int]:
        return self._owner._submit(self._query.count)

    def delete_async(self) -> Future[int]:
        return self._owner._submit(self._query.delete)
