"""Statement executor: runs SQL against one sqlite3 handle and maps rows to entities.

Parameters are always bound, never interpolated, and manual SQL is passed
to the engine as written. Driver errors are re-raised as ConstraintError or
EngineError carrying the SQL text and parameter count (never the values).
"""

from __future__ import annotations

import itertools
import logging
import sqlite3
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any, TypeVar

from litemap.binder import RowBinder
from litemap.codec import encode_operand, from_storage, resolve_type, to_storage
from litemap.config import LitemapConfig
from litemap.errors import ConstraintError, EngineError, RecordNotFoundError, SchemaError
from litemap.filters import Predicate
from litemap.query import TableQuery
from litemap.schema import (
    ColumnSpec,
    EntityShape,
    add_column_sql,
    create_index_sql,
    create_table_sql,
    drop_table_sql,
    quote_identifier,
    shape_of,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")
T = TypeVar("T")


class CreateTableResult(str, Enum):
    CREATED = "created"
    MIGRATED = "migrated"
    UNCHANGED = "unchanged"


def open_sqlite(
    database: str, *, uri: bool = False, config: LitemapConfig | None = None
) -> sqlite3.Connection:
    """Open a sqlite3 handle in autocommit mode with the configured pragmas applied."""
    config = config or LitemapConfig()
    try:
        conn = sqlite3.connect(
            database,
            uri=uri,
            timeout=config.busy_timeout_s,
            isolation_level=None,
            check_same_thread=False,
            cached_statements=config.cached_statements,
        )
        if config.foreign_keys:
            conn.execute("PRAGMA foreign_keys=ON")
        if config.journal_mode:
            conn.execute(f"PRAGMA journal_mode={config.journal_mode}")
    except sqlite3.Error as e:
        raise EngineError(f"cannot open database {database!r}: {e}") from e
    return conn


class StatementExecutor:
    """Synchronous CRUD, query and transaction operations over one sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection, config: LitemapConfig | None = None) -> None:
        self._conn = conn
        self.config = config or LitemapConfig()
        self._savepoints = itertools.count(1)

    @property
    def handle(self) -> sqlite3.Connection:
        return self._conn

    def shape_for(self, entity_cls: type) -> EntityShape:
        return shape_of(entity_cls, implicit_primary_key=self.config.implicit_primary_key)

    def close(self) -> None:
        self._conn.close()

    # --- Statement primitives ---

    def _run(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        bound = [encode_operand(p) for p in params]
        logger.debug("SQL %s [%d params]", sql, len(bound))
        try:
            return self._conn.execute(sql, bound)
        except sqlite3.IntegrityError as e:
            raise ConstraintError(str(e), sql, len(bound)) from e
        except sqlite3.Error as e:
            raise EngineError(str(e), sql, len(bound)) from e

    def execute(self, sql: str, *params: Any) -> int:
        """Run a statement and return the number of rows it changed."""
        cursor = self._run(sql, params)
        try:
            return max(cursor.rowcount, 0)
        finally:
            cursor.close()

    def query(self, target: Any, sql: str, *params: Any) -> Iterator[Any]:
        """Run a query now and return an iterator that binds rows to ``target`` lazily.

        The cursor is closed when the iterator is exhausted or closed.
        """
        cursor = self._run(sql, params)
        columns = [d[0] for d in cursor.description or ()]
        try:
            binder = RowBinder(target, columns)
        except BaseException:
            cursor.close()
            raise
        return self._iter_rows(cursor, binder, sql, len(params))

    @staticmethod
    def _iter_rows(
        cursor: sqlite3.Cursor, binder: RowBinder, sql: str, param_count: int
    ) -> Iterator[Any]:
        try:
            while True:
                try:
                    row = cursor.fetchone()
                except sqlite3.Error as e:
                    raise EngineError(str(e), sql, param_count) from e
                if row is None:
                    return
                yield binder.bind(row)
        finally:
            cursor.close()

    def scalar(self, sql: str, *params: Any, as_type: Any = None) -> Any:
        """Return the first column of the first row, or None when there are no rows."""
        cursor = self._run(sql, params)
        try:
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise EngineError(str(e), sql, len(params)) from e
        finally:
            cursor.close()
        if row is None:
            return None
        if as_type is None:
            return row[0]
        return from_storage(row[0], resolve_type(as_type))

    # --- Schema ---

    def create_table(self, entity_cls: type) -> CreateTableResult:
        """Create the table for ``entity_cls``, or add the columns it is missing."""
        shape = self.shape_for(entity_cls)

        def _create() -> CreateTableResult:
            existing = {
                row[1].lower()
                for row in self.query(
                    tuple, f"PRAGMA table_info({quote_identifier(shape.table)})"
                )
            }
            if not existing:
                self.execute(create_table_sql(shape))
                result = CreateTableResult.CREATED
            else:
                missing = [c for c in shape.columns if c.column.lower() not in existing]
                for col in missing:
                    self.execute(add_column_sql(shape, col))
                if missing:
                    logger.info(
                        "Added columns %s to table %s",
                        [c.column for c in missing],
                        shape.table,
                    )
                result = CreateTableResult.MIGRATED if missing else CreateTableResult.UNCHANGED
            for statement in create_index_sql(shape):
                self.execute(statement)
            return result

        return self.run_in_transaction(_create)

    def drop_table(self, entity_cls: type) -> int:
        return self.execute(drop_table_sql(self.shape_for(entity_cls)))

    # --- CRUD ---

    def _value_of(self, entity: Any, col: ColumnSpec, sql: str, param_count: int) -> Any:
        value = getattr(entity, col.name, None)
        if value is None and not col.nullable and not col.auto_increment:
            raise ConstraintError(f"NOT NULL constraint failed: {col.column}", sql, param_count)
        return to_storage(value, col.declared)

    def _entity_shape(self, entity: Any) -> EntityShape:
        if isinstance(entity, type):
            raise TypeError(f"Expected an entity instance, got the type {entity.__name__}")
        return self.shape_for(type(entity))

    def _require_key(self, shape: EntityShape, operation: str) -> ColumnSpec:
        if shape.primary_key is None:
            raise SchemaError(f"Cannot {operation} '{shape.table}': table has no primary key")
        return shape.primary_key

    def insert(self, entity: Any, *, or_replace: bool = False) -> int:
        """Insert one entity and write an engine-assigned key back onto it."""
        shape = self._entity_shape(entity)
        pk = shape.primary_key
        columns = [
            c
            for c in shape.columns
            if not c.auto_increment or getattr(entity, c.name, None) is not None
        ]
        verb = "INSERT OR REPLACE" if or_replace else "INSERT"
        if columns:
            names = ", ".join(quote_identifier(c.column) for c in columns)
            marks = ", ".join("?" for _ in columns)
            sql = f"{verb} INTO {quote_identifier(shape.table)} ({names}) VALUES ({marks})"
        else:
            sql = f"{verb} INTO {quote_identifier(shape.table)} DEFAULT VALUES"
        params = [self._value_of(entity, c, sql, len(columns)) for c in columns]

        cursor = self._run(sql, params)
        try:
            if pk is not None and pk.auto_increment and getattr(entity, pk.name, None) is None:
                setattr(entity, pk.name, cursor.lastrowid)
            return cursor.rowcount
        finally:
            cursor.close()

    def insert_or_replace(self, entity: Any) -> int:
        return self.insert(entity, or_replace=True)

    def insert_all(self, entities: Iterable[Any], *, or_replace: bool = False) -> int:
        """Insert every entity inside one transaction."""
        return self.run_in_transaction(
            lambda: sum(self.insert(e, or_replace=or_replace) for e in entities)
        )

    def update(self, entity: Any) -> int:
        shape = self._entity_shape(entity)
        pk = self._require_key(shape, "update")
        columns = [c for c in shape.columns if not c.primary_key]
        if not columns:
            return 0
        assignments = ", ".join(f"{quote_identifier(c.column)} = ?" for c in columns)
        sql = (
            f"UPDATE {quote_identifier(shape.table)} SET {assignments} "
            f"WHERE {quote_identifier(pk.column)} = ?"
        )
        params = [self._value_of(entity, c, sql, len(columns) + 1) for c in columns]
        params.append(to_storage(getattr(entity, pk.name, None), pk.declared))
        return self.execute(sql, *params)

    def update_all(self, entities: Iterable[Any]) -> int:
        return self.run_in_transaction(lambda: sum(self.update(e) for e in entities))

    def delete(self, entity: Any) -> int:
        shape = self._entity_shape(entity)
        pk = self._require_key(shape, "delete from")
        return self._delete_key(shape, pk, getattr(entity, pk.name, None))

    def delete_by_key(self, entity_cls: type, key: Any) -> int:
        shape = self.shape_for(entity_cls)
        return self._delete_key(shape, self._require_key(shape, "delete from"), key)

    def _delete_key(self, shape: EntityShape, pk: ColumnSpec, key: Any) -> int:
        sql = f"DELETE FROM {quote_identifier(shape.table)} WHERE {quote_identifier(pk.column)} = ?"
        return self.execute(sql, to_storage(key, pk.declared))

    def delete_all(self, entity_cls: type) -> int:
        return self.execute(f"DELETE FROM {quote_identifier(self.shape_for(entity_cls).table)}")

    def table(self, entity_cls: type[E]) -> TableQuery[E]:
        """Start a query over ``entity_cls``'s table, bound to this executor."""
        return TableQuery(entity_cls=entity_cls, shape=self.shape_for(entity_cls), source=self)

    def find(self, entity_cls: type[E], key: Any) -> E | None:
        shape = self.shape_for(entity_cls)
        pk = self._require_key(shape, "look up rows in")
        return self.table(entity_cls).where(Predicate(pk.name, "==", key)).first_or_default()

    def get(self, entity_cls: type[E], key: Any) -> E:
        found = self.find(entity_cls, key)
        if found is None:
            raise RecordNotFoundError(self.shape_for(entity_cls).table, key)
        return found

    # --- Transactions ---

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    def begin_transaction(self) -> None:
        self.execute(f"BEGIN {self.config.begin_mode}")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        if self._conn.in_transaction:
            self.execute("ROLLBACK")

    def save_transaction_point(self) -> str:
        """Open a savepoint, beginning a transaction first if none is active."""
        if not self._conn.in_transaction:
            self.begin_transaction()
        name = f"sp_{next(self._savepoints)}"
        self.execute(f"SAVEPOINT {name}")
        return name

    def release(self, savepoint: str) -> None:
        self.execute(f"RELEASE SAVEPOINT {savepoint}")

    def rollback_to(self, savepoint: str) -> None:
        self.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")

    def run_in_transaction(self, unit_of_work: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``unit_of_work`` atomically; commit on return, roll back and re-raise on error.

        Nested calls run inside a savepoint, so an inner failure unwinds
        only that inner unit.
        """
        with self.transaction():
            return unit_of_work(*args, **kwargs)

    @contextmanager
    def transaction(self) -> Iterator[StatementExecutor]:
        """Context-manager form of run_in_transaction."""
        if not self._conn.in_transaction:
            self.begin_transaction()
            logger.debug("Transaction started")
            try:
                yield self
            except BaseException:
                self.rollback()
                logger.debug("Transaction rolled back")
                raise
            try:
                self.commit()
            except BaseException:
                # A failed COMMIT leaves the engine transaction open
                self.rollback()
                logger.debug("Commit failed, transaction rolled back")
                raise
            logger.debug("Transaction committed")
            return

        savepoint = self.save_transaction_point()
        try:
            yield self
        except BaseException:
            if self._conn.in_transaction:
                self.rollback_to(savepoint)
                self.release(savepoint)
            raise
        self.release(savepoint)
