"""Shared test fixtures for litemap tests."""

from __future__ import annotations

import pytest

from litemap import Connection, StatementExecutor
from litemap.executor import open_sqlite
from tests.models import STOCK_SYMBOLS, Stock


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def conn(tmp_db):
    """A ready Connection on a temporary database."""
    c = Connection(tmp_db)
    yield c
    c.close()


@pytest.fixture
def executor():
    """A StatementExecutor on a private in-memory database."""
    ex = StatementExecutor(open_sqlite(":memory:"))
    yield ex
    ex.close()


@pytest.fixture
def stocks(conn):
    """A connection whose Stock table holds STOCK_SYMBOLS, in order."""
    conn.create_table(Stock)
    conn.insert_all(Stock(Symbol=s) for s in STOCK_SYMBOLS)
    return conn
