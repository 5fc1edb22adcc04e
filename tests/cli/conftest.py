"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from litemap import Connection
from litemap.cli import app

# Reuse the shared model types
from tests.models import Customer, Stock, Tier

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """A temp DB path for the CLI to open."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def seeded_db(cli_db):
    """Create a DB with some seed data."""
    with Connection(cli_db) as conn:
        conn.create_table(Stock)
        conn.create_table(Customer)
        conn.insert_all(Stock(Symbol=s) for s in ("AAPL", "MSFT"))
        conn.insert(Customer(email="ann@example.com", name="Ann", age=30, tier=Tier.GOLD))
    return cli_db


def invoke(runner: CliRunner, args: list[str], db_path: str | None = None) -> Result:
    """Invoke CLI with proper state setup."""
    if db_path:
        # Inject --uri before subcommand
        args = ["--uri", db_path] + args
    return runner.invoke(app, args, catch_exceptions=False)
