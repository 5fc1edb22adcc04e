"""litemap info: show connection target, readiness and table summary."""

from __future__ import annotations

import os
from typing import Any

import typer

from litemap.cli import _exitcodes as ec
from litemap.cli._connection import database_missing, open_connection, resolve_target
from litemap.cli._output import print_error, print_object
from litemap.errors import LitemapError
from litemap.schema import quote_identifier

_TABLES_SQL = (
    "SELECT name FROM sqlite_master "
    "WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' ORDER BY name"
)


def info_cmd(
    stats: bool = typer.Option(False, "--stats", help="Show row counts per table"),
) -> None:
    """Show the database target, its readiness and the tables it holds."""
    from litemap.cli import state

    json_mode = state.json_output
    target = resolve_target()
    if database_missing(target):
        print_error(f"Database not found: {target.location}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        conn = open_connection()
    except LitemapError as e:
        print_error(f"Cannot open database: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        data: dict[str, Any] = {
            "location": target.location,
            "role": target.role.value,
            "connect": target.connect,
            "bind": target.bind,
            "state": conn.state.value,
        }
        if os.path.exists(target.location):
            data["file_size_bytes"] = os.path.getsize(target.location)

        if conn.is_ready():
            tables = [row[0] for row in conn.query(tuple, _TABLES_SQL)]
            if stats:
                data["tables"] = {
                    t: conn.scalar(f"SELECT COUNT(*) FROM {quote_identifier(t)}") for t in tables
                }
            else:
                data["tables"] = tables
    except LitemapError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        conn.close()

    if json_mode:
        print_object(data, json_mode=True)
        return

    print(f"Database: {data['location']}")
    print(f"Role: {data['role']}")
    if data["connect"]:
        print(f"Connect: {data['connect']}")
    if data["bind"]:
        print(f"Bind: {data['bind']}")
    print(f"State: {data['state']}")
    if "file_size_bytes" in data:
        print(f"File size: {int(data['file_size_bytes']):,} bytes")
    if "tables" in data:
        print("\nTables:")
        if stats:
            for name, cnt in data["tables"].items():
                print(f"  {name}: {cnt}")
        else:
            for name in data["tables"]:
                print(f"  {name}")
