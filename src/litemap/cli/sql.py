"""litemap sql: run a manual SQL statement with bound parameters."""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from litemap.cli import _exitcodes as ec
from litemap.cli._connection import open_connection
from litemap.cli._output import print_error, print_object, print_table
from litemap.errors import ConstraintError, LitemapError, NotReadyError

_ROW_KEYWORDS = ("SELECT", "WITH", "PRAGMA", "VALUES", "EXPLAIN")


def parse_params(raw: list[str] | None) -> list[Any]:
    """Decode each PARAM_JSON argument; a bare word that is not JSON is a usage error."""
    params: list[Any] = []
    for value in raw or []:
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            raise ValueError(
                f"Parameter is not valid JSON: {value!r} (quote strings: '\"text\"')"
            ) from None
        if isinstance(decoded, (list, dict)):
            raise ValueError(f"Parameter must be a JSON scalar: {value!r}")
        params.append(decoded)
    return params


def returns_rows(statement: str) -> bool:
    words = statement.lstrip().split(None, 1)
    return bool(words) and words[0].upper() in _ROW_KEYWORDS


def sql_cmd(
    statement: str = typer.Argument(..., help="SQL statement with ? placeholders"),
    params: Optional[list[str]] = typer.Argument(None, help="PARAM_JSON values, in order"),
) -> None:
    """Run a SQL statement; prints rows for queries and the change count otherwise."""
    from litemap.cli import state

    json_mode = state.json_output
    try:
        bound = parse_params(params)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        conn = open_connection()
    except LitemapError as e:
        print_error(f"Cannot open database: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        if returns_rows(statement):
            rows = list(conn.query(dict, statement, *bound))
            headers = list(rows[0].keys()) if rows else []
            print_table(headers, [list(r.values()) for r in rows], json_mode=json_mode)
        else:
            changed = conn.execute(statement, *bound)
            if json_mode:
                print_object({"rows_affected": changed}, json_mode=True)
            else:
                print(f"{changed} row(s) affected")
    except NotReadyError as e:
        print_error(str(e))
        raise typer.Exit(ec.NOT_READY)
    except ConstraintError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    except LitemapError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    finally:
        conn.close()
