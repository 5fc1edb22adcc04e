"""litemap CLI: operator console for inspecting and managing litemap databases."""

from __future__ import annotations

import logging
from typing import Optional

import typer

from litemap.cli import info, schema, sql

app = typer.Typer(
    name="litemap",
    help="litemap CLI: inspect schemas, create tables and run SQL against a database.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    uri: str = "litemap.db"
    json_output: bool = False
    verbose: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError, version

        try:
            v = version("litemap")
        except PackageNotFoundError:
            from litemap import __version__ as v
        print(f"litemap {v}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    uri: Optional[str] = typer.Option(
        None,
        "--uri",
        envvar="LITEMAP_URI",
        help="Database path or file: URI (default: litemap.db)",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log SQL and lifecycle events"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all litemap commands."""
    from litemap.connection import parse_connection_uri
    from litemap.errors import ConfigurationError

    resolved_uri = uri or "litemap.db"
    try:
        parse_connection_uri(resolved_uri)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e), param_hint="--uri")

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    state.uri = resolved_uri
    state.json_output = json_output
    state.verbose = verbose
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


# Register subcommand groups
app.add_typer(schema.app, name="schema", help="Derive, export and create table schemas")

# Register top-level commands
app.command(name="info")(info.info_cmd)
app.command(name="sql")(sql.sql_cmd)


def main() -> None:
    """Entry point for the litemap CLI."""
    app()
