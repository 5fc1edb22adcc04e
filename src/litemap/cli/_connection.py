"""CLI helpers for opening the connection selected by the global options."""

from __future__ import annotations

import os

from litemap.connection import Connection, ConnectionTarget, parse_connection_uri


def resolve_target() -> ConnectionTarget:
    """Return the parsed target of the global --uri option."""
    from litemap.cli import state

    return parse_connection_uri(state.uri)


def database_missing(target: ConnectionTarget) -> bool:
    """True when the target names an on-disk file that does not exist yet."""
    if target.location == ":memory:" or target.sqlite_params.get("mode") == "memory":
        return False
    return not os.path.exists(target.location)


def open_connection() -> Connection:
    """Open a Connection using the global CLI URI selection."""
    from litemap.cli import state

    return Connection(state.uri)
