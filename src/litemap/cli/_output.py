"""Output formatting helpers for the CLI."""

from __future__ import annotations

import json
import sys
from typing import Any


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.hex()
    return str(value)


def _cell(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (bytes, bytearray)):
        return f"x'{value.hex()}'"
    return str(value)


def dumps(data: Any) -> str:
    return json.dumps(data, indent=2, default=_json_default)


def print_table(headers: list[str], rows: list[list[Any]], *, json_mode: bool = False) -> None:
    """Print result rows as an aligned text table or a JSON array of objects."""
    if json_mode:
        print(dumps([dict(zip(headers, row)) for row in rows]))
        return

    str_rows = [[_cell(v) for v in row] for row in rows]
    widths = [len(h) for h in headers]
    for row in str_rows:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], len(val))

    print("  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
    print("  ".join("-" * w for w in widths))
    for row in str_rows:
        print("  ".join(val.ljust(widths[i]) for i, val in enumerate(row)))
    print(f"({len(rows)} row{'s' if len(rows) != 1 else ''})")


def print_object(data: dict[str, Any], *, json_mode: bool = False) -> None:
    """Print a mapping as JSON or as key: value lines (nested mappings indented)."""
    if json_mode:
        print(dumps(data))
        return

    for k, v in data.items():
        if isinstance(v, dict):
            print(f"{k}:")
            for sub_k, sub_v in v.items():
                print(f"  {sub_k}: {_cell(sub_v)}")
        else:
            print(f"{k}: {_cell(v)}")


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
