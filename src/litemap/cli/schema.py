"""litemap schema: derive, export and create table schemas from model modules."""

from __future__ import annotations

import json
from typing import Any, Optional

import typer
import yaml

from litemap.cli import _exitcodes as ec
from litemap.cli._connection import open_connection
from litemap.cli._loader import load_models
from litemap.cli._output import print_error, print_object, print_table
from litemap.codec import to_storage
from litemap.errors import LitemapError, NotReadyError
from litemap.schema import EntityShape, create_index_sql, create_table_sql, shape_of

app = typer.Typer(no_args_is_help=True)

_MODELS_OPTION = typer.Option(None, "--models", help="Python import path for models")
_MODELS_PATH_OPTION = typer.Option(None, "--models-path", help="Filesystem path to models")


def _load_or_exit(models: str | None, models_path: str | None) -> dict[str, type]:
    if not models and not models_path:
        print_error("One of --models or --models-path is required")
        raise typer.Exit(ec.USAGE_ERROR)
    try:
        entity_types = load_models(models, models_path)
    except Exception as e:
        print_error(f"Failed to load models: {e}")
        raise typer.Exit(ec.GENERAL_ERROR)
    if not entity_types:
        print_error("No model types found in models")
        raise typer.Exit(ec.USAGE_ERROR)
    return entity_types


def shape_to_dict(shape: EntityShape) -> dict[str, Any]:
    """Serializable description of a derived shape and its DDL."""
    return {
        "primary_key": shape.primary_key.column if shape.primary_key else None,
        "auto_increment": shape.auto_increment,
        "columns": [
            {
                "name": c.name,
                "column": c.column,
                "kind": c.kind.value,
                "sql_type": c.declared.sql_type,
                "nullable": c.nullable,
                "primary_key": c.primary_key,
                "auto_increment": c.auto_increment,
                "unique": c.unique,
                "default": to_storage(c.default, c.declared),
                "collation": c.collation,
            }
            for c in shape.columns
        ],
        "indices": [
            {"name": i.name, "columns": list(i.columns), "unique": i.unique} for i in shape.indices
        ],
        "ddl": [create_table_sql(shape), *create_index_sql(shape)],
    }


@app.command(name="export")
def schema_export_cmd(
    models: Optional[str] = _MODELS_OPTION,
    models_path: Optional[str] = _MODELS_PATH_OPTION,
    output: Optional[str] = typer.Option(None, "--output", help="Output file path"),
    fmt: str = typer.Option("json", "--format", help="Output format: json or yaml"),
) -> None:
    """Export derived table shapes and their DDL for review and diffing."""
    if fmt not in ("json", "yaml"):
        print_error("--format must be 'json' or 'yaml'")
        raise typer.Exit(ec.USAGE_ERROR)

    entity_types = _load_or_exit(models, models_path)
    tables: dict[str, Any] = {}
    try:
        for name, cls in sorted(entity_types.items()):
            tables[name] = {"entity": cls.__qualname__, **shape_to_dict(shape_of(cls))}
    except LitemapError as e:
        print_error(str(e))
        raise typer.Exit(ec.GENERAL_ERROR)

    _write_output({"tables": tables}, output, fmt)


@app.command(name="create")
def schema_create_cmd(
    models: Optional[str] = _MODELS_OPTION,
    models_path: Optional[str] = _MODELS_PATH_OPTION,
) -> None:
    """Create (or add missing columns to) the tables of every model type."""
    from litemap.cli import state

    entity_types = _load_or_exit(models, models_path)

    try:
        conn = open_connection()
    except LitemapError as e:
        print_error(f"Cannot open database: {e}")
        raise typer.Exit(ec.DATABASE_ERROR)

    try:
        results = {}
        for name, cls in sorted(entity_types.items()):
            results[name] = conn.create_table(cls).value
    except NotReadyError as e:
        print_error(str(e))
        raise typer.Exit(ec.NOT_READY)
    except LitemapError as e:
        print_error(str(e))
        raise typer.Exit(ec.EXECUTION_FAILURE)
    finally:
        conn.close()

    if state.json_output:
        print_object(results, json_mode=True)
    else:
        print_table(["table", "result"], [[k, v] for k, v in results.items()])


def _write_output(data: dict[str, Any], output: str | None, fmt: str) -> None:
    """Write schema data to file or stdout."""
    if fmt == "yaml":
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    else:
        content = json.dumps(data, indent=2, default=str)

    if output:
        with open(output, "w") as f:
            f.write(content)
        print(f"Written to {output}")
    else:
        print(content)
