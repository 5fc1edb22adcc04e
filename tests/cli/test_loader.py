"""Tests for CLI model loader."""

import textwrap

import pytest

from litemap.cli._loader import load_models


def test_load_models_from_path(tmp_path):
    """Load Entity, dataclass and pydantic types from a Python file path."""
    models_file = tmp_path / "loader_mixed_models.py"
    models_file.write_text(
        textwrap.dedent("""\
        import dataclasses

        from pydantic import BaseModel

        from litemap import Entity, Field

        class Widget(Entity, table="widgets"):
            id: Field[str] = Field(primary_key=True)
            name: Field[str]

        @dataclasses.dataclass
        class Gizmo:
            size: int
            id: int | None = None

        class Quote(BaseModel):
            symbol: str
            price: float
    """)
    )

    found = load_models(models_path=str(models_file))
    assert set(found) == {"widgets", "Gizmo", "Quote"}
    assert found["Gizmo"].__name__ == "Gizmo"


def test_load_models_skips_imported_helpers(tmp_path):
    """Dataclasses and pydantic models imported from elsewhere are not collected."""
    models_file = tmp_path / "loader_reexport_models.py"
    models_file.write_text(
        textwrap.dedent("""\
        from litemap.config import LitemapConfig
        from tests.models import Stock
    """)
    )

    found = load_models(models_path=str(models_file))
    assert list(found) == ["Stock"]


def test_load_models_from_import():
    """Load models from Python import path (using the shared test models)."""
    found = load_models(models="tests.models")
    assert set(found) == {"Stock", "Valuation", "customers", "Sample", "Tag"}


def test_load_models_missing_path():
    with pytest.raises(FileNotFoundError):
        load_models(models_path="/nonexistent/models.py")


def test_load_models_no_args():
    with pytest.raises(ValueError, match="One of"):
        load_models()
