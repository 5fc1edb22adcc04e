"""Model loader: import a models module and collect the types litemap can map."""

from __future__ import annotations

import dataclasses
import importlib
import sys
from pathlib import Path
from types import ModuleType

from pydantic import BaseModel

from litemap.types import Entity, describe


def _import_module(models: str | None, models_path: str | None) -> ModuleType:
    if models_path:
        path = Path(models_path).resolve()
        if not path.exists():
            raise FileNotFoundError(f"Models path not found: {models_path}")
        parent = str(path.parent)
        if parent not in sys.path:
            sys.path.insert(0, parent)
        return importlib.import_module(path.stem)
    if models:
        return importlib.import_module(models)
    raise ValueError("One of --models or --models-path is required")


def _is_model(obj: object, module: ModuleType) -> bool:
    if not isinstance(obj, type):
        return False
    if issubclass(obj, Entity):
        return obj is not Entity
    # Plain dataclasses and pydantic models only count where they are defined,
    # so helpers imported into the module are not turned into tables.
    if obj.__module__ != module.__name__:
        return False
    if dataclasses.is_dataclass(obj):
        return True
    return issubclass(obj, BaseModel) and obj is not BaseModel


def load_models(
    models: str | None = None,
    models_path: str | None = None,
) -> dict[str, type]:
    """Load mappable types from a Python module.

    Entity subclasses are always collected. Dataclasses and pydantic models
    are collected when the module itself defines them.

    Args:
        models: Dotted Python import path (e.g. 'myapp.models')
        models_path: Filesystem path to a Python file

    Returns:
        Model types keyed by table name
    """
    module = _import_module(models, models_path)
    found: dict[str, type] = {}
    for attr_name in dir(module):
        obj = getattr(module, attr_name)
        if _is_model(obj, module):
            found[describe(obj).name] = obj
    return found
