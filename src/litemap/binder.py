"""Row materialization: binds result rows to entity, dataclass, pydantic, dict or tuple targets."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ValidationError

from litemap.codec import DeclaredType, from_storage, resolve_type
from litemap.errors import MappingError
from litemap.types import describe


class RowBinder:
    """Binds rows of one result set to a target type.

    Result columns are matched to the target's declared fields by column
    name, then attribute name, case-insensitively. Columns without a
    matching field are ignored; a required field without a matching column
    is a MappingError.
    """

    def __init__(self, target: Any, columns: Sequence[str]) -> None:
        self.target = target
        self.columns = tuple(columns)
        self._plan: list[tuple[str, int, DeclaredType | None]] = []
        if target is dict or target is tuple:
            return

        descriptor = describe(target)
        # pydantic models validate by alias, which describe() reports as the column
        by_alias = isinstance(target, type) and issubclass(target, BaseModel)
        index = {}
        for i, name in enumerate(self.columns):
            index.setdefault(name.lower(), i)

        for desc in descriptor.fields:
            pos = index.get(desc.column_name.lower())
            if pos is None:
                pos = index.get(desc.name.lower())
            if pos is None:
                if desc.required and not desc.auto_increment:
                    raise MappingError(
                        f"Cannot bind {descriptor.name}: no result column for required "
                        f"field '{desc.name}' (columns: {list(self.columns)})"
                    )
                continue
            try:
                declared: DeclaredType | None = resolve_type(desc.annotation)
            except MappingError:
                # Unmapped annotations take the raw primitive
                declared = None
            key = desc.column_name if by_alias else desc.name
            self._plan.append((key, pos, declared))

    def bind(self, row: Sequence[Any]) -> Any:
        if self.target is tuple:
            return tuple(row)
        if self.target is dict:
            return dict(zip(self.columns, row))

        data = {}
        for name, pos, declared in self._plan:
            raw = row[pos]
            data[name] = raw if declared is None else from_storage(raw, declared)
        try:
            return self.target(**data)
        except ValidationError as e:
            raise MappingError(f"Row does not validate as {self.target.__name__}: {e}") from e
        except TypeError as e:
            raise MappingError(f"Cannot construct {self.target.__name__} from row: {e}") from e
