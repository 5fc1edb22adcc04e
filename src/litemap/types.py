"""Entity and Field types, and the declarative descriptors the schema mapper consumes."""

from __future__ import annotations

import dataclasses
import sys
import typing
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar, get_args

from pydantic import BaseModel, ConfigDict, create_model

from litemap.errors import MappingError
from litemap.filters import FieldProxy

T = TypeVar("T")

_SENTINEL = object()


@dataclass(frozen=True)
class FieldDescriptor:
    """Schema-relevant description of one declared field."""

    name: str
    annotation: Any
    column: str | None = None
    primary_key: bool = False
    auto_increment: bool = False
    index: bool | str = False
    unique: bool = False
    not_null: bool = False
    collation: str | None = None
    required: bool = True
    default: Any = None

    @property
    def column_name(self) -> str:
        return self.column or self.name


@dataclass(frozen=True)
class EntityDescriptor:
    """Ordered field list of an entity type plus its table name."""

    name: str
    fields: tuple[FieldDescriptor, ...]


class Field(Generic[T]):
    """Type-safe field descriptor for Entity schemas.

    Class-level access returns a FieldProxy, so ``Stock.Symbol.startswith("A")``
    builds a query predicate.
    """

    def __init__(
        self,
        default: Any = _SENTINEL,
        *,
        default_factory: Any | None = None,
        primary_key: bool = False,
        auto_increment: bool = False,
        index: bool | str = False,
        unique: bool = False,
        not_null: bool = False,
        column: str | None = None,
        collation: str | None = None,
    ) -> None:
        self.default = default
        self.default_factory = default_factory
        self.primary_key = primary_key
        self.auto_increment = auto_increment
        self.index = index
        self.unique = unique
        self.not_null = not_null
        self.column = column
        self.collation = collation
        self.name: str = ""
        self.annotation: Any = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return FieldProxy(self.name)
        return obj.__dict__.get(self.name, _SENTINEL)

    def __set__(self, obj: Any, value: Any) -> None:
        obj.__dict__[self.name] = value

    def has_default(self) -> bool:
        return self.default is not _SENTINEL or self.default_factory is not None

    def get_default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        if self.default is not _SENTINEL:
            return self.default
        raise ValueError(f"Field '{self.name}' has no default")

    def describe(self) -> FieldDescriptor:
        static_default = self.default if self.default is not _SENTINEL else None
        return FieldDescriptor(
            name=self.name,
            annotation=self.annotation,
            column=self.column,
            primary_key=self.primary_key,
            auto_increment=self.auto_increment,
            index=self.index,
            unique=self.unique,
            not_null=self.not_null,
            collation=self.collation,
            required=not self.has_default(),
            default=static_default,
        )


def _resolve_annotation(ann: Any, module_name: str) -> Any:
    """Resolve string annotations and extract the inner type from Field[T]."""
    if isinstance(ann, str):
        module = sys.modules.get(module_name, None)
        ns = vars(module) if module else {}
        try:
            ann = eval(ann, ns)  # noqa: S307
        except Exception:
            return Any

    origin = getattr(ann, "__origin__", None)
    if origin is Field:
        args = get_args(ann)
        return args[0] if args else Any
    return ann


def _collect_fields(cls: type) -> dict[str, Field[Any]]:
    """Collect Field descriptors from class annotations, parents first."""
    fields: dict[str, Field[Any]] = {}
    for base in reversed(cls.__mro__[1:]):
        inherited = base.__dict__.get("_field_definitions")
        if inherited:
            fields.update(inherited)

    annotations = cls.__dict__.get("__annotations__", {})
    for name, ann in annotations.items():
        origin = getattr(ann, "__origin__", None)
        is_field_ann = origin is Field or (isinstance(ann, str) and "Field" in ann)
        if not is_field_ann:
            continue

        val = cls.__dict__.get(name, _SENTINEL)
        field_desc: Field[Any]
        if isinstance(val, Field):
            field_desc = val
        elif val is _SENTINEL:
            field_desc = Field()
        else:
            # `count: Field[int] = 0` shorthand
            field_desc = Field(default=val)

        field_desc.name = name
        field_desc.annotation = _resolve_annotation(ann, cls.__module__)
        fields[name] = field_desc

        if not isinstance(cls.__dict__.get(name), Field):
            setattr(cls, name, field_desc)

    return fields


def _build_pydantic_model(model_name: str, fields: dict[str, Field[Any]]) -> type[BaseModel]:
    """Build a Pydantic model from Field definitions."""
    pydantic_fields: dict[str, Any] = {}
    for name, f in fields.items():
        ann = f.annotation if f.annotation is not None else Any
        if f.auto_increment:
            # Unset until the engine assigns a key on insert
            pydantic_fields[name] = (typing.Optional[ann], f.default if f.has_default() else None)
        elif f.default_factory is not None:
            from pydantic import Field as PydanticField

            pydantic_fields[name] = (ann, PydanticField(default_factory=f.default_factory))
        elif f.default is not _SENTINEL:
            pydantic_fields[name] = (ann, f.default)
        else:
            pydantic_fields[name] = (ann, ...)

    return create_model(  # type: ignore[call-overload]
        model_name,
        __config__=ConfigDict(arbitrary_types_allowed=True),
        **pydantic_fields,
    )


class Entity:
    """Base class for typed entities stored one row per instance."""

    __table_name__: ClassVar[str]
    __entity_fields__: ClassVar[tuple[str, ...]]
    __descriptor__: ClassVar[EntityDescriptor]
    _pydantic_model: ClassVar[type[BaseModel]]
    _field_definitions: ClassVar[dict[str, Field[Any]]]

    def __init_subclass__(cls, table: str | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        cls.__table_name__ = table or cls.__name__

        fields = _collect_fields(cls)
        cls._field_definitions = fields
        cls.__entity_fields__ = tuple(fields.keys())
        cls.__descriptor__ = EntityDescriptor(
            name=cls.__table_name__,
            fields=tuple(f.describe() for f in fields.values()),
        )
        cls._pydantic_model = _build_pydantic_model(f"_{cls.__name__}Model", fields)

    def __init__(self, **data: Any) -> None:
        validated = self._pydantic_model(**data)
        for name in self.__entity_fields__:
            setattr(self, name, getattr(validated, name))

    def model_dump(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__entity_fields__}

    @classmethod
    def model_validate(cls, data: dict[str, Any]) -> Any:
        return cls(**data)

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={getattr(self, k)!r}" for k in self.__entity_fields__)
        return f"{self.__class__.__name__}({fields})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return NotImplemented
        return self.model_dump() == other.model_dump()


def _dataclass_descriptor(cls: type) -> EntityDescriptor:
    try:
        hints = typing.get_type_hints(cls)
    except Exception:
        hints = {}
    fields = []
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        has_default = (
            f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING
        )
        fields.append(
            FieldDescriptor(
                name=f.name,
                annotation=hints.get(f.name, f.type),
                required=not has_default,
                default=f.default if f.default is not dataclasses.MISSING else None,
            )
        )
    return EntityDescriptor(name=cls.__name__, fields=tuple(fields))


def _pydantic_descriptor(cls: type[BaseModel]) -> EntityDescriptor:
    fields = []
    for name, info in cls.model_fields.items():
        required = info.is_required()
        fields.append(
            FieldDescriptor(
                name=name,
                annotation=info.annotation,
                column=info.alias,
                required=required,
                default=None if required else info.get_default(call_default_factory=False),
            )
        )
    return EntityDescriptor(name=cls.__name__, fields=tuple(fields))


def describe(target: type) -> EntityDescriptor:
    """Return the declarative descriptor for an Entity, dataclass or pydantic model type."""
    if isinstance(target, type) and issubclass(target, Entity):
        if target is Entity:
            raise MappingError("Entity itself has no fields; describe a subclass")
        return target.__descriptor__
    if isinstance(target, type) and dataclasses.is_dataclass(target):
        return _dataclass_descriptor(target)
    if isinstance(target, type) and issubclass(target, BaseModel):
        return _pydantic_descriptor(target)
    raise MappingError(
        f"Cannot describe {target!r}: expected an Entity subclass, dataclass or pydantic model"
    )
