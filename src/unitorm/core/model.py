"""
Model base classes and metadata orchestration for UnitORM.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar

from ..utils import camel_to_snake
from .fields import AutoField, Field
from .relations import ManyToOne, OneToMany, relationships


class ModelConfigurationError(Exception):
    """Raised when a model class is misconfigured."""


@dataclass
class ModelOptions:
    """
    Container for model metadata calculated by :class:`ModelMeta`.
    """

    model: Type["Model"]
    table_name: str = ""
    fields: "OrderedDict[str, Field]" = field(default_factory=OrderedDict)
    primary_key: Optional[Field] = None
    references: List[ManyToOne] = field(default_factory=list)
    collections: List[OneToMany] = field(default_factory=list)

    def add_field(self, field_obj: Field) -> None:
        if field_obj.name in self.fields:
            raise ModelConfigurationError(
                f"Duplicate field name '{field_obj.name}' on model '{self.model.__name__}'"
            )
        self.fields[field_obj.name] = field_obj
        if isinstance(field_obj, ManyToOne):
            self.references.append(field_obj)
        if field_obj.primary_key:
            if self.primary_key and self.primary_key is not field_obj:
                raise ModelConfigurationError(
                    f"Multiple primary keys defined on model '{self.model.__name__}'"
                )
            self.primary_key = field_obj

    def get_field(self, name: str) -> Field:
        if name == "pk" and self.primary_key is not None:
            return self.primary_key
        try:
            return self.fields[name]
        except KeyError as exc:
            raise KeyError(f"Unknown field '{name}' on model '{self.model.__name__}'") from exc

    def get_fields(self) -> Iterable[Field]:
        return self.fields.values()

    def relation(self, name: str) -> ManyToOne | OneToMany:
        for candidate in (*self.references, *self.collections):
            if candidate.name == name:
                return candidate
        raise KeyError(f"Unknown relationship '{name}' on model '{self.model.__name__}'")

    def field_for_column(self, column: str) -> Field:
        for field_obj in self.fields.values():
            if field_obj.column_name() == column:
                return field_obj
        raise KeyError(f"Unknown column '{column}' on model '{self.model.__name__}'")

    @property
    def generation_strategy(self) -> Optional[str]:
        return getattr(self.primary_key, "strategy", None)


TModel = TypeVar("TModel", bound="Model")


class ModelMeta(type):
    """
    Metaclass collecting fields and relationships into ``_meta``.
    """

    def __new__(mcls, name: str, bases: tuple[type, ...], attrs: Dict[str, Any]) -> "ModelMeta":
        if name == "Model" and not bases:
            return super().__new__(mcls, name, bases, attrs)

        declared: Dict[str, Field | OneToMany] = {}
        for attr_name, value in list(attrs.items()):
            if isinstance(value, (Field, OneToMany)):
                declared[attr_name] = attrs.pop(attr_name)

        cls = super().__new__(mcls, name, bases, attrs)

        meta = getattr(cls, "Meta", None)
        table_name = getattr(meta, "table", None) or camel_to_snake(name)
        cls._meta = ModelOptions(model=cls, table_name=table_name)

        for attr_name, declared_obj in sorted(declared.items(), key=lambda item: item[1].creation_counter):
            declared_obj.contribute_to_class(cls, attr_name)
            if isinstance(declared_obj, OneToMany):
                cls._meta.collections.append(declared_obj)
                relationships.register_field(cls, declared_obj)
                continue
            cls._meta.add_field(declared_obj)
            if isinstance(declared_obj, ManyToOne):
                relationships.register_field(cls, declared_obj)

        if not cls._meta.primary_key:
            if "id" in cls._meta.fields:
                raise ModelConfigurationError(
                    f"Model '{cls.__name__}' defines a field named 'id' but no primary key."
                )
            strategy = getattr(meta, "id_strategy", None) or "sequence"
            auto_field = AutoField(strategy=strategy)
            auto_field.contribute_to_class(cls, "id")
            cls._meta.add_field(auto_field)
            cls._meta.fields.move_to_end("id", last=False)

        relationships.register_model(cls)
        return cls


class Model(metaclass=ModelMeta):
    """
    Base entity: a plain data container. Persistence is handled by a
    persistence context, never by the entity itself.
    """

    def __init__(self, **kwargs: Any) -> None:
        self._field_values: Dict[str, Any] = {}
        self._related_cache: Dict[str, Any] = {}

        for field_obj in self._meta.get_fields():
            if field_obj.name in kwargs:
                setattr(self, field_obj.name, kwargs.pop(field_obj.name))
            elif field_obj.has_default:
                setattr(self, field_obj.name, field_obj.get_default())
        for collection in self._meta.collections:
            if collection.name in kwargs:
                setattr(self, collection.name, kwargs.pop(collection.name))
        if kwargs:
            unknown = ", ".join(sorted(kwargs))
            raise TypeError(f"{self.__class__.__name__} got unexpected field(s): {unknown}")

    def __repr__(self) -> str:
        field_parts = ", ".join(
            f"{name}={value!r}" for name, value in self._field_values.items()
        )
        return f"<{self.__class__.__name__} {field_parts}>"

    @classmethod
    def from_storage(cls: Type[TModel], row: Mapping[str, Any]) -> TModel:
        """
        Build an instance from a storage row keyed by column name.
        """
        instance = cls.__new__(cls)
        instance._field_values = {}
        instance._related_cache = {}
        for field_obj in cls._meta.get_fields():
            field_obj.load(instance, row.get(field_obj.column_name()))
        return instance

    @property
    def pk(self) -> Any:
        if not self._meta.primary_key:
            raise ModelConfigurationError(
                f"Model '{self.__class__.__name__}' does not define a primary key."
            )
        return self._field_values.get(self._meta.primary_key.name)

    @pk.setter
    def pk(self, value: Any) -> None:
        setattr(self, self._meta.primary_key.name, value)

    def to_dict(self) -> Dict[str, Any]:
        return {field_obj.name: field_obj.state_value(self) for field_obj in self._meta.get_fields()}

    @classmethod
    def register_hook(cls, event: str, handler) -> None:
        from ..hooks import hooks

        hooks.register(event, handler, model=cls)
