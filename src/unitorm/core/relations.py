"""
Relationship fields and the relationship edge table.

Relationships are declared on models with :class:`ManyToOne` (the owning side,
which stores the foreign key column) and :class:`OneToMany` (the inverse
collection, ``mapped_by`` naming the owning attribute on the child). Each
declaration becomes a :class:`RelationshipEdge` in the module level
``relationships`` table, which the cascade resolver and dirty checker consult
instead of inspecting the model classes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple, Type

from ..utils import default_fk_column
from .fields import Field

if TYPE_CHECKING:
    from .model import Model


MANY_TO_ONE = "many-to-one"
ONE_TO_MANY = "one-to-many"


class RelationshipError(RuntimeError):
    pass


class Cascade(enum.Flag):
    NONE = 0
    PERSIST = enum.auto()
    REMOVE = enum.auto()
    ALL = PERSIST | REMOVE


class _NotLoaded:
    def __repr__(self) -> str:
        return "<not loaded>"

    def __bool__(self) -> bool:
        return False


NOT_LOADED: Any = _NotLoaded()


def _is_entity(value: Any) -> bool:
    return value is not None and hasattr(value, "_meta")


@dataclass(frozen=True)
class RelationshipEdge:
    """
    One directional relationship between two entity types.
    """

    source: type
    target: type
    attribute: str
    cardinality: str
    owning: bool
    cascade: Cascade = Cascade.NONE
    orphan_removal: bool = False
    mapped_by: Optional[str] = None

    @property
    def cascades_persist(self) -> bool:
        return bool(self.cascade & Cascade.PERSIST)

    @property
    def cascades_remove(self) -> bool:
        return bool(self.cascade & Cascade.REMOVE)

    @property
    def is_collection(self) -> bool:
        return self.cardinality == ONE_TO_MANY

    def related(self, instance: "Model") -> List["Model"]:
        """Entities currently reachable from ``instance`` through this edge."""
        descriptor = self.source._meta.relation(self.attribute)
        if self.is_collection:
            return list(descriptor.members(instance))
        related = descriptor.related_instance(instance)
        return [related] if related is not None else []


class ManyToOne(Field):
    """
    Owning side of a relationship: a foreign key column referencing ``to``.

    The referenced entity is kept in the instance's related cache while the
    column value holds its identity. Assigning a raw identity leaves the
    reference as ``NOT_LOADED`` until the persistence context loads it.
    """

    relation_type = MANY_TO_ONE

    def __init__(
        self,
        to: Type | str,
        *,
        cascade: Cascade = Cascade.NONE,
        nullable: bool = True,
        db_column: Optional[str] = None,
        db_type: str = "INTEGER",
    ) -> None:
        super().__init__(nullable=nullable, db_column=db_column, db_type=db_type)
        self.to = to
        self.cascade = cascade
        self.remote_model: Optional[Type] = to if isinstance(to, type) else None

    def bind(self, model: type["Model"], name: str) -> None:
        if self.db_column is None:
            self.db_column = default_fk_column(name)
        super().bind(model, name)

    def resolve_model(self, model: Type) -> None:
        self.remote_model = model

    def __get__(self, instance: object | None, owner: type | None = None) -> Any:
        if instance is None:
            return self
        name = self.require_name()
        cache = instance._related_cache  # type: ignore[attr-defined]
        if name in cache:
            return cache[name]
        if instance._field_values.get(name) is None:  # type: ignore[attr-defined]
            return None
        return NOT_LOADED

    def __set__(self, instance: object, value: Any) -> None:
        name = self.require_name()
        if value is None:
            super().__set__(instance, None)
            instance._related_cache[name] = None  # type: ignore[attr-defined]
            return
        if _is_entity(value):
            instance._related_cache[name] = value  # type: ignore[attr-defined]
            instance._field_values[name] = value.pk  # type: ignore[attr-defined]
            return
        instance._related_cache.pop(name, None)  # type: ignore[attr-defined]
        super().__set__(instance, value)

    # Persistence helpers -------------------------------------------------
    def related_instance(self, instance: "Model") -> Optional["Model"]:
        related = instance._related_cache.get(self.require_name())
        return related if _is_entity(related) else None

    def state_value(self, instance: "Model") -> Any:
        related = self.related_instance(instance)
        if related is None:
            return instance._field_values.get(self.require_name())
        # An unflushed target has no identity yet; compare by the object itself.
        return related.pk if related.pk is not None else related

    def db_value(self, instance: "Model") -> Any:
        name = self.require_name()
        related = self.related_instance(instance)
        if related is None:
            return instance._field_values.get(name)
        if related.pk is None:
            raise RelationshipError(
                f"'{type(instance).__name__}.{name}' references an entity without identity"
            )
        instance._field_values[name] = related.pk
        return related.pk

    def attach(self, instance: "Model", related: Optional["Model"]) -> None:
        name = self.require_name()
        instance._related_cache[name] = related
        instance._field_values[name] = related.pk if related is not None else None

    def clear(self, instance: "Model") -> None:
        self.attach(instance, None)

    def load(self, instance: "Model", value: Any) -> None:
        super().load(instance, value)
        instance._related_cache.pop(self.require_name(), None)

    def points_to(self, instance: "Model", parent: "Model") -> bool:
        related = self.related_instance(instance)
        if related is not None:
            return related is parent
        identity = instance._field_values.get(self.require_name())
        return identity is not None and identity == parent.pk


class OneToMany:
    """
    Inverse side of a relationship: the collection of children whose
    ``mapped_by`` reference points at the owner.
    """

    relation_type = ONE_TO_MANY

    def __init__(
        self,
        to: Type | str,
        *,
        mapped_by: str,
        cascade: Cascade = Cascade.NONE,
        orphan_removal: bool = False,
    ) -> None:
        self.to = to
        self.mapped_by = mapped_by
        self.cascade = cascade
        self.orphan_removal = orphan_removal
        self.remote_model: Optional[Type] = to if isinstance(to, type) else None
        self.model: Optional[Type] = None
        self.name: Optional[str] = None
        self.creation_counter = Field._creation_counter
        Field._creation_counter += 1

    def contribute_to_class(self, model: Type, name: str) -> None:
        self.model = model
        self.name = name
        setattr(model, name, self)

    def resolve_model(self, model: Type) -> None:
        self.remote_model = model

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return instance._related_cache.setdefault(self.name, [])

    def __set__(self, instance, value) -> None:
        instance._related_cache[self.name] = list(value or [])

    def members(self, instance: "Model") -> List["Model"]:
        return list(instance._related_cache.get(self.name) or [])

    def load(self, instance: "Model", children: Iterable["Model"]) -> None:
        instance._related_cache[self.name] = list(children)


class RelationshipTable:
    """
    Registry of models and the relationship edges declared between them.

    Targets given as strings are resolved once the named model registers.
    """

    def __init__(self) -> None:
        self.models: Dict[str, Type] = {}
        self.pending_fields: List[Tuple[Type, ManyToOne | OneToMany]] = []
        self._edges: Dict[Type, Dict[str, RelationshipEdge]] = {}

    def register_model(self, model: Type) -> None:
        self.models[model.__name__] = model
        self._edges.setdefault(model, {})
        self._resolve_pending()

    def register_field(self, model: Type, field: ManyToOne | OneToMany) -> None:
        target = self._resolve_target(field.to)
        if target is None or not hasattr(target, "_meta"):
            self.pending_fields.append((model, field))
            return
        field.resolve_model(target)
        self._add_edge(model, field)

    def edges_from(self, model: Type) -> List[RelationshipEdge]:
        return list(self._edges.get(model, {}).values())

    def edge(self, model: Type, attribute: str) -> RelationshipEdge:
        try:
            return self._edges[model][attribute]
        except KeyError as exc:
            raise RelationshipError(
                f"No relationship '{attribute}' declared on '{model.__name__}'"
            ) from exc

    def unresolved(self) -> List[str]:
        return [f"{model.__name__}.{field.name} -> {field.to}" for model, field in self.pending_fields]

    def _resolve_pending(self) -> None:
        unresolved = []
        for model, field in self.pending_fields:
            target = self._resolve_target(field.to)
            if target is None:
                unresolved.append((model, field))
                continue
            field.resolve_model(target)
            self._add_edge(model, field)
        self.pending_fields = unresolved

    def _resolve_target(self, target: Type | str) -> Optional[Type]:
        if isinstance(target, type):
            return target
        label = target.split(".")[-1]
        return self.models.get(label)

    def _add_edge(self, model: Type, field: ManyToOne | OneToMany) -> None:
        target = field.remote_model
        if isinstance(field, OneToMany):
            owning = target._meta.fields.get(field.mapped_by)
            if not isinstance(owning, ManyToOne):
                raise RelationshipError(
                    f"'{model.__name__}.{field.name}' is mapped by '{field.mapped_by}', "
                    f"which is not a ManyToOne on '{target.__name__}'"
                )
            edge = RelationshipEdge(
                source=model,
                target=target,
                attribute=field.name,
                cardinality=ONE_TO_MANY,
                owning=False,
                cascade=field.cascade,
                orphan_removal=field.orphan_removal,
                mapped_by=field.mapped_by,
            )
        else:
            edge = RelationshipEdge(
                source=model,
                target=target,
                attribute=field.require_name(),
                cardinality=MANY_TO_ONE,
                owning=True,
                cascade=field.cascade,
            )
        self._edges.setdefault(model, {})[edge.attribute] = edge


relationships = RelationshipTable()
