"""
Declarative, backend independent query expressions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, Iterator, List, Optional, Tuple, Type, TypeVar

from ..core.fields import Field
from .expressions import Q, split_lookup

if TYPE_CHECKING:
    from ..core.model import Model
    from ..persistence.context import PersistenceContext


TModel = TypeVar("TModel", bound="Model")


def _identity_of(value: Any) -> Any:
    if value is not None and hasattr(value, "_meta"):
        return value.pk
    return value


class Query(Generic[TModel]):
    """
    Chainable query over one entity type.

    A query is a plain description (model, conditions, ordering, window);
    storage backends interpret it. Bound to a persistence context it can be
    executed directly and yields managed instances.
    """

    def __init__(
        self,
        model: Type[TModel],
        *,
        where: Optional[Q] = None,
        ordering: Tuple[str, ...] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        context: "PersistenceContext | None" = None,
    ) -> None:
        self.model = model
        self.conditions = where or Q()
        self.ordering = ordering
        self.limit_value = limit
        self.offset_value = offset
        self._context = context

    def __repr__(self) -> str:
        return f"<Query {self.model.__name__} where={self.conditions!r} order={self.ordering!r}>"

    # Building ----------------------------------------------------------
    def filter(self, **lookups: Any) -> "Query[TModel]":
        return self.where(Q(**lookups))

    def exclude(self, **lookups: Any) -> "Query[TModel]":
        return self.where(~Q(**lookups))

    def where(self, q_object: Q) -> "Query[TModel]":
        normalized = q_object.map_leaves(self._normalize)
        return self._clone(where=self.conditions & normalized)

    def order_by(self, *fields: str) -> "Query[TModel]":
        for name in fields:
            self.model._meta.get_field(name.lstrip("-"))
        return self._clone(ordering=tuple(fields))

    def limit(self, value: int) -> "Query[TModel]":
        return self._clone(limit=value)

    def offset(self, value: int) -> "Query[TModel]":
        return self._clone(offset=value)

    # Interpretation helpers for backends --------------------------------
    def resolve(self, field_lookup: str) -> Tuple[Field, str]:
        field_name, lookup = split_lookup(field_lookup)
        return self.model._meta.get_field(field_name), lookup

    def ordering_columns(self) -> List[Tuple[str, bool]]:
        """``(column, descending)`` pairs in ordering priority."""
        columns = []
        for name in self.ordering:
            descending = name.startswith("-")
            field_obj = self.model._meta.get_field(name.lstrip("-"))
            columns.append((field_obj.column_name(), descending))
        return columns

    # Execution ---------------------------------------------------------
    def all(self) -> List[TModel]:
        if self._context is None:
            raise RuntimeError(
                "Query execution requires a persistence context. Use context.query(model)."
            )
        return self._context.execute_query(self)

    def first(self) -> Optional[TModel]:
        results = self.limit(1).all() if self.limit_value is None else self.all()
        return results[0] if results else None

    def __iter__(self) -> Iterator[TModel]:
        return iter(self.all())

    # Internal helpers --------------------------------------------------
    def _normalize(self, field_lookup: str, value: Any) -> Tuple[str, Any]:
        field_obj, lookup = self.resolve(field_lookup)
        if lookup == "in":
            value = [_identity_of(item) for item in value]
        else:
            value = _identity_of(value)
        if value is None and lookup != "exact":
            raise ValueError("NULL comparison only supported for equality.")
        return f"{field_obj.require_name()}__{lookup}", value

    def _clone(self, **overrides: Any) -> "Query[TModel]":
        params = {
            "where": self.conditions,
            "ordering": self.ordering,
            "limit": self.limit_value,
            "offset": self.offset_value,
            "context": self._context,
        }
        params.update(overrides)
        return Query(self.model, **params)
