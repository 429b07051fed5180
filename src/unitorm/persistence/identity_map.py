"""
Entity registry: one in-memory instance per (type, identity).
"""

from __future__ import annotations

from typing import Any, Dict, List, NamedTuple, Optional, Type

from ..core.model import Model
from .errors import DuplicateIdentityError


class EntityKey(NamedTuple):
    model: Type[Model]
    identity: Any

    @classmethod
    def of(cls, instance: Model) -> Optional["EntityKey"]:
        identity = instance.pk
        if identity is None:
            return None
        return cls(type(instance), identity)


class IdentityMap:
    """
    Tracks managed instances keyed by :class:`EntityKey`.

    Instances whose identity is assigned on insert are held unkeyed until
    :meth:`rekey` is called. A registry belongs to a single persistence
    context and is not thread-safe.
    """

    def __init__(self) -> None:
        self._store: Dict[EntityKey, Model] = {}
        self._managed: Dict[int, Model] = {}

    def register(self, instance: Model) -> None:
        key = EntityKey.of(instance)
        if key is not None:
            existing = self._store.get(key)
            if existing is not None and existing is not instance:
                raise DuplicateIdentityError(key.model, key.identity)
            self._store[key] = instance
        self._managed[id(instance)] = instance

    def rekey(self, instance: Model) -> None:
        """Index an instance under the identity it received on insert."""
        self.register(instance)

    def lookup(self, model: Type[Model], identity: Any) -> Model | None:
        return self._store.get(EntityKey(model, identity))

    def unregister(self, key: EntityKey) -> None:
        instance = self._store.pop(key, None)
        if instance is not None:
            self._managed.pop(id(instance), None)

    def discard(self, instance: Model) -> None:
        key = EntityKey.of(instance)
        if key is not None and self._store.get(key) is instance:
            del self._store[key]
        self._managed.pop(id(instance), None)

    def clear(self) -> None:
        self._store.clear()
        self._managed.clear()

    def values(self) -> List[Model]:
        return list(self._managed.values())

    def __contains__(self, instance: Model) -> bool:
        return self._managed.get(id(instance)) is instance

    def __len__(self) -> int:
        return len(self._managed)
