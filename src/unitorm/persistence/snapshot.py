"""
Snapshots of managed entity state used as the dirty-checking baseline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Tuple

from ..core.model import Model
from .identity_map import EntityKey


def membership(children: List[Model]) -> FrozenSet[EntityKey]:
    keys = (EntityKey.of(child) for child in children)
    return frozenset(key for key in keys if key is not None)


@dataclass(frozen=True)
class Snapshot:
    """
    Scalar values (foreign keys by identity) and collection membership of an
    entity as of the moment it became managed or was last flushed.
    """

    values: Mapping[str, Any]
    collections: Mapping[str, FrozenSet[EntityKey]]

    @classmethod
    def of(cls, instance: Model) -> "Snapshot":
        meta = instance._meta
        values = {field_obj.require_name(): field_obj.state_value(instance) for field_obj in meta.get_fields()}
        collections = {
            collection.name: membership(collection.members(instance)) for collection in meta.collections
        }
        return cls(MappingProxyType(values), MappingProxyType(collections))


@dataclass
class SnapshotDiff:
    changed: Dict[str, Tuple[Any, Any]] = field(default_factory=dict)
    added: Dict[str, List[Model]] = field(default_factory=dict)
    removed: Dict[str, List[EntityKey]] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.changed or self.added or self.removed)


class SnapshotStore:
    """
    Holds one snapshot per managed instance.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[int, Snapshot] = {}

    def capture(self, instance: Model) -> Snapshot:
        snapshot = Snapshot.of(instance)
        self._snapshots[id(instance)] = snapshot
        return snapshot

    def get(self, instance: Model) -> Snapshot | None:
        return self._snapshots.get(id(instance))

    def discard(self, instance: Model) -> None:
        self._snapshots.pop(id(instance), None)

    def clear(self) -> None:
        self._snapshots.clear()

    def diff(self, instance: Model) -> SnapshotDiff:
        snapshot = self._snapshots.get(id(instance))
        if snapshot is None:
            raise KeyError(f"No snapshot recorded for {instance!r}")
        result = SnapshotDiff()
        meta = instance._meta
        for field_obj in meta.get_fields():
            name = field_obj.require_name()
            before = snapshot.values.get(name)
            after = field_obj.state_value(instance)
            if before != after:
                result.changed[name] = (before, after)

        for collection in meta.collections:
            baseline = snapshot.collections.get(collection.name, frozenset())
            children = collection.members(instance)
            current = membership(children)
            added = [child for child in children if EntityKey.of(child) not in baseline]
            removed = [key for key in baseline if key not in current]
            if added:
                result.added[collection.name] = added
            if removed:
                result.removed[collection.name] = sorted(removed, key=lambda key: repr(key.identity))
        return result

    def rebase_collection(self, instance: Model, name: str) -> None:
        """Adopt the current membership of one collection as its baseline."""
        snapshot = self._snapshots.get(id(instance))
        if snapshot is None:
            return
        collection = instance._meta.relation(name)
        collections = dict(snapshot.collections)
        collections[name] = membership(collection.members(instance))
        self._snapshots[id(instance)] = Snapshot(snapshot.values, MappingProxyType(collections))
