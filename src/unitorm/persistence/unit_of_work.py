"""
Unit of Work tracking pending inserts and deletes, and ordering the
write set a flush executes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from ..core.model import Model


INSERT = "insert"
UPDATE = "update"
DELETE = "delete"


@dataclass(frozen=True)
class PendingWrite:
    kind: str
    entity: Model
    fields: Tuple[str, ...] = ()

    def __repr__(self) -> str:
        return f"<PendingWrite {self.kind} {type(self.entity).__name__} pk={self.entity.pk!r} {self.fields}>"


class UnitOfWork:
    """
    Tracks new and deleted objects within a persistence context.

    Dirty objects are not registered: the dirty checker derives updates from
    snapshots at flush time. Registration order is preserved.
    """

    def __init__(self) -> None:
        self.new: Dict[int, Model] = {}
        self.deleted: Dict[int, Model] = {}

    # Registration methods ----------------------------------------------
    def register_new(self, instance: Model) -> None:
        self.deleted.pop(id(instance), None)
        self.new[id(instance)] = instance

    def register_deleted(self, instance: Model) -> bool:
        """
        Mark an instance for deletion. Returns ``False`` when the instance was
        a pending insert, in which case the insert is simply cancelled.
        """
        if self.new.pop(id(instance), None) is not None:
            return False
        self.deleted[id(instance)] = instance
        return True

    def restore(self, instance: Model) -> None:
        self.deleted.pop(id(instance), None)

    def forget(self, instance: Model) -> None:
        self.new.pop(id(instance), None)
        self.deleted.pop(id(instance), None)

    def is_new(self, instance: Model) -> bool:
        return id(instance) in self.new

    def is_deleted(self, instance: Model) -> bool:
        return id(instance) in self.deleted

    def clear(self) -> None:
        self.new.clear()
        self.deleted.clear()

    # Write set ---------------------------------------------------------
    def write_set(self, updates: Iterable[PendingWrite]) -> List[PendingWrite]:
        """
        Order the pending writes: inserts parents-first, then updates, then
        deletes children-first, so foreign keys are valid after each write.
        """
        inserts = [PendingWrite(INSERT, entity) for entity in dependency_order(self.new.values())]
        deletes = [
            PendingWrite(DELETE, entity)
            for entity in reversed(dependency_order(self.deleted.values()))
        ]
        return [*inserts, *updates, *deletes]


def dependency_order(entities: Iterable[Model]) -> List[Model]:
    """
    Order entities so that every entity follows the entities it references
    through a to-one relationship (within the given set).
    """
    pending = {id(entity): entity for entity in entities}
    by_key = {(type(entity), entity.pk): entity for entity in pending.values() if entity.pk is not None}
    ordered: List[Model] = []
    visited: set[int] = set()

    def visit(entity: Model, trail: set[int]) -> None:
        marker = id(entity)
        if marker in visited or marker in trail:
            return
        trail.add(marker)
        for reference in entity._meta.references:
            target = reference.related_instance(entity)
            if target is None:
                target = by_key.get((reference.remote_model, entity._field_values.get(reference.name)))
            if target is not None and id(target) in pending:
                visit(target, trail)
        trail.discard(marker)
        visited.add(marker)
        ordered.append(entity)

    for entity in list(pending.values()):
        visit(entity, set())
    return ordered
