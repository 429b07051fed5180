"""
Cascade resolver propagating persist and remove along relationship edges.
"""

from __future__ import annotations

import logging
from typing import Callable

from ..core.model import Model
from ..core.relations import RelationshipTable
from .errors import EntityStateError, TransientReferenceError
from .identity_map import IdentityMap
from .snapshot import SnapshotStore
from .unit_of_work import UnitOfWork


class CascadeResolver:
    """
    Applies the persist and remove operations of a persistence context,
    following every edge whose cascade flags ask for it.

    ``assign_identity`` is called for each entity as it becomes managed so
    sequence generated identities are visible immediately.
    """

    def __init__(
        self,
        registry: IdentityMap,
        snapshots: SnapshotStore,
        unit_of_work: UnitOfWork,
        edges: RelationshipTable,
        assign_identity: Callable[[Model], None],
        logger: logging.Logger,
    ) -> None:
        self.registry = registry
        self.snapshots = snapshots
        self.unit_of_work = unit_of_work
        self.edges = edges
        self.assign_identity = assign_identity
        self.logger = logger

    def persist(self, entity: Model) -> None:
        if entity in self.registry:
            if self.unit_of_work.is_deleted(entity):
                self.unit_of_work.restore(entity)
                self._cascade_persist(entity)
            return
        self.assign_identity(entity)
        self.registry.register(entity)
        self.snapshots.capture(entity)
        self.unit_of_work.register_new(entity)
        self.logger.debug("Managing new %s pk=%r", type(entity).__name__, entity.pk)
        self._cascade_persist(entity)

    def remove(self, entity: Model) -> None:
        if entity not in self.registry:
            raise EntityStateError(f"Cannot remove {entity!r}: it is not managed by this context")
        if self.unit_of_work.is_deleted(entity):
            return
        if not self.unit_of_work.register_deleted(entity):
            # Never flushed: forget it instead of deleting a row that does not exist.
            self.registry.discard(entity)
            self.snapshots.discard(entity)
        self.logger.debug("Removing %s pk=%r", type(entity).__name__, entity.pk)
        for edge in self.edges.edges_from(type(entity)):
            if not edge.cascades_remove:
                continue
            for related in edge.related(entity):
                if related in self.registry:
                    self.remove(related)

    def cascade_on_flush(self) -> None:
        """
        Re-apply persist cascades to entities reached since they were persisted.
        """
        for entity in self.registry.values():
            if not self.unit_of_work.is_deleted(entity):
                self._cascade_persist(entity)

    def check_references(self) -> None:
        """
        Reject to-one references to transient entities before any write.
        """
        for entity in self.registry.values():
            if self.unit_of_work.is_deleted(entity):
                continue
            for edge in self.edges.edges_from(type(entity)):
                if edge.is_collection:
                    continue
                for target in edge.related(entity):
                    if target not in self.registry and target.pk is None:
                        raise TransientReferenceError(entity, edge.attribute, target)

    def _cascade_persist(self, entity: Model) -> None:
        for edge in self.edges.edges_from(type(entity)):
            if not edge.cascades_persist:
                continue
            for related in edge.related(entity):
                if related not in self.registry:
                    self.persist(related)
