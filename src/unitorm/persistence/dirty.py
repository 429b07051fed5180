"""
Dirty checker deriving updates and orphan removals from snapshots.
"""

from __future__ import annotations

import logging
from typing import List

from ..core.model import Model
from ..core.relations import RelationshipEdge, RelationshipTable
from .cascade import CascadeResolver
from .errors import EntityStateError
from .identity_map import EntityKey, IdentityMap
from .snapshot import SnapshotStore
from .unit_of_work import UPDATE, PendingWrite, UnitOfWork


class DirtyChecker:
    """
    Compares every flushed, managed entity with its snapshot.

    Collection changes are handled first: a child that left a collection is
    removed when the edge has ``orphan_removal``, otherwise its foreign key
    is cleared if it still points at the parent. Scalar changes, including
    foreign keys cleared that way, then become updates of the changed fields
    only. Pending inserts have no flushed baseline and are skipped.
    """

    def __init__(
        self,
        registry: IdentityMap,
        snapshots: SnapshotStore,
        unit_of_work: UnitOfWork,
        edges: RelationshipTable,
        cascade: CascadeResolver,
        logger: logging.Logger,
    ) -> None:
        self.registry = registry
        self.snapshots = snapshots
        self.unit_of_work = unit_of_work
        self.edges = edges
        self.cascade = cascade
        self.logger = logger

    def detect(self) -> List[PendingWrite]:
        baselined = [entity for entity in self.registry.values() if not self.unit_of_work.is_new(entity)]
        candidates = [entity for entity in baselined if self._is_flushed(entity)]
        for entity in candidates:
            self._check_identity(entity)
        # Removed parents still release the children that left their collections.
        for parent in baselined:
            self._process_collections(parent)

        updates: List[PendingWrite] = []
        for entity in candidates:
            if not self._is_flushed(entity):
                continue
            changed = self.snapshots.diff(entity).changed
            if not changed:
                continue
            updates.append(PendingWrite(UPDATE, entity, tuple(changed)))
        return updates

    def _process_collections(self, parent: Model) -> None:
        removed = self.snapshots.diff(parent).removed
        for attribute, keys in removed.items():
            edge = self.edges.edge(type(parent), attribute)
            for key in keys:
                child = self.registry.lookup(key.model, key.identity)
                if child is None or self.unit_of_work.is_deleted(child):
                    continue
                self._detach_child(edge, parent, child, key)

    def _detach_child(self, edge: RelationshipEdge, parent: Model, child: Model, key: EntityKey) -> None:
        if edge.orphan_removal:
            self.logger.debug(
                "Orphan %s pk=%r left %s.%s", key.model.__name__, key.identity, type(parent).__name__, edge.attribute
            )
            self.cascade.remove(child)
            return
        owning = child._meta.relation(edge.mapped_by)
        if owning.points_to(child, parent):
            owning.clear(child)

    def _check_identity(self, entity: Model) -> None:
        snapshot = self.snapshots.get(entity)
        if snapshot is not None and snapshot.values.get(entity._meta.primary_key.name) != entity.pk:
            raise EntityStateError(f"Identity of managed {type(entity).__name__} cannot change")

    def _is_flushed(self, entity: Model) -> bool:
        return not (self.unit_of_work.is_new(entity) or self.unit_of_work.is_deleted(entity))
