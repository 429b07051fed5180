"""
Persistence context coordinating the registry, snapshots, cascades and the
transaction coordinator over one storage backend connection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Type, TypeVar

from ..backends.base import Row, StorageBackend
from ..core.fields import SEQUENCE
from ..core.model import Model
from ..core.relations import RelationshipEdge, RelationshipTable, relationships
from ..query.query import Query
from ..utils import get_logger, set_correlation_id, time_call
from .cascade import CascadeResolver
from .dirty import DirtyChecker
from .errors import ContextClosedError, EntityStateError
from .identity_map import IdentityMap
from .settings import FLUSH_AUTO, ContextSettings
from .snapshot import SnapshotStore
from .transaction import TransactionCoordinator, TransactionRequiredError
from .unit_of_work import DELETE, INSERT, PendingWrite, UnitOfWork

if TYPE_CHECKING:
    from ..hooks import HookDispatcher


TModel = TypeVar("TModel", bound=Model)


class PersistenceContext:
    """
    Scope of one logical transaction.

    Operations are deferred: ``persist``, ``remove`` and attribute changes are
    only written when the context flushes, which happens on commit, on an
    explicit :meth:`flush` and (with ``flush_mode="auto"``) before a query.
    Within a context each stored row maps to exactly one instance.

    A context is not thread-safe; open one per unit of work.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        settings: Optional[ContextSettings] = None,
        edges: RelationshipTable = relationships,
    ) -> None:
        self.backend = backend
        self.settings = settings or ContextSettings()
        self.edges = edges
        self.correlation_id = set_correlation_id()
        self.logger = get_logger("persistence.context")
        self.identity_map = IdentityMap()
        self.snapshots = SnapshotStore()
        self.unit_of_work = UnitOfWork()
        self.cascade = CascadeResolver(
            self.identity_map,
            self.snapshots,
            self.unit_of_work,
            edges,
            assign_identity=self._assign_identity,
            logger=get_logger("persistence.cascade"),
        )
        self.dirty_checker = DirtyChecker(
            self.identity_map,
            self.snapshots,
            self.unit_of_work,
            edges,
            self.cascade,
            logger=get_logger("persistence.dirty"),
        )
        self._transaction = TransactionCoordinator(
            backend,
            flush=self._flush_pending,
            on_commit=self._after_commit,
            on_rollback=self._after_rollback,
        )
        from ..hooks import hooks

        self.hooks: "HookDispatcher" = hooks
        self._closed = False

    # ------------------------------------------------------------------ #
    # Context management
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "PersistenceContext":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._transaction.is_active:
                if exc_type:
                    self._transaction.rollback()
                else:
                    self._transaction.commit()
        finally:
            self.close()

    @property
    def transaction(self) -> TransactionCoordinator:
        return self._transaction

    @property
    def is_open(self) -> bool:
        return not self._closed

    def begin(self) -> None:
        self._ensure_open()
        self._transaction.begin()

    def commit(self) -> None:
        self._ensure_open()
        self._transaction.commit()

    def rollback(self) -> None:
        self._ensure_open()
        self._transaction.rollback()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._transaction.close()
        finally:
            self.clear()
            self.backend.close()
            self.logger.debug("Persistence context closed")

    # ------------------------------------------------------------------ #
    # Entity operations
    # ------------------------------------------------------------------ #
    def persist(self, entity: Model) -> None:
        self._ensure_open()
        self.cascade.persist(entity)

    def remove(self, entity: Model) -> None:
        self._ensure_open()
        self.cascade.remove(entity)

    def find(self, model: Type[TModel], identity: Any) -> Optional[TModel]:
        """
        Return the managed instance for ``identity``, loading it (and its
        relations) from storage when it is not managed yet. Removed entities
        are reported as missing.
        """
        self._ensure_open()
        if identity is None:
            return None
        managed = self.identity_map.lookup(model, identity)
        if managed is not None:
            return None if self.unit_of_work.is_deleted(managed) else managed
        pk_name = model._meta.primary_key.name
        rows = self.backend.execute_query(Query(model).filter(**{pk_name: identity}).limit(1))
        if not rows:
            return None
        return self._materialize(model, rows[0])

    def contains(self, entity: Model) -> bool:
        return entity in self.identity_map and not self.unit_of_work.is_deleted(entity)

    def detach(self, entity: Model) -> None:
        """Stop managing ``entity``; its pending changes are discarded."""
        self._ensure_open()
        self.identity_map.discard(entity)
        self.snapshots.discard(entity)
        self.unit_of_work.forget(entity)

    def clear(self) -> None:
        """Detach every managed entity."""
        self.identity_map.clear()
        self.snapshots.clear()
        self.unit_of_work.clear()

    def load(self, entity: Model, relation: str) -> Any:
        """
        Load one relationship of a managed entity from storage and return it.
        """
        self._ensure_open()
        if not self.contains(entity):
            raise EntityStateError(f"Cannot load '{relation}' of {entity!r}: it is not managed by this context")
        edge = self.edges.edge(type(entity), relation)
        self._auto_flush()
        if edge.is_collection:
            self._load_collection(entity, edge)
            self.snapshots.rebase_collection(entity, relation)
        else:
            self._load_reference(entity, edge)
        return getattr(entity, relation)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def query(self, model: Type[TModel]) -> Query[TModel]:
        self._ensure_open()
        return Query(model, context=self)

    def execute_query(self, query: Query[TModel]) -> List[TModel]:
        self._ensure_open()
        self._auto_flush()
        results = []
        for row in self.backend.execute_query(query):
            instance = self._materialize(query.model, row)
            if instance is not None:
                results.append(instance)
        return results

    # ------------------------------------------------------------------ #
    # Flush
    # ------------------------------------------------------------------ #
    def flush(self) -> None:
        """
        Write pending changes inside the active transaction. A failing flush
        rolls the transaction back and closes the context.
        """
        self._ensure_open()
        if not self._transaction.is_active:
            raise TransactionRequiredError("flush() requires an active transaction.")
        try:
            self._flush_pending()
        except Exception:
            self._transaction.abort()
            raise

    def _flush_pending(self) -> None:
        with time_call("context.flush", self.logger, threshold_ms=self.settings.slow_flush_ms):
            self.cascade.cascade_on_flush()
            self.cascade.check_references()
            updates = self.dirty_checker.detect()
            writes = self.unit_of_work.write_set(updates)
            for write in writes:
                self._execute(write)
            self._complete_flush()
        if writes:
            self.logger.info("Flushed %d pending writes", len(writes))

    def _execute(self, write: PendingWrite) -> None:
        entity = write.entity
        model = type(entity)
        meta = entity._meta
        if write.kind == INSERT:
            self.hooks.fire("before_save", entity, context=self, created=True)
            values = {field_obj.column_name(): field_obj.db_value(entity) for field_obj in meta.get_fields()}
            identity = self.backend.execute_insert(model, values)
            if entity.pk is None:
                meta.primary_key.load(entity, identity)
                self.identity_map.rekey(entity)
            self.hooks.fire("after_save", entity, context=self, created=True)
        elif write.kind == DELETE:
            self.hooks.fire("before_delete", entity, context=self)
            self.backend.execute_delete(model, entity.pk)
            self.hooks.fire("after_delete", entity, context=self)
        else:
            self.hooks.fire("before_save", entity, context=self, created=False)
            changed = {}
            for name in write.fields:
                field_obj = meta.get_field(name)
                changed[field_obj.column_name()] = field_obj.db_value(entity)
            self.backend.execute_update(model, entity.pk, changed)
            self.hooks.fire("after_save", entity, context=self, created=False)

    def _complete_flush(self) -> None:
        deleted = list(self.unit_of_work.deleted.values())
        for entity in deleted:
            self.identity_map.discard(entity)
            self.snapshots.discard(entity)
        self.unit_of_work.clear()
        gone = {id(entity) for entity in deleted}
        for entity in self.identity_map.values():
            if gone:
                for collection in entity._meta.collections:
                    members = collection.members(entity)
                    if any(id(member) in gone for member in members):
                        collection.load(entity, [member for member in members if id(member) not in gone])
            self.snapshots.capture(entity)

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def _materialize(self, model: Type[TModel], row: Row) -> Optional[TModel]:
        identity = row.get(model._meta.primary_key.column_name())
        managed = self.identity_map.lookup(model, identity)
        if managed is not None:
            return None if self.unit_of_work.is_deleted(managed) else managed
        instance = model.from_storage(row)
        self.identity_map.register(instance)
        for edge in self.edges.edges_from(model):
            if edge.is_collection:
                self._load_collection(instance, edge)
            else:
                self._load_reference(instance, edge)
        self.snapshots.capture(instance)
        return instance

    def _load_reference(self, instance: Model, edge: RelationshipEdge) -> None:
        identity = instance._field_values.get(edge.attribute)
        if identity is None:
            return
        target = self.find(edge.target, identity)
        if target is not None:
            instance._meta.relation(edge.attribute).attach(instance, target)

    def _load_collection(self, instance: Model, edge: RelationshipEdge) -> None:
        children: List[Model] = []
        if instance.pk is not None:
            query = (
                Query(edge.target)
                .filter(**{edge.mapped_by: instance.pk})
                .order_by(edge.target._meta.primary_key.name)
            )
            for row in self.backend.execute_query(query):
                child = self._materialize(edge.target, row)
                if child is not None:
                    children.append(child)
        instance._meta.relation(edge.attribute).load(instance, children)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _assign_identity(self, entity: Model) -> None:
        meta = entity._meta
        if entity.pk is None and meta.generation_strategy == SEQUENCE:
            meta.primary_key.load(entity, self.backend.generate_identity(type(entity)))

    def _auto_flush(self) -> None:
        if self.settings.flush_mode == FLUSH_AUTO and self._transaction.is_active:
            self.flush()

    def _after_commit(self) -> None:
        self.hooks.fire("after_commit", None, context=self)

    def _after_rollback(self, failed: bool) -> None:
        self.unit_of_work.clear()
        self.hooks.fire("after_rollback", None, context=self, failed=failed)
        if failed:
            self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ContextClosedError("This persistence context is closed.")
