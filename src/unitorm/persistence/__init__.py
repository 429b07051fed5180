"""
Persistence layer: contexts, identity map, snapshots, cascades and
transactions.
"""

from .context import PersistenceContext
from .errors import (
    ContextClosedError,
    DuplicateIdentityError,
    EntityStateError,
    PersistenceError,
    TransientReferenceError,
)
from .factory import PersistenceContextFactory
from .identity_map import EntityKey, IdentityMap
from .settings import FLUSH_AUTO, FLUSH_COMMIT, ContextSettings
from .snapshot import Snapshot, SnapshotDiff, SnapshotStore
from .transaction import TransactionCoordinator, TransactionError, TransactionRequiredError, TransactionState
from .unit_of_work import PendingWrite, UnitOfWork

__all__ = [
    "FLUSH_AUTO",
    "FLUSH_COMMIT",
    "ContextClosedError",
    "ContextSettings",
    "DuplicateIdentityError",
    "EntityKey",
    "EntityStateError",
    "IdentityMap",
    "PendingWrite",
    "PersistenceContext",
    "PersistenceContextFactory",
    "PersistenceError",
    "Snapshot",
    "SnapshotDiff",
    "SnapshotStore",
    "TransactionCoordinator",
    "TransactionError",
    "TransactionRequiredError",
    "TransactionState",
    "TransientReferenceError",
    "UnitOfWork",
]
