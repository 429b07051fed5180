"""
Transaction coordinator wrapping the unit of work of one context.
"""

from __future__ import annotations

import enum
from typing import Callable

from ..backends.base import StorageBackend
from ..utils import get_logger


class TransactionError(RuntimeError):
    pass


class TransactionRequiredError(TransactionError):
    """Raised when an operation needs an active transaction."""


class TransactionState(enum.Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    CLOSED = "closed"


class TransactionCoordinator:
    """
    Drives begin/commit/rollback for a single logical transaction.

    ``flush`` writes the pending changes during commit. ``on_rollback`` runs
    after every rollback with ``failed=True`` when the rollback was caused
    by a failing commit.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        flush: Callable[[], None],
        on_commit: Callable[[], None] | None = None,
        on_rollback: Callable[[bool], None] | None = None,
    ) -> None:
        self.backend = backend
        self._flush = flush
        self._on_commit = on_commit
        self._on_rollback = on_rollback
        self.state = TransactionState.NOT_STARTED
        self.outcome: TransactionState | None = None
        self.logger = get_logger("persistence.transaction")

    @property
    def is_active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    def begin(self) -> None:
        if self.state is not TransactionState.NOT_STARTED:
            raise TransactionError(f"Cannot begin a transaction in state '{self.state.value}'.")
        self.backend.begin_tx()
        self.state = TransactionState.ACTIVE
        self.logger.debug("Transaction started")

    def commit(self) -> None:
        if not self.is_active:
            raise TransactionError(f"Cannot commit a transaction in state '{self.state.value}'.")
        try:
            self._flush()
            self.backend.commit_tx()
        except Exception:
            self.logger.warning("Commit failed; rolling back", exc_info=True)
            self._abort(failed=True)
            raise
        self.state = TransactionState.COMMITTED
        self.logger.debug("Transaction committed")
        if self._on_commit is not None:
            self._on_commit()

    def rollback(self) -> None:
        if TransactionState.ROLLED_BACK in (self.state, self.outcome):
            return
        if not self.is_active:
            raise TransactionError(f"Cannot roll back a transaction in state '{self.state.value}'.")
        self._abort(failed=False)

    def abort(self) -> None:
        """Roll back after a failed flush outside of commit."""
        if self.is_active:
            self.logger.warning("Flush failed; rolling back")
            self._abort(failed=True)

    def close(self) -> None:
        if self.is_active:
            self.logger.warning("Closing with an active transaction; rolling back")
            self._abort(failed=False)
        if self.state is not TransactionState.CLOSED:
            self.outcome = self.state
        self.state = TransactionState.CLOSED

    def _abort(self, *, failed: bool) -> None:
        try:
            self.backend.rollback_tx()
        except Exception:
            self.logger.exception("Backend rollback failed")
            raise
        finally:
            self.state = TransactionState.ROLLED_BACK
            if self._on_rollback is not None:
                self._on_rollback(failed)
        self.logger.debug("Transaction rolled back")
