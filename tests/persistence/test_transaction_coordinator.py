import pytest

from unitorm.backends import BackendTransactionError
from unitorm.persistence import TransactionCoordinator, TransactionError, TransactionState


class RecordingBackend:
    def __init__(self, fail_commit=False):
        self.calls = []
        self.fail_commit = fail_commit

    def begin_tx(self):
        self.calls.append("begin")

    def commit_tx(self):
        self.calls.append("commit")
        if self.fail_commit:
            raise BackendTransactionError("disk full")

    def rollback_tx(self):
        self.calls.append("rollback")


def make_coordinator(backend, flush=None):
    events = []
    coordinator = TransactionCoordinator(
        backend,
        flush=flush or (lambda: events.append("flush")),
        on_commit=lambda: events.append("committed"),
        on_rollback=lambda failed: events.append(("rolled_back", failed)),
    )
    return coordinator, events


def test_commit_flushes_before_committing():
    backend = RecordingBackend()
    coordinator, events = make_coordinator(backend)
    coordinator.begin()
    assert coordinator.is_active
    coordinator.commit()

    assert backend.calls == ["begin", "commit"]
    assert events == ["flush", "committed"]
    assert coordinator.state is TransactionState.COMMITTED


def test_begin_is_only_allowed_once():
    coordinator, _ = make_coordinator(RecordingBackend())
    coordinator.begin()
    with pytest.raises(TransactionError):
        coordinator.begin()
    coordinator.commit()
    with pytest.raises(TransactionError):
        coordinator.begin()


def test_commit_requires_active_transaction():
    coordinator, _ = make_coordinator(RecordingBackend())
    with pytest.raises(TransactionError):
        coordinator.commit()


def test_failed_flush_rolls_back_and_reraises():
    backend = RecordingBackend()

    def failing_flush():
        raise ValueError("bad write")

    coordinator, events = make_coordinator(backend, flush=failing_flush)
    coordinator.begin()
    with pytest.raises(ValueError):
        coordinator.commit()

    assert backend.calls == ["begin", "rollback"]
    assert events == [("rolled_back", True)]
    assert coordinator.state is TransactionState.ROLLED_BACK


def test_failed_backend_commit_rolls_back():
    backend = RecordingBackend(fail_commit=True)
    coordinator, events = make_coordinator(backend)
    coordinator.begin()
    with pytest.raises(BackendTransactionError):
        coordinator.commit()

    assert backend.calls == ["begin", "commit", "rollback"]
    assert events == ["flush", ("rolled_back", True)]


def test_rollback_is_idempotent_once_rolled_back():
    backend = RecordingBackend()
    coordinator, events = make_coordinator(backend)
    coordinator.begin()
    coordinator.rollback()
    coordinator.rollback()

    assert backend.calls == ["begin", "rollback"]
    assert events == [("rolled_back", False)]


def test_rollback_without_transaction_raises():
    coordinator, _ = make_coordinator(RecordingBackend())
    with pytest.raises(TransactionError):
        coordinator.rollback()


def test_close_rolls_back_active_transaction():
    backend = RecordingBackend()
    coordinator, _ = make_coordinator(backend)
    coordinator.begin()
    coordinator.close()

    assert backend.calls == ["begin", "rollback"]
    assert coordinator.state is TransactionState.CLOSED
    assert coordinator.outcome is TransactionState.ROLLED_BACK
    coordinator.rollback()


def test_abort_rolls_back_as_failure():
    backend = RecordingBackend()
    coordinator, events = make_coordinator(backend)
    coordinator.begin()
    coordinator.abort()
    coordinator.abort()

    assert backend.calls == ["begin", "rollback"]
    assert events == [("rolled_back", True)]
