"""
Storage backends executing the writes and queries of persistence contexts.
"""

from __future__ import annotations

from threading import Lock
from typing import Callable, Dict

from .base import (
    BackendConfigurationError,
    BackendError,
    BackendTransactionError,
    ConnectionConfig,
    ConstraintViolation,
    NotFoundError,
    StorageBackend,
)
from .memory import MemoryBackend, MemoryStore
from .sqlite import SQLiteBackend

BackendFactory = Callable[[], StorageBackend]

_stores: Dict[str, MemoryStore] = {}
_stores_lock = Lock()


def memory_store(name: str = "default") -> MemoryStore:
    """
    Return the named process-wide memory store, creating it on first use.
    """
    with _stores_lock:
        store = _stores.get(name)
        if store is None:
            store = _stores[name] = MemoryStore(name)
        return store


def drop_memory_store(name: str) -> None:
    with _stores_lock:
        _stores.pop(name, None)


def backend_factory(config: ConnectionConfig) -> BackendFactory:
    """
    Build a factory producing one backend connection per call.
    """
    scheme = config.scheme
    if scheme == "memory":
        store = memory_store(config.location or "default")
        return lambda: MemoryBackend(store)
    if scheme == "sqlite":
        return lambda: SQLiteBackend(config)
    raise BackendConfigurationError(f"Unsupported storage scheme '{scheme}' in {config.descriptive_label()}")


__all__ = [
    "BackendConfigurationError",
    "BackendError",
    "BackendFactory",
    "BackendTransactionError",
    "ConnectionConfig",
    "ConstraintViolation",
    "MemoryBackend",
    "MemoryStore",
    "NotFoundError",
    "SQLiteBackend",
    "StorageBackend",
    "backend_factory",
    "drop_memory_store",
    "memory_store",
]
