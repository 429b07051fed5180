"""
UnitORM public package initialization.

Entities are plain :class:`Model` subclasses; a :class:`PersistenceContext`
tracks them and writes their changes as one unit of work.
"""

from .backends import ConnectionConfig, MemoryBackend, SQLiteBackend  # noqa: F401
from .core.fields import (
    AutoField,
    BooleanField,
    FloatField,
    IntegerField,
    StringField,
)  # noqa: F401
from .core.model import Model, ModelConfigurationError  # noqa: F401
from .core.relations import Cascade, ManyToOne, OneToMany  # noqa: F401
from .hooks import hooks  # noqa: F401
from .persistence import (  # noqa: F401
    ContextSettings,
    PersistenceContext,
    PersistenceContextFactory,
    PersistenceError,
    TransactionError,
)
from .query import Q, Query  # noqa: F401
from .utils import configure_logging  # noqa: F401

__all__ = [
    "Model",
    "AutoField",
    "BooleanField",
    "FloatField",
    "IntegerField",
    "StringField",
    "Cascade",
    "ManyToOne",
    "OneToMany",
    "ModelConfigurationError",
    "ConnectionConfig",
    "MemoryBackend",
    "SQLiteBackend",
    "ContextSettings",
    "PersistenceContext",
    "PersistenceContextFactory",
    "PersistenceError",
    "TransactionError",
    "Query",
    "Q",
    "configure_logging",
    "hooks",
]
