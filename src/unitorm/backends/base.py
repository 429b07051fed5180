"""
Storage backend protocol, errors and connection configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Protocol, Sequence, Type

if TYPE_CHECKING:
    from ..core.model import Model
    from ..query.query import Query


class BackendError(RuntimeError):
    """Base error for storage backend failures."""


class BackendConfigurationError(BackendError):
    """Raised when backend configuration is invalid."""


class BackendTransactionError(BackendError):
    """Raised when begin/commit/rollback are called out of order."""


class ConstraintViolation(BackendError):
    """
    Raised when a write breaks a storage constraint (primary key, not-null,
    unique or foreign key).
    """

    def __init__(self, message: str, *, constraint: str | None = None, table: str | None = None) -> None:
        super().__init__(message)
        self.constraint = constraint
        self.table = table


class NotFoundError(BackendError):
    """Raised when an update or delete targets a row that does not exist."""

    def __init__(self, table: str, identity: Any) -> None:
        super().__init__(f"No row in '{table}' with identity {identity!r}")
        self.table = table
        self.identity = identity


@dataclass
class ConnectionConfig:
    """
    Normalized storage configuration.

    ``url`` is ``memory://<store name>`` or ``sqlite:///<path>``.
    """

    url: str
    timeout: float | None = None
    options: dict[str, Any] | None = None
    source: str | None = None

    @property
    def scheme(self) -> str:
        scheme, separator, _ = self.url.partition("://")
        if not separator:
            raise BackendConfigurationError(f"Storage URL '{self.url}' has no scheme")
        return scheme.lower()

    @property
    def location(self) -> str:
        return self.url.partition("://")[2]

    @classmethod
    def from_env(cls, env_var: str, **kwargs: Any) -> "ConnectionConfig":
        value = os.getenv(env_var)
        if not value:
            raise BackendConfigurationError(f"Environment variable {env_var} is not set")
        return cls(url=value, source=env_var, **kwargs)

    def descriptive_label(self) -> str:
        if self.source:
            return f"{self.source} ({self.url})"
        return self.url


Row = Dict[str, Any]


class StorageBackend(Protocol):
    """
    Collaborator executing the writes and queries a persistence context
    issues. One backend instance is one connection: it is never shared
    between contexts. Values are keyed by column name.
    """

    def create_tables(self, models: Sequence[Type["Model"]]) -> None:
        """
        Make sure storage exists for the given models.
        """

    def generate_identity(self, model: Type["Model"]) -> Any:
        """
        Draw the next identity for ``model`` from a backend sequence.
        """

    def execute_insert(self, model: Type["Model"], values: Mapping[str, Any]) -> Any:
        """
        Insert a row and return its identity (generated when not supplied).
        """

    def execute_update(self, model: Type["Model"], identity: Any, changed: Mapping[str, Any]) -> None:
        """
        Update the given columns; raises ``NotFoundError`` for a missing row.
        """

    def execute_delete(self, model: Type["Model"], identity: Any) -> None:
        """
        Delete a row; raises ``NotFoundError`` for a missing row.
        """

    def execute_query(self, query: "Query") -> List[Row]:
        """
        Return the rows matching a declarative query.
        """

    def begin_tx(self) -> None: ...

    def commit_tx(self) -> None: ...

    def rollback_tx(self) -> None: ...

    def close(self) -> None:
        """
        Release the connection. Implementations should be idempotent.
        """
