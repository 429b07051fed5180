"""
Factory creating persistence contexts over a configured storage backend.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Sequence, Type, TypeVar

from ..backends import BackendFactory, ConnectionConfig, backend_factory
from ..core.model import Model
from ..utils import get_logger
from .context import PersistenceContext
from .settings import ContextSettings


T = TypeVar("T")


class PersistenceContextFactory:
    """
    Produces one :class:`PersistenceContext` per unit of work.

    Each context gets its own backend connection from ``backend_factory``.
    When ``models`` are given their tables are created up front.
    """

    def __init__(
        self,
        backend_factory: BackendFactory,
        *,
        settings: Optional[ContextSettings] = None,
        models: Iterable[Type[Model]] = (),
    ) -> None:
        self.backend_factory = backend_factory
        self.settings = settings or ContextSettings.from_env()
        self.logger = get_logger("persistence.factory")
        self._closed = False
        models = list(models)
        if models:
            self.create_schema(models)

    @classmethod
    def from_config(
        cls,
        config: ConnectionConfig,
        *,
        settings: Optional[ContextSettings] = None,
        models: Iterable[Type[Model]] = (),
    ) -> "PersistenceContextFactory":
        factory = cls(backend_factory(config), settings=settings, models=models)
        factory.logger.info("Context factory ready for %s", config.descriptive_label())
        return factory

    @classmethod
    def from_env(
        cls,
        env_var: str = "UNITORM_DATABASE_URL",
        *,
        models: Iterable[Type[Model]] = (),
    ) -> "PersistenceContextFactory":
        return cls.from_config(ConnectionConfig.from_env(env_var), settings=ContextSettings.from_env(), models=models)

    def create_schema(self, models: Sequence[Type[Model]]) -> None:
        backend = self.backend_factory()
        try:
            backend.create_tables(models)
        finally:
            backend.close()
        self.logger.debug("Created tables for %s", ", ".join(model.__name__ for model in models))

    def create_context(self) -> PersistenceContext:
        if self._closed:
            raise RuntimeError("PersistenceContextFactory is closed.")
        return PersistenceContext(self.backend_factory(), settings=self.settings)

    def run_in_transaction(self, work: Callable[[PersistenceContext], T]) -> T:
        """
        Run ``work`` inside a fresh context: commit when it returns, roll
        back when it raises. The context is closed either way.
        """
        with self.create_context() as context:
            try:
                return work(context)
            except Exception:
                self.logger.warning("Unit of work failed; rolling back", exc_info=True)
                raise

    def close(self) -> None:
        self._closed = True
