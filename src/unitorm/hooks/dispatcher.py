"""
Hook dispatcher for entity and transaction lifecycle events.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Type

from ..core.model import Model


HookHandler = Callable[..., None]

SAVE_EVENTS = ("before_save", "after_save")
DELETE_EVENTS = ("before_delete", "after_delete")
TRANSACTION_EVENTS = ("after_commit", "after_rollback")
EVENTS = frozenset((*SAVE_EVENTS, *DELETE_EVENTS, *TRANSACTION_EVENTS))


class HookDispatcher:
    """
    Global and per-model handler registry.

    Handlers receive the entity (``None`` for transaction events) plus keyword
    context such as ``context=`` and, for save events, ``created=``. Global
    handlers run before model handlers; exceptions propagate to the caller.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Optional[Type[Model]], Dict[str, List[HookHandler]]] = defaultdict(
            lambda: defaultdict(list)
        )

    def register(self, event: str, handler: HookHandler, *, model: Optional[Type[Model]] = None) -> None:
        self._check_event(event)
        self._handlers[model][event].append(handler)

    def unregister(self, event: str, handler: HookHandler, *, model: Optional[Type[Model]] = None) -> bool:
        self._check_event(event)
        registered = self._handlers.get(model, {}).get(event, [])
        if handler in registered:
            registered.remove(handler)
            return True
        return False

    def handlers_for(self, event: str, model: Optional[Type[Model]] = None) -> List[HookHandler]:
        handlers = list(self._handlers.get(None, {}).get(event, ()))
        if model is not None:
            handlers.extend(self._handlers.get(model, {}).get(event, ()))
        return handlers

    def fire(self, event: str, instance: Optional[Model], **context: Any) -> None:
        model = type(instance) if instance is not None else None
        for handler in self.handlers_for(event, model):
            handler(instance, **context)

    def clear(self) -> None:
        self._handlers.clear()

    @staticmethod
    def _check_event(event: str) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown hook event '{event}'")


hooks = HookDispatcher()
