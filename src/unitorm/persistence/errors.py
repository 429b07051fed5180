"""
Error hierarchy raised by persistence contexts.
"""

from __future__ import annotations

from typing import Any


class PersistenceError(RuntimeError):
    """Base error for persistence context failures."""


class DuplicateIdentityError(PersistenceError):
    """Raised when a second instance claims an identity already managed."""

    def __init__(self, model: type, identity: Any) -> None:
        super().__init__(
            f"Another {model.__name__} instance with identity {identity!r} is already managed"
        )
        self.model = model
        self.identity = identity


class TransientReferenceError(PersistenceError):
    """
    Raised at flush when a managed entity references an entity that is not
    managed through a relationship that does not cascade persist.
    """

    def __init__(self, entity: Any, attribute: str, target: Any) -> None:
        super().__init__(
            f"{type(entity).__name__}.{attribute} references transient {type(target).__name__}; "
            "persist it first or cascade persist on the relationship"
        )
        self.entity = entity
        self.attribute = attribute
        self.target = target


class EntityStateError(PersistenceError):
    """Raised when an operation needs a managed entity and gets another."""


class ContextClosedError(PersistenceError):
    """Raised when a closed persistence context is used."""
