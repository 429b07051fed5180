"""
Lifecycle hooks fired by the persistence context.
"""

from .dispatcher import EVENTS, HookDispatcher, hooks

__all__ = ["EVENTS", "HookDispatcher", "hooks"]
