"""
Runtime settings for persistence contexts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

FLUSH_AUTO = "auto"
FLUSH_COMMIT = "commit"


@dataclass(frozen=True)
class ContextSettings:
    """
    ``flush_mode="auto"`` flushes pending changes before a query runs inside
    an active transaction; ``"commit"`` only flushes on commit or explicit
    ``flush()``. Flushes slower than ``slow_flush_ms`` are logged as warnings.
    """

    flush_mode: str = FLUSH_AUTO
    slow_flush_ms: float = 250.0

    def __post_init__(self) -> None:
        if self.flush_mode not in (FLUSH_AUTO, FLUSH_COMMIT):
            raise ValueError(f"Unknown flush mode '{self.flush_mode}'")
        if self.slow_flush_ms < 0:
            raise ValueError("slow_flush_ms must be non-negative")

    @classmethod
    def from_env(cls, prefix: str = "UNITORM_") -> "ContextSettings":
        flush_mode = os.getenv(f"{prefix}FLUSH_MODE", FLUSH_AUTO).strip().lower()
        raw_threshold = os.getenv(f"{prefix}SLOW_FLUSH_MS")
        if raw_threshold is None:
            return cls(flush_mode=flush_mode)
        try:
            threshold = float(raw_threshold)
        except ValueError as exc:
            raise ValueError(f"Invalid float value for '{prefix}SLOW_FLUSH_MS': {raw_threshold!r}") from exc
        return cls(flush_mode=flush_mode, slow_flush_ms=threshold)
