"""Structured logging helpers for UnitORM."""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Any, Iterable, List, Optional

ROOT_LOGGER = "unitorm"

_SECRET_TOKENS = ("password", "secret", "token")

_correlation_id: ContextVar[str | None] = ContextVar("unitorm_correlation_id", default=None)


class CorrelationIdFilter(logging.Filter):
    """Stamp every record with the correlation id of the active context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


def configure_logging(level: int = logging.INFO) -> None:
    logger = logging.getLogger(ROOT_LOGGER)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(correlation_id)s | %(name)s | %(message)s")
    )
    handler.addFilter(CorrelationIdFilter())
    logger.addHandler(handler)
    logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def set_correlation_id(value: Optional[str] = None) -> str:
    token = value or uuid.uuid4().hex
    _correlation_id.set(token)
    return token


def get_correlation_id() -> str:
    cid = _correlation_id.get()
    if cid is None:
        cid = set_correlation_id()
    return cid


def redact_params(params: Iterable[Any] | None) -> List[Any]:
    redacted: List[Any] = []
    for value in params or ():
        if isinstance(value, str) and any(token in value.lower() for token in _SECRET_TOKENS):
            redacted.append("***")
        else:
            redacted.append(value)
    return redacted


class _CallTimer:
    def __init__(self, name: str, logger: logging.Logger, threshold_ms: float, extra: dict[str, Any]) -> None:
        self.name = name
        self.logger = logger
        self.threshold_ms = threshold_ms
        self.extra = extra
        self.elapsed_ms = 0.0
        self._start = 0.0

    def __enter__(self) -> "_CallTimer":
        self._start = time.monotonic()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.elapsed_ms = (time.monotonic() - self._start) * 1000
        level = logging.WARNING if self.elapsed_ms >= self.threshold_ms else logging.DEBUG
        extra = dict(self.extra, elapsed_ms=self.elapsed_ms, failed=exc_type is not None)
        self.logger.log(level, "%s took %.2fms", self.name, self.elapsed_ms, extra=extra)


def time_call(
    name: str,
    logger: logging.Logger,
    *,
    sql: str | None = None,
    params: Iterable[Any] | None = None,
    threshold_ms: float = 100,
) -> _CallTimer:
    """
    Time the wrapped block, logging at WARNING once ``threshold_ms`` is reached.
    """
    extra = {"sql": sql, "params": redact_params(params)}
    return _CallTimer(name, logger, threshold_ms, extra)
