"""
Utility helpers shared across UnitORM packages.
"""

from .logging import (
    configure_logging,
    get_correlation_id,
    get_logger,
    redact_params,
    set_correlation_id,
    time_call,
)
from .naming import camel_to_snake, default_fk_column

__all__ = [
    "camel_to_snake",
    "configure_logging",
    "default_fk_column",
    "get_correlation_id",
    "get_logger",
    "redact_params",
    "set_correlation_id",
    "time_call",
]
