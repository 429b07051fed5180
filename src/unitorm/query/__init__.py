"""
Query construction APIs for UnitORM.
"""

from .compiler import SQLCompiler
from .expressions import Q
from .query import Query

__all__ = ["Q", "Query", "SQLCompiler"]
