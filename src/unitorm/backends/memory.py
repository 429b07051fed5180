"""
In-process storage backend with relational constraint checking.
"""

from __future__ import annotations

import string
from dataclasses import dataclass, field
from threading import RLock
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from ..core.fields import IDENTITY, Field
from ..core.relations import ManyToOne
from ..utils import get_logger
from .base import (
    BackendConfigurationError,
    BackendTransactionError,
    ConstraintViolation,
    NotFoundError,
    Row,
)

if TYPE_CHECKING:
    from ..core.model import Model
    from ..query.query import Query


Tables = Dict[str, Dict[Any, Row]]

ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


@dataclass
class TableSchema:
    name: str
    pk_column: str
    strategy: Optional[str]
    columns: Dict[str, Field] = field(default_factory=dict)
    foreign_keys: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_model(cls, model: Type["Model"]) -> "TableSchema":
        meta = model._meta
        schema = cls(
            name=meta.table_name,
            pk_column=meta.primary_key.column_name(),
            strategy=meta.generation_strategy,
        )
        for field_obj in meta.get_fields():
            schema.columns[field_obj.column_name()] = field_obj
            if isinstance(field_obj, ManyToOne) and field_obj.remote_model is not None:
                schema.foreign_keys[field_obj.column_name()] = field_obj.remote_model._meta.table_name
        return schema


class MemoryStore:
    """
    Committed tables shared by every :class:`MemoryBackend` connection.
    """

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self.schemas: Dict[str, TableSchema] = {}
        self.tables: Tables = {}
        self.sequences: Dict[str, int] = {}
        self._lock = RLock()

    def create_tables(self, models: Sequence[Type["Model"]]) -> None:
        with self._lock:
            for model in models:
                schema = TableSchema.for_model(model)
                self.schemas[schema.name] = schema
                self.tables.setdefault(schema.name, {})
                self.sequences.setdefault(schema.name, 0)

    def next_value(self, table: str) -> int:
        with self._lock:
            self.sequences[table] = self.sequences.get(table, 0) + 1
            return self.sequences[table]

    def copy_tables(self) -> Tables:
        with self._lock:
            return {name: {key: dict(row) for key, row in rows.items()} for name, rows in self.tables.items()}

    def apply(self, journal: List[Tuple[str, str, Any, Optional[Row]]]) -> None:
        with self._lock:
            for operation, table, identity, row in journal:
                rows = self.tables.setdefault(table, {})
                if operation == "delete":
                    rows.pop(identity, None)
                else:
                    rows[identity] = dict(row or {})
                    if isinstance(identity, int) and identity > self.sequences.get(table, 0):
                        self.sequences[table] = identity

    def row_count(self, table: str) -> int:
        with self._lock:
            return len(self.tables.get(table, {}))


class MemoryBackend:
    """
    One connection to a :class:`MemoryStore`.

    Writes go to a private working copy journalled during a transaction;
    commit replays the journal onto the store. Primary key, not-null, unique
    and foreign key (restrict on delete) constraints are checked immediately
    on every write.
    """

    def __init__(self, store: MemoryStore | None = None) -> None:
        self.store = store or MemoryStore()
        self._working: Optional[Tables] = None
        self._journal: List[Tuple[str, str, Any, Optional[Row]]] = []
        self.logger = get_logger("backends.memory")

    # ------------------------------------------------------------------ #
    # Schema / identities
    # ------------------------------------------------------------------ #
    def create_tables(self, models: Sequence[Type["Model"]]) -> None:
        self.store.create_tables(models)

    def generate_identity(self, model: Type["Model"]) -> int:
        return self.store.next_value(self._schema(model).name)

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def begin_tx(self) -> None:
        if self._working is not None:
            raise BackendTransactionError("Transaction already in progress on this connection.")
        self._working = self.store.copy_tables()
        self._journal = []

    def commit_tx(self) -> None:
        if self._working is None:
            raise BackendTransactionError("No transaction to commit.")
        self.store.apply(self._journal)
        self.logger.debug("Committed %s journalled writes", len(self._journal))
        self._working = None
        self._journal = []

    def rollback_tx(self) -> None:
        if self._working is None:
            raise BackendTransactionError("No transaction to roll back.")
        self.logger.debug("Discarded %s journalled writes", len(self._journal))
        self._working = None
        self._journal = []

    def close(self) -> None:
        if self._working is not None:
            self.rollback_tx()

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    def execute_insert(self, model: Type["Model"], values: Mapping[str, Any]) -> Any:
        tables = self._require_tx()
        schema = self._schema(model)
        row = {column: values.get(column) for column in schema.columns}
        identity = row.get(schema.pk_column)
        if identity is None:
            if schema.strategy != IDENTITY:
                raise ConstraintViolation(
                    f"NULL primary key for '{schema.name}'", constraint="primary key", table=schema.name
                )
            identity = self.store.next_value(schema.name)
            row[schema.pk_column] = identity
        rows = tables[schema.name]
        if identity in rows:
            raise ConstraintViolation(
                f"Duplicate primary key {identity!r} in '{schema.name}'",
                constraint="primary key",
                table=schema.name,
            )
        self._check_row(tables, schema, row, row.keys(), identity)
        rows[identity] = row
        self._journal.append(("insert", schema.name, identity, dict(row)))
        return identity

    def execute_update(self, model: Type["Model"], identity: Any, changed: Mapping[str, Any]) -> None:
        tables = self._require_tx()
        schema = self._schema(model)
        rows = tables[schema.name]
        if identity not in rows:
            raise NotFoundError(schema.name, identity)
        if schema.pk_column in changed and changed[schema.pk_column] != identity:
            raise ConstraintViolation(
                f"Primary key of '{schema.name}' cannot change", constraint="primary key", table=schema.name
            )
        row = dict(rows[identity], **changed)
        self._check_row(tables, schema, row, changed.keys(), identity)
        rows[identity] = row
        self._journal.append(("update", schema.name, identity, dict(row)))

    def execute_delete(self, model: Type["Model"], identity: Any) -> None:
        tables = self._require_tx()
        schema = self._schema(model)
        rows = tables[schema.name]
        if identity not in rows:
            raise NotFoundError(schema.name, identity)
        for other in self.store.schemas.values():
            for column, target in other.foreign_keys.items():
                if target != schema.name:
                    continue
                if any(child.get(column) == identity for child in tables.get(other.name, {}).values()):
                    raise ConstraintViolation(
                        f"'{other.name}.{column}' still references {schema.name} {identity!r}",
                        constraint="foreign key",
                        table=other.name,
                    )
        del rows[identity]
        self._journal.append(("delete", schema.name, identity, None))

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    def execute_query(self, query: "Query") -> List[Row]:
        schema = self._schema(query.model)
        tables = self._working if self._working is not None else self.store.copy_tables()
        rows = [
            dict(row)
            for row in tables.get(schema.name, {}).values()
            if query.conditions.evaluate(lambda lookup, value, row=row: self._match(query, row, lookup, value))
        ]
        for column, descending in reversed(query.ordering_columns()):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=descending)
        start = query.offset_value or 0
        stop = start + query.limit_value if query.limit_value is not None else None
        return rows[start:stop]

    # ------------------------------------------------------------------ #
    def _require_tx(self) -> Tables:
        if self._working is None:
            raise BackendTransactionError("Writes require an active transaction.")
        return self._working

    def _schema(self, model: Type["Model"]) -> TableSchema:
        schema = self.store.schemas.get(model._meta.table_name)
        if schema is None:
            raise BackendConfigurationError(
                f"Table '{model._meta.table_name}' does not exist in memory store '{self.store.name}'"
            )
        return schema

    def _check_row(self, tables: Tables, schema: TableSchema, row: Row, columns, identity: Any) -> None:
        for column in columns:
            field_obj = schema.columns.get(column)
            if field_obj is None:
                raise ConstraintViolation(
                    f"Unknown column '{column}' for '{schema.name}'", constraint="column", table=schema.name
                )
            value = row.get(column)
            if value is None:
                if not field_obj.nullable:
                    raise ConstraintViolation(
                        f"NULL not allowed for '{schema.name}.{column}'", constraint="not null", table=schema.name
                    )
                continue
            if field_obj.unique and not field_obj.primary_key:
                for other_identity, other in tables[schema.name].items():
                    if other_identity != identity and other.get(column) == value:
                        raise ConstraintViolation(
                            f"Duplicate value {value!r} for '{schema.name}.{column}'",
                            constraint="unique",
                            table=schema.name,
                        )
            target = schema.foreign_keys.get(column)
            if target is not None and value not in tables.get(target, {}):
                raise ConstraintViolation(
                    f"'{schema.name}.{column}' references missing {target} {value!r}",
                    constraint="foreign key",
                    table=schema.name,
                )

    @staticmethod
    def _match(query: "Query", row: Row, field_lookup: str, value: Any) -> bool:
        field_obj, lookup = query.resolve(field_lookup)
        actual = row.get(field_obj.column_name())
        if value is None:
            return actual is None
        if actual is None:
            return False
        if lookup == "exact":
            return actual == value
        if lookup == "in":
            return actual in value
        if lookup == "iexact":
            return str(actual).translate(ASCII_LOWER) == str(value).translate(ASCII_LOWER)
        if lookup == "contains":
            return str(value) in str(actual)
        if lookup == "gt":
            return actual > value
        if lookup == "gte":
            return actual >= value
        if lookup == "lt":
            return actual < value
        return actual <= value
