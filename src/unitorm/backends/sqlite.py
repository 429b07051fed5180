"""
SQLite storage backend built on the stdlib sqlite3 module.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Mapping, Sequence, Type

from ..core.relations import ManyToOne
from ..query.compiler import SQLCompiler, quote_identifier
from ..utils import get_logger, redact_params, time_call
from .base import (
    BackendConfigurationError,
    BackendError,
    BackendTransactionError,
    ConnectionConfig,
    ConstraintViolation,
    NotFoundError,
    Row,
)

if TYPE_CHECKING:
    from ..core.model import Model
    from ..query.query import Query


SEQUENCE_TABLE = "unitorm_sequence"


@dataclass(slots=True)
class SQLiteConnectionState:
    connection: sqlite3.Connection
    in_transaction: bool = False


class SQLiteBackend:
    """
    Backend wrapping one sqlite3 connection with foreign keys enforced.

    The connection runs in autocommit mode; ``begin_tx`` issues an explicit
    ``BEGIN`` so flushed statements stay pending until ``commit_tx``.
    """

    def __init__(self, config: ConnectionConfig | None = None, *, slow_query_ms: int = 200) -> None:
        self.config = config or ConnectionConfig(url="sqlite:///:memory:")
        self.slow_query_ms = slow_query_ms
        self.logger = get_logger("backends.sqlite")
        self._state: SQLiteConnectionState | None = None
        self.connect()

    # ------------------------------------------------------------------ #
    # Connection management
    # ------------------------------------------------------------------ #
    def connect(self) -> sqlite3.Connection:
        if self.config.scheme != "sqlite":
            raise BackendConfigurationError(f"SQLiteBackend cannot open '{self.config.url}'")
        path = self._normalize_path(self.config.url)
        timeout = self.config.timeout if self.config.timeout is not None else 5.0
        connection = sqlite3.connect(path, isolation_level=None, timeout=timeout, **(self.config.options or {}))
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        self._state = SQLiteConnectionState(connection)
        self.logger.debug("Connected to %s", self.config.descriptive_label())
        return connection

    def close(self) -> None:
        if self._state:
            if self._state.in_transaction:
                self.rollback_tx()
            self._state.connection.close()
            self._state = None

    def _ensure_state(self) -> SQLiteConnectionState:
        if not self._state:
            raise BackendError("SQLiteBackend is not connected.")
        return self._state

    # ------------------------------------------------------------------ #
    # Schema / identities
    # ------------------------------------------------------------------ #
    def create_tables(self, models: Sequence[Type["Model"]]) -> None:
        self.execute(
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(SEQUENCE_TABLE)} "
            '("name" TEXT PRIMARY KEY, "next_val" INTEGER NOT NULL)'
        )
        for model in models:
            self.execute(self.create_table_sql(model))

    def create_table_sql(self, model: Type["Model"]) -> str:
        pieces: List[str] = []
        for field_obj in model._meta.get_fields():
            column_def = f"{quote_identifier(field_obj.column_name())} {field_obj.db_type}"
            if field_obj.primary_key:
                column_def += " PRIMARY KEY"
            elif not field_obj.nullable:
                column_def += " NOT NULL"
            if field_obj.unique and not field_obj.primary_key:
                column_def += " UNIQUE"
            if isinstance(field_obj, ManyToOne) and field_obj.remote_model is not None:
                remote_meta = field_obj.remote_model._meta
                column_def += (
                    f" REFERENCES {quote_identifier(remote_meta.table_name)}"
                    f"({quote_identifier(remote_meta.primary_key.column_name())})"
                )
            pieces.append(column_def)
        return f"CREATE TABLE IF NOT EXISTS {quote_identifier(model._meta.table_name)} ({', '.join(pieces)})"

    def generate_identity(self, model: Type["Model"]) -> int:
        table = model._meta.table_name
        pk_column = quote_identifier(model._meta.primary_key.column_name())
        sequence = quote_identifier(SEQUENCE_TABLE)
        row = self.execute(f'SELECT "next_val" FROM {sequence} WHERE "name" = ?', (table,)).fetchone()
        if row is None:
            current = self.execute(
                f"SELECT COALESCE(MAX({pk_column}), 0) FROM {quote_identifier(table)}"
            ).fetchone()[0]
            value = int(current) + 1
            self.execute(f'INSERT INTO {sequence} ("name", "next_val") VALUES (?, ?)', (table, value + 1))
            return value
        value = int(row["next_val"])
        self.execute(f'UPDATE {sequence} SET "next_val" = ? WHERE "name" = ?', (value + 1, table))
        return value

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def begin_tx(self) -> None:
        state = self._ensure_state()
        if state.in_transaction:
            raise BackendTransactionError("Transaction already in progress on this connection.")
        state.connection.execute("BEGIN")
        state.in_transaction = True

    def commit_tx(self) -> None:
        state = self._ensure_state()
        if not state.in_transaction:
            raise BackendTransactionError("No transaction to commit.")
        state.connection.execute("COMMIT")
        state.in_transaction = False

    def rollback_tx(self) -> None:
        state = self._ensure_state()
        if not state.in_transaction:
            raise BackendTransactionError("No transaction to roll back.")
        state.connection.execute("ROLLBACK")
        state.in_transaction = False

    # ------------------------------------------------------------------ #
    # Statements
    # ------------------------------------------------------------------ #
    def execute_insert(self, model: Type["Model"], values: Mapping[str, Any]) -> Any:
        meta = model._meta
        pk_column = meta.primary_key.column_name()
        columns = [column for column, value in values.items() if not (column == pk_column and value is None)]
        column_sql = ", ".join(quote_identifier(column) for column in columns)
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {quote_identifier(meta.table_name)} ({column_sql}) VALUES ({placeholders})"
        cursor = self.execute(sql, [values[column] for column in columns])
        if values.get(pk_column) is not None:
            return values[pk_column]
        return cursor.lastrowid

    def execute_update(self, model: Type["Model"], identity: Any, changed: Mapping[str, Any]) -> None:
        meta = model._meta
        if not changed:
            return
        set_sql = ", ".join(f"{quote_identifier(column)} = ?" for column in changed)
        sql = (
            f"UPDATE {quote_identifier(meta.table_name)} SET {set_sql} "
            f"WHERE {quote_identifier(meta.primary_key.column_name())} = ?"
        )
        cursor = self.execute(sql, [*changed.values(), identity])
        if cursor.rowcount == 0:
            raise NotFoundError(meta.table_name, identity)

    def execute_delete(self, model: Type["Model"], identity: Any) -> None:
        meta = model._meta
        sql = (
            f"DELETE FROM {quote_identifier(meta.table_name)} "
            f"WHERE {quote_identifier(meta.primary_key.column_name())} = ?"
        )
        cursor = self.execute(sql, (identity,))
        if cursor.rowcount == 0:
            raise NotFoundError(meta.table_name, identity)

    def execute_query(self, query: "Query") -> List[Row]:
        sql, params = SQLCompiler(query).compile()
        cursor = self.execute(sql, params)
        return [dict(row) for row in cursor.fetchall()]

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        connection = self._ensure_state().connection
        params = list(params or ())
        with time_call("sqlite.execute", self.logger, sql=sql, params=params, threshold_ms=self.slow_query_ms):
            try:
                cursor = connection.execute(sql, params)
            except sqlite3.IntegrityError as exc:
                raise ConstraintViolation(str(exc), constraint=self._constraint_kind(exc)) from exc
            except sqlite3.Error as exc:
                raise BackendError(f"SQLite statement failed: {exc}") from exc
        self.logger.debug("SQL executed", extra={"sql": sql, "params": redact_params(params)})
        return cursor

    # ------------------------------------------------------------------ #
    @staticmethod
    def _constraint_kind(exc: sqlite3.IntegrityError) -> str | None:
        message = str(exc).upper()
        for kind in ("FOREIGN KEY", "NOT NULL", "UNIQUE", "PRIMARY KEY"):
            if kind in message:
                return kind.lower()
        return None

    @staticmethod
    def _normalize_path(url: str) -> str:
        if url == "sqlite:///:memory:":
            return ":memory:"
        prefix = "sqlite:///"
        if url.startswith(prefix):
            return url[len(prefix) :]
        return url
