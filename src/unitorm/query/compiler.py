"""
SQL compilation of declarative queries (SQLite flavour).

Lookups follow the in-memory semantics: a comparison against NULL is false
(so ``exclude`` keeps NULL rows), ``contains`` is case-sensitive and
``iexact`` folds ASCII case only. NULLs sort last in ascending order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Tuple

from .expressions import Q

if TYPE_CHECKING:
    from .query import Query


COMPARISONS = {
    "exact": "=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def quote_identifier(identifier: str) -> str:
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


class SQLCompiler:
    """
    Compile a :class:`Query` into a SELECT statement and parameters.
    """

    def __init__(self, query: "Query") -> None:
        self.query = query
        self.model = query.model

    def compile(self) -> Tuple[str, List[Any]]:
        columns = ", ".join(quote_identifier(f.column_name()) for f in self.model._meta.get_fields())
        sql_parts: List[str] = [f"SELECT {columns} FROM {quote_identifier(self.model._meta.table_name)}"]
        params: List[Any] = []

        where_sql, where_params = self._compile_q(self.query.conditions)
        if where_sql:
            sql_parts.append(f"WHERE {where_sql}")
            params.extend(where_params)

        ordering = self.query.ordering_columns()
        if ordering:
            terms = []
            for column, descending in ordering:
                quoted = quote_identifier(column)
                if descending:
                    terms.append(f"{quoted} IS NULL DESC, {quoted} DESC")
                else:
                    terms.append(f"{quoted} IS NULL, {quoted}")
            sql_parts.append(f"ORDER BY {', '.join(terms)}")

        limit, offset = self.query.limit_value, self.query.offset_value
        if limit is not None or offset is not None:
            sql_parts.append(f"LIMIT {limit if limit is not None else -1}")
        if offset is not None:
            sql_parts.append(f"OFFSET {offset}")

        return " ".join(sql_parts), params

    def _compile_q(self, q: Q, negated: bool = False) -> Tuple[str, List[Any]]:
        # Under NOT, an unknown (NULL) comparison must count as false.
        negated = negated or q.negated
        parts: List[str] = []
        params: List[Any] = []
        for child in q.children:
            if isinstance(child, Q):
                child_sql, child_params = self._compile_q(child, negated)
                if child_sql:
                    parts.append(f"({child_sql})")
                    params.extend(child_params)
            else:
                sql, child_params = self._compile_lookup(*child)
                if negated and child_params:
                    sql = f"COALESCE({sql}, 0)"
                parts.append(sql)
                params.extend(child_params)

        if not parts:
            return "", []
        sql = f" {q.connector} ".join(parts)
        if q.negated:
            sql = f"NOT ({sql})"
        return sql, params

    def _compile_lookup(self, field_lookup: str, value: Any) -> Tuple[str, List[Any]]:
        field, lookup = self.query.resolve(field_lookup)
        column = quote_identifier(field.column_name())

        if value is None:
            return f"{column} IS NULL", []
        if lookup == "in":
            values = list(value)
            if not values:
                return "0 = 1", []
            placeholders = ", ".join("?" for _ in values)
            return f"{column} IN ({placeholders})", values
        if lookup == "contains":
            return f"instr({column}, ?) > 0", [value]
        if lookup == "iexact":
            return f"lower({column}) = lower(?)", [value]
        return f"{column} {COMPARISONS[lookup]} ?", [value]
