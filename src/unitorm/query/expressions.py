"""
Boolean lookup expressions used by declarative queries.
"""

from __future__ import annotations

from typing import Any, Callable, List, Tuple


AND = "AND"
OR = "OR"

LOOKUPS = ("exact", "iexact", "gt", "gte", "lt", "lte", "contains", "in")


def split_lookup(field_lookup: str) -> Tuple[str, str]:
    if "__" in field_lookup:
        field_name, lookup = field_lookup.split("__", 1)
    else:
        field_name, lookup = field_lookup, "exact"
    if lookup not in LOOKUPS:
        raise ValueError(f"Unsupported lookup '{lookup}'")
    return field_name, lookup


class Q:
    """
    Boolean expression over field lookups, combined with ``&``, ``|`` and ``~``.

    Leaf children are ``(field_lookup, value)`` pairs; inner children are
    nested ``Q`` objects.
    """

    def __init__(self, *children: Any, **lookups: Any) -> None:
        self.children: List[Any] = list(children)
        self.children.extend(lookups.items())
        self.connector = AND
        self.negated = False

    def __or__(self, other: "Q") -> "Q":
        return self._combine(other, OR)

    def __and__(self, other: "Q") -> "Q":
        return self._combine(other, AND)

    def __invert__(self) -> "Q":
        q = self._clone()
        q.negated = not q.negated
        return q

    def __repr__(self) -> str:
        prefix = "NOT " if self.negated else ""
        return f"<Q {prefix}{self.connector}: {self.children!r}>"

    def is_empty(self) -> bool:
        return not self.children

    def leaves(self) -> List[Tuple[str, Any]]:
        found: List[Tuple[str, Any]] = []
        for child in self.children:
            if isinstance(child, Q):
                found.extend(child.leaves())
            else:
                found.append(child)
        return found

    def evaluate(self, test: Callable[[str, Any], bool]) -> bool:
        """
        Evaluate the expression, delegating each leaf to ``test``.
        """
        if not self.children:
            return not self.negated
        results = (
            child.evaluate(test) if isinstance(child, Q) else test(child[0], child[1])
            for child in self.children
        )
        outcome = all(results) if self.connector == AND else any(results)
        return not outcome if self.negated else outcome

    def map_leaves(self, transform: Callable[[str, Any], Tuple[str, Any]]) -> "Q":
        q = Q()
        q.children = [
            child.map_leaves(transform) if isinstance(child, Q) else transform(child[0], child[1])
            for child in self.children
        ]
        q.connector = self.connector
        q.negated = self.negated
        return q

    def _clone(self) -> "Q":
        clone = Q()
        clone.children = list(self.children)
        clone.connector = self.connector
        clone.negated = self.negated
        return clone

    def _combine(self, other: "Q", connector: str) -> "Q":
        if self.is_empty():
            return other._clone()
        if other.is_empty():
            return self._clone()
        q = Q()
        q.children = [self._clone(), other._clone()]
        q.connector = connector
        return q
