"""
Range descriptors and the SQL predicate builder.

A range predicate is a tree: a ``RangeBounds`` leaf holds optional bound
constraints that are ANDed together, a ``RangeUnion`` ORs its members.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, fields
from typing import Any, Union

# Bound name -> SQL comparison operator
RANGE_OPS = {
    "lt": "<",
    "lte": "<=",
    "gte": ">=",
    "gt": ">",
    "eq": "=",
    "ne": "<>",
}

KEY_COLUMN = '"key"'


@dataclass(frozen=True)
class RangeBounds:
    """
    Leaf of a range predicate. A bound set to None is absent.

    A leaf with no bounds matches every record.
    """

    gt: Any = None
    gte: Any = None
    lt: Any = None
    lte: Any = None
    eq: Any = None
    ne: Any = None

    def bounds(self) -> list[tuple[str, Any]]:
        """Return the present bounds as (name, value) pairs in field order."""
        return [
            (f.name, getattr(self, f.name))
            for f in fields(self)
            if getattr(self, f.name) is not None
        ]

    def is_empty(self) -> bool:
        return not self.bounds()


@dataclass(frozen=True)
class RangeUnion:
    """Ordered group of predicate nodes combined with OR."""

    members: tuple["RangeNode", ...] = ()


RangeNode = Union[RangeBounds, RangeUnion]


@dataclass(frozen=True)
class RangeQuery:
    """
    Everything needed to open an iterator.

    Attributes:
        where: Predicate tree over the key column.
        reverse: Descending key order when True.
        limit: Maximum records to return. None or negative = unbounded.
    """

    where: RangeNode = field(default_factory=RangeBounds)
    reverse: bool = False
    limit: int | None = None

    def effective_limit(self) -> int | None:
        if self.limit is None or self.limit < 0:
            return None
        return self.limit

    @classmethod
    def from_options(cls, options: Mapping | Sequence | None = None) -> "RangeQuery":
        """
        Build a query from the external options shape.

        Args:
            options: A mapping with any of gt/gte/lt/lte/eq/ne/min/max/start/end,
                     reverse and limit, or a list of such mappings meaning
                     logical OR. reverse/limit are read from the mapping
                     form only.

        Returns:
            The equivalent RangeQuery.
        """
        if options is None:
            return cls()
        if isinstance(options, Mapping):
            reverse = bool(options.get("reverse", False))
            limit = options.get("limit")
            return cls(
                where=_node_from_options(options, reverse),
                reverse=reverse,
                limit=None if limit is None else int(limit),
            )
        return cls(where=_node_from_options(options, False))


def _node_from_options(options: Mapping | Sequence, reverse: bool) -> RangeNode:
    if not isinstance(options, Mapping):
        return RangeUnion(tuple(_node_from_options(o, reverse) for o in options))

    bounds = {name: options.get(name) for name in RANGE_OPS}

    # min/max are inclusive bounds in either direction; explicit ones win
    for alias, name in (("min", "gte"), ("max", "lte")):
        if bounds[name] is None and options.get(alias) is not None:
            bounds[name] = options[alias]

    # Legacy start/end swap direction when iterating in reverse
    start, end = options.get("start"), options.get("end")
    if start is not None:
        bounds["lte" if reverse else "gte"] = start
    if end is not None:
        bounds["gte" if reverse else "lte"] = end

    return RangeBounds(**bounds)


@dataclass(frozen=True)
class Predicate:
    """SQL boolean expression over the key column plus its bound parameters."""

    text: str = ""
    params: tuple = ()

    @property
    def is_empty(self) -> bool:
        """True when the predicate matches everything and WHERE must be omitted."""
        return not self.text


def build_predicate(
    node: RangeNode,
    placeholder: str = "%s",
    serialize: Callable[[Any], Any] = lambda v: v,
) -> Predicate:
    """
    Translate a predicate tree into a SQL expression.

    Each present bound becomes ``"key" <op> (<placeholder>)``; bounds in a
    leaf are joined with AND, union members are parenthesized and joined
    with OR. Values are never interpolated into the text, they are passed
    through ``serialize`` and returned as parameters.

    Args:
        node: Root of the predicate tree.
        placeholder: Driver parameter marker ("%s" for psycopg, "?" for aiosqlite).
        serialize: Converts a bound value to its key column representation.

    Returns:
        Predicate; empty when no bound is present anywhere.
    """
    if isinstance(node, RangeBounds):
        clauses = []
        params = []
        for name, value in node.bounds():
            clauses.append(f"{KEY_COLUMN} {RANGE_OPS[name]} ({placeholder})")
            params.append(serialize(value))
        return Predicate(" AND ".join(clauses), tuple(params))

    members = [build_predicate(m, placeholder, serialize) for m in node.members]
    # A match-all member makes the whole union match-all
    if not members or any(m.is_empty for m in members):
        return Predicate()

    text = "(" + ") OR (".join(m.text for m in members) + ")"
    params = tuple(p for m in members for p in m.params)
    return Predicate(text, params)
