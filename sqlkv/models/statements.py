"""
SQL text for every statement the store issues against its table.
"""

from typing import TYPE_CHECKING, Any

from sqlkv.models.range_query import KEY_COLUMN, RangeBounds, RangeQuery, build_predicate
from sqlkv.models.value import ColumnType, serialize_key

if TYPE_CHECKING:
    from sqlkv.interfaces.backend import Backend

VALUE_COLUMN = '"value"'


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


class Statements:
    """
    Renders (sql, params) pairs for one table and backend dialect.

    Keys and range bounds are always bound as parameters.
    """

    def __init__(self, table: str, backend: "Backend", value_column: ColumnType) -> None:
        self.table = table
        self.rel = quote_identifier(table)
        self._backend = backend
        self._value_column = value_column
        self._p = backend.placeholder

    def create_table(self) -> str:
        key_type = self._backend.column_type(ColumnType.BYTES)
        value_type = self._backend.column_type(self._value_column)
        return (
            f"CREATE TABLE IF NOT EXISTS {self.rel} "
            f"({KEY_COLUMN} {key_type} PRIMARY KEY, {VALUE_COLUMN} {value_type})"
        )

    def drop_table(self) -> str:
        return f"DROP TABLE IF EXISTS {self.rel}"

    def table_exists(self) -> tuple[str, tuple]:
        return (
            self._backend.table_exists_sql(),
            (self._backend.table_exists_param(self.table),),
        )

    def get(self, key: Any) -> tuple[str, tuple]:
        sql = f"SELECT {VALUE_COLUMN} FROM {self.rel} WHERE {KEY_COLUMN} = {self._p}"
        return sql, (serialize_key(key),)

    def upsert(self, key: bytes, value: Any) -> tuple[str, tuple]:
        """Insert-or-replace keyed by the primary key. Arguments are pre-serialized."""
        value_p = self._backend.value_placeholder(self._value_column)
        sql = (
            f"INSERT INTO {self.rel} ({KEY_COLUMN}, {VALUE_COLUMN}) "
            f"VALUES ({self._p}, {value_p}) "
            f"ON CONFLICT ({KEY_COLUMN}) DO UPDATE SET {VALUE_COLUMN} = EXCLUDED.{VALUE_COLUMN}"
        )
        return sql, (key, value)

    def delete(self, key: bytes) -> tuple[str, tuple]:
        sql = f"DELETE FROM {self.rel} WHERE {KEY_COLUMN} = {self._p}"
        return sql, (key,)

    def select_range(self, query: RangeQuery) -> tuple[str, tuple]:
        """
        SELECT key, value FROM <table> [WHERE <predicate>]
        ORDER BY key ASC|DESC [LIMIT <n>]
        """
        predicate = build_predicate(query.where, self._p, serialize_key)

        clauses = [f"SELECT {KEY_COLUMN}, {VALUE_COLUMN} FROM {self.rel}"]
        if not predicate.is_empty:
            clauses.append("WHERE " + predicate.text)
        clauses.append(f"ORDER BY {KEY_COLUMN} " + ("DESC" if query.reverse else "ASC"))

        limit = query.effective_limit()
        if limit is not None:
            clauses.append(f"LIMIT {int(limit)}")

        return " ".join(clauses), predicate.params

    def approximate_size(self, start: Any = None, end: Any = None) -> tuple[str, tuple]:
        """Sum of row sizes over keys in [start, end); None leaves a side open."""
        predicate = build_predicate(RangeBounds(gte=start, lt=end), self._p, serialize_key)
        expression = self._backend.size_expression(self._value_column)
        sql = f"SELECT COALESCE(SUM({expression}), 0) FROM {self.rel}"
        if not predicate.is_empty:
            sql += " WHERE " + predicate.text
        return sql, predicate.params
