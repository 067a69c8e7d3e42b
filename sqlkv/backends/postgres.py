"""
PostgreSQL backend - psycopg async connections and psycopg_pool.
"""

import itertools
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import psycopg
from psycopg import AsyncConnection
from psycopg.types.string import TextLoader
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from sqlkv.interfaces.backend import Backend, Connection, ServerCursor
from sqlkv.models.config import StoreConfig
from sqlkv.models.exceptions import ConnectionFailure, SerializationError
from sqlkv.models.statements import quote_identifier
from sqlkv.models.value import ColumnType

logger = logging.getLogger(__name__)

_COLUMN_TYPES = {
    ColumnType.BYTES: "bytea",
    ColumnType.TEXT: "text",
    ColumnType.JSON: "jsonb",
}

# Unique names for server-side cursors
_cursor_ids = itertools.count()


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except psycopg.DataError as e:
        raise SerializationError(str(e)) from e
    except (psycopg.Error, PoolTimeout) as e:
        raise ConnectionFailure(str(e)) from e


async def _configure(conn: AsyncConnection) -> None:
    """Return json/jsonb columns as text; decoding JSON happens above the store."""
    conn.adapters.register_loader("json", TextLoader)
    conn.adapters.register_loader("jsonb", TextLoader)


async def _reset(conn: AsyncConnection) -> None:
    """Leave the connection outside any transaction before it goes idle."""
    await conn.rollback()


class PostgresCursor(ServerCursor):
    """Wraps a psycopg named (server-side) cursor."""

    def __init__(self, cursor: psycopg.AsyncServerCursor) -> None:
        self._cursor = cursor

    async def fetchmany(self, size: int) -> list[tuple[Any, Any]]:
        with _translate_errors():
            return await self._cursor.fetchmany(size)

    async def close(self) -> None:
        with _translate_errors():
            await self._cursor.close()


class PostgresConnection(Connection):
    """psycopg AsyncConnection adapter."""

    def __init__(self, conn: AsyncConnection) -> None:
        self.raw = conn

    async def execute(self, sql: str, params: tuple = ()) -> None:
        with _translate_errors():
            await self.raw.execute(sql, params)

    async def fetchone(self, sql: str, params: tuple = ()) -> tuple | None:
        with _translate_errors():
            async with self.raw.cursor() as cur:
                await cur.execute(sql, params)
                return await cur.fetchone()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        with _translate_errors():
            async with self.raw.transaction():
                yield

    async def open_cursor(self, sql: str, params: tuple = ()) -> ServerCursor:
        # Named cursors are declared inside the connection's transaction
        cursor = self.raw.cursor(name=f"sqlkv_cursor_{next(_cursor_ids)}")
        with _translate_errors():
            await cursor.execute(sql, params)
        return PostgresCursor(cursor)

    async def close(self) -> None:
        with _translate_errors():
            await self.raw.close()


class PostgresBackend(Backend):
    """
    psycopg_pool AsyncConnectionPool plus dedicated cursor connections.

    Pooled connections run in autocommit mode and open explicit
    transactions for batches. Dedicated connections keep autocommit off so
    a named cursor stays valid for the whole iteration.
    """

    placeholder = "%s"

    def __init__(self, config: StoreConfig) -> None:
        self._conninfo = config.conninfo()
        self._min_size = config.pool_min_size
        self._max_size = config.pool_max_size
        self._name = f"sqlkv-{config.table}"
        self._pool: AsyncConnectionPool | None = None

    async def open(self) -> None:
        pool = AsyncConnectionPool(
            self._conninfo,
            min_size=self._min_size,
            max_size=self._max_size,
            kwargs={"autocommit": True},
            configure=_configure,
            reset=_reset,
            name=self._name,
            open=False,
        )
        try:
            with _translate_errors():
                await pool.open(wait=True)
        except BaseException:
            await pool.close()
            raise
        self._pool = pool
        logger.debug(f"postgres pool open: {self._name} (min={self._min_size}, max={self._max_size})")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def acquire(self) -> Connection:
        if self._pool is None:
            raise ConnectionFailure("connection pool is closed")
        with _translate_errors():
            return PostgresConnection(await self._pool.getconn())

    async def release(self, conn: Connection) -> None:
        assert isinstance(conn, PostgresConnection)
        if self._pool is None:
            await conn.close()
            return
        with _translate_errors():
            await self._pool.putconn(conn.raw)

    async def destroy(self, conn: Connection) -> None:
        assert isinstance(conn, PostgresConnection)
        # A closed connection handed back is discarded and replaced by the pool
        try:
            await conn.close()
        finally:
            if self._pool is not None:
                await self._pool.putconn(conn.raw)

    async def connect(self) -> Connection:
        with _translate_errors():
            conn = await AsyncConnection.connect(self._conninfo)
        await _configure(conn)
        return PostgresConnection(conn)

    def column_type(self, column: ColumnType) -> str:
        return _COLUMN_TYPES[column]

    def table_exists_sql(self) -> str:
        return "SELECT 1 WHERE to_regclass(%s) IS NOT NULL"

    def table_exists_param(self, table: str) -> Any:
        # to_regclass parses its argument as an identifier
        return quote_identifier(table)

    def value_placeholder(self, column: ColumnType) -> str:
        if column is ColumnType.JSON:
            return "%s::jsonb"
        return self.placeholder

    def size_expression(self, column: ColumnType) -> str:
        value = '"value"::text' if column is ColumnType.JSON else '"value"'
        return f'octet_length("key") + COALESCE(octet_length({value}), 0)'
