"""
SQLite backend - aiosqlite connections to one database file.
"""

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import aiosqlite

from sqlkv.interfaces.backend import Backend, Connection, ServerCursor
from sqlkv.models.config import StoreConfig
from sqlkv.models.exceptions import ConfigurationError, ConnectionFailure, SerializationError
from sqlkv.models.value import ColumnType

logger = logging.getLogger(__name__)

_COLUMN_TYPES = {
    ColumnType.BYTES: "BLOB",
    ColumnType.TEXT: "TEXT",
    ColumnType.JSON: "TEXT",
}


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map sqlite3 exceptions raised through aiosqlite to store errors."""
    try:
        yield
    except (sqlite3.IntegrityError, sqlite3.DataError) as e:
        raise SerializationError(str(e)) from e
    except sqlite3.Error as e:
        raise ConnectionFailure(str(e)) from e


class SQLiteCursor(ServerCursor):
    """Wraps an aiosqlite cursor that is stepped lazily by fetchmany()."""

    def __init__(self, cursor: aiosqlite.Cursor) -> None:
        self._cursor = cursor

    async def fetchmany(self, size: int) -> list[tuple[Any, Any]]:
        with _translate_errors():
            return list(await self._cursor.fetchmany(size))

    async def close(self) -> None:
        with _translate_errors():
            await self._cursor.close()


class SQLiteConnection(Connection):
    """
    aiosqlite connection in autocommit mode with explicit transactions.

    Every aiosqlite connection runs its statements on its own thread, so a
    writer waiting on the database lock never starves the lock holder.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.raw = conn

    @property
    def in_transaction(self) -> bool:
        return self.raw.in_transaction

    async def execute(self, sql: str, params: tuple = ()) -> None:
        with _translate_errors():
            cursor = await self.raw.execute(sql, params)
            await cursor.close()

    async def fetchone(self, sql: str, params: tuple = ()) -> tuple | None:
        with _translate_errors():
            async with self.raw.execute(sql, params) as cursor:
                row = await cursor.fetchone()
        return None if row is None else tuple(row)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        # IMMEDIATE takes the write lock up front instead of upgrading later
        await self.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            await self.rollback()
            raise
        await self.execute("COMMIT")

    async def rollback(self) -> None:
        if self.raw.in_transaction:
            await self.execute("ROLLBACK")

    async def open_cursor(self, sql: str, params: tuple = ()) -> ServerCursor:
        with _translate_errors():
            cursor = await self.raw.execute(sql, params)
        return SQLiteCursor(cursor)

    async def close(self) -> None:
        with _translate_errors():
            await self.raw.close()


class SQLiteBackend(Backend):
    """
    Bounded pool of aiosqlite connections to one database file.

    The file is switched to WAL journal mode so that a long-lived reader
    (an open iterator) does not block writers.
    """

    placeholder = "?"

    def __init__(self, config: StoreConfig) -> None:
        if config.database == ":memory:" or config.database.startswith("file::memory:"):
            raise ConfigurationError(
                "sqlite backend needs a database file shared by all connections"
            )
        self._path = config.database
        self._timeout = config.sqlite_timeout
        self._min_size = config.pool_min_size
        self._max_size = config.pool_max_size

        # Lazy initialized in async context
        self._idle: asyncio.Queue[SQLiteConnection] | None = None
        self._slots: asyncio.Semaphore | None = None

    async def _new_connection(self) -> SQLiteConnection:
        with _translate_errors():
            conn = await aiosqlite.connect(
                self._path,
                timeout=self._timeout,
                isolation_level=None,
            )
        connection = SQLiteConnection(conn)
        try:
            await connection.execute("PRAGMA journal_mode=WAL")
        except BaseException:
            await conn.close()
            raise
        return connection

    async def open(self) -> None:
        idle: asyncio.Queue[SQLiteConnection] = asyncio.Queue()
        try:
            for _ in range(self._min_size):
                idle.put_nowait(await self._new_connection())
        except BaseException:
            while not idle.empty():
                await idle.get_nowait().close()
            raise

        self._idle = idle
        self._slots = asyncio.Semaphore(self._max_size)
        logger.debug(f"sqlite pool open: {self._path} (min={self._min_size}, max={self._max_size})")

    async def close(self) -> None:
        if self._idle is None:
            return
        idle, self._idle = self._idle, None
        self._slots = None
        while not idle.empty():
            conn = idle.get_nowait()
            await conn.close()

    async def acquire(self) -> Connection:
        if self._idle is None or self._slots is None:
            raise ConnectionFailure("connection pool is closed")
        await self._slots.acquire()
        try:
            return self._idle.get_nowait()
        except asyncio.QueueEmpty:
            pass
        try:
            return await self._new_connection()
        except BaseException:
            self._slots.release()
            raise

    async def release(self, conn: Connection) -> None:
        assert isinstance(conn, SQLiteConnection)
        if self._idle is None or self._slots is None:
            await conn.close()
            return
        try:
            await conn.rollback()
        except ConnectionFailure:
            await self.destroy(conn)
            raise
        self._idle.put_nowait(conn)
        self._slots.release()

    async def destroy(self, conn: Connection) -> None:
        try:
            await conn.close()
        finally:
            if self._slots is not None:
                self._slots.release()

    async def connect(self) -> Connection:
        return await self._new_connection()

    def column_type(self, column: ColumnType) -> str:
        return _COLUMN_TYPES[column]

    def table_exists_sql(self) -> str:
        return "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?"

    def size_expression(self, column: ColumnType) -> str:
        return 'length(CAST("key" AS BLOB)) + COALESCE(length(CAST("value" AS BLOB)), 0)'
