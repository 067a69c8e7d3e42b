"""
Abstract base classes for the relational layer underneath the store.

A Backend is the connection-pool collaborator: it hands out pooled
connections, opens dedicated connections for server-side cursors and
knows the handful of dialect details the SQL builder needs.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any

from sqlkv.models.value import ColumnType


class ServerCursor(ABC):
    """A server-side cursor that is fetched from incrementally."""

    @abstractmethod
    async def fetchmany(self, size: int) -> list[tuple[Any, Any]]:
        """
        Fetch up to ``size`` rows.

        Returns:
            The next rows in cursor order; an empty list once exhausted.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the cursor on the server."""
        pass


class Connection(ABC):
    """One relational connection, pooled or dedicated."""

    @abstractmethod
    async def execute(self, sql: str, params: tuple = ()) -> None:
        """Run a statement that returns no rows."""
        pass

    @abstractmethod
    async def fetchone(self, sql: str, params: tuple = ()) -> tuple | None:
        """Run a query and return its first row, or None."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """
        Return a context manager wrapping an explicit transaction.

        Commits when the block exits normally, rolls back and re-raises
        when it exits with an exception.
        """
        pass

    @abstractmethod
    async def open_cursor(self, sql: str, params: tuple = ()) -> ServerCursor:
        """Declare a server-side cursor for a query."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying driver connection."""
        pass


class Backend(ABC):
    """
    Connection pool plus dialect for one relational engine.

    Implementations:
    - PostgresBackend: psycopg + psycopg_pool
    - SQLiteBackend: aiosqlite, one worker thread per connection
    """

    # Driver parameter marker
    placeholder: str = "%s"

    @abstractmethod
    async def open(self) -> None:
        """Open the pool and its minimum number of connections."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the pool and every idle connection."""
        pass

    @abstractmethod
    async def acquire(self) -> Connection:
        """Take a connection from the pool, waiting for a free slot."""
        pass

    @abstractmethod
    async def release(self, conn: Connection) -> None:
        """
        Return a connection to the pool.

        The connection is reset (any open transaction rolled back) before
        it becomes idle again.
        """
        pass

    @abstractmethod
    async def destroy(self, conn: Connection) -> None:
        """Close a pooled connection and free its slot."""
        pass

    @abstractmethod
    async def connect(self) -> Connection:
        """Open a dedicated connection that never enters the pool."""
        pass

    @abstractmethod
    def column_type(self, column: ColumnType) -> str:
        """Return the SQL type name used for a column of the given kind."""
        pass

    @abstractmethod
    def table_exists_sql(self) -> str:
        """Return a query taking the table name and returning a row iff it exists."""
        pass

    def table_exists_param(self, table: str) -> Any:
        return table

    def value_placeholder(self, column: ColumnType) -> str:
        """Return the parameter expression for the value column."""
        return self.placeholder

    @abstractmethod
    def size_expression(self, column: ColumnType) -> str:
        """Return a per-row SQL expression estimating the row size in bytes."""
        pass
