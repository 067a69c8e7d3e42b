"""
CursorIterator - ordered iteration over a server-side cursor.
"""

import asyncio
import logging
from collections import deque
from contextlib import AsyncExitStack
from enum import Enum
from typing import Any

from sqlkv.engine.pool import ConnectionPool
from sqlkv.interfaces.backend import ServerCursor
from sqlkv.interfaces.kv_iterator import KeyValueIterator
from sqlkv.models.exceptions import IteratorClosedError
from sqlkv.models.range_query import RangeQuery
from sqlkv.models.statements import Statements
from sqlkv.models.value import deserialize_key, deserialize_value

logger = logging.getLogger(__name__)


class IteratorState(Enum):
    CREATED = "created"
    OPEN = "open"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


class CursorIterator(KeyValueIterator):
    """
    Pull-based iterator over one range query.

    Lifecycle: created -> open -> exhausted -> closed. The query runs on a
    dedicated connection (a held-open cursor pins transaction state, so it
    cannot share a pooled connection) which is acquired lazily on the
    first next() and given back as soon as the cursor is exhausted, closed
    or fails.

    Rows are fetched ``fetch_size`` at a time and handed out one by one.
    An iterator is never restarted; open a new one to scan again.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        statements: Statements,
        query: RangeQuery,
        fetch_size: int = 100,
        keys_as_bytes: bool = False,
        values_as_bytes: bool = False,
    ) -> None:
        """
        Initialize iterator. No connection is taken until next().

        Args:
            pool: Pool that leases the dedicated connection.
            statements: SQL renderer for the store's table.
            query: Range, order and limit to iterate.
            fetch_size: Rows fetched per round-trip.
            keys_as_bytes: Yield keys as bytes instead of str.
            values_as_bytes: Yield values as bytes instead of str.
        """
        self._pool = pool
        self._statements = statements
        self.query = query
        self._fetch_size = fetch_size
        self._keys_as_bytes = keys_as_bytes
        self._values_as_bytes = values_as_bytes

        self._state = IteratorState.CREATED
        self._buffer: deque[tuple[Any, Any]] = deque()
        self._cursor: ServerCursor | None = None
        self._drained = False

        # Holds the connection lease while the cursor is open
        self._stack = AsyncExitStack()

        # next() and close() never interleave
        self._lock = asyncio.Lock()

    @property
    def state(self) -> IteratorState:
        return self._state

    async def _open(self) -> None:
        sql, params = self._statements.select_range(self.query)
        logger.debug(f"iterator query: {sql}")

        connection = await self._stack.enter_async_context(self._pool.lease(dedicated=True))
        self._state = IteratorState.OPEN
        self._cursor = await connection.open_cursor(sql, params)

    async def _fill(self) -> None:
        assert self._cursor is not None
        rows = await self._cursor.fetchmany(self._fetch_size)
        # A short page means the cursor has nothing more
        if len(rows) < self._fetch_size:
            self._drained = True
        self._buffer.extend(rows)

    async def next(self) -> tuple[Any, Any] | None:
        """
        Return the next (key, value) pair in key order.

        Returns:
            The pair, or None when the range is exhausted.

        Raises:
            IteratorClosedError: If close() was already called.
        """
        async with self._lock:
            if self._state is IteratorState.CLOSED:
                raise IteratorClosedError("cannot call next() after close()")
            if self._state is IteratorState.EXHAUSTED:
                return None

            try:
                if self._state is IteratorState.CREATED:
                    await self._open()
                if not self._buffer and not self._drained:
                    await self._fill()
                if not self._buffer:
                    await self._teardown(None)
                    self._state = IteratorState.EXHAUSTED
                    return None
            except BaseException as e:
                self._state = IteratorState.CLOSED
                await self._teardown(e)
                raise

            key, value = self._buffer.popleft()
            return (
                deserialize_key(key, self._keys_as_bytes),
                deserialize_value(value, self._values_as_bytes),
            )

    async def close(self) -> None:
        """Close the cursor and give back the connection. Idempotent."""
        async with self._lock:
            if self._state is IteratorState.CLOSED:
                return
            self._state = IteratorState.CLOSED
            await self._teardown(None)

    async def all(self) -> list[tuple[Any, Any]]:
        """Drain the remaining pairs into a list and close the iterator."""
        try:
            return [item async for item in self]
        finally:
            await self.close()

    async def _teardown(self, exc: BaseException | None) -> None:
        """
        Close the cursor, then end the lease.

        With an exception the cursor is abandoned and the connection is
        destroyed rather than closed cleanly.
        """
        cursor, self._cursor = self._cursor, None
        self._buffer.clear()

        if cursor is not None and exc is None:
            try:
                await cursor.close()
            except BaseException as e:
                await self._stack.__aexit__(type(e), e, e.__traceback__)
                raise

        if exc is None:
            await self._stack.aclose()
        else:
            await self._stack.__aexit__(type(exc), exc, exc.__traceback__)
