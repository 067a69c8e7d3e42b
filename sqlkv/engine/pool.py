"""
ConnectionPool - scoped connection leases with dangling-connection tracking.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlkv.interfaces.backend import Backend, Connection
from sqlkv.models.exceptions import ResourceLeakError, SerializationError

logger = logging.getLogger(__name__)


class Lease:
    """
    One connection handed out by the pool.

    A lease ends exactly once, by release() or destroy(); later calls are
    no-ops. Dedicated leases own a connection outside the pool, which is
    closed when the lease ends.
    """

    def __init__(self, pool: "ConnectionPool", connection: Connection, dedicated: bool) -> None:
        self._pool = pool
        self.connection = connection
        self.dedicated = dedicated
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    async def release(self) -> None:
        """Return the connection to the pool (or close it, if dedicated)."""
        if self._ended:
            return
        self._ended = True
        try:
            if self.dedicated:
                await self.connection.close()
            else:
                await self._pool.backend.release(self.connection)
        finally:
            self._pool._forget(self)

    async def destroy(self) -> None:
        """Close the connection without returning it to the idle pool."""
        if self._ended:
            return
        self._ended = True
        logger.warning("Destroying connection after error")
        try:
            if self.dedicated:
                await self.connection.close()
            else:
                await self._pool.backend.destroy(self.connection)
        finally:
            self._pool._forget(self)


class ConnectionPool:
    """
    Wraps a Backend and tracks every connection acquired but not yet returned.

    Both the batch executor and cursor iterators get connections through
    lease(), so every exit path, including errors and cancellation,
    ends the lease. close() treats any remaining lease as a fatal leak.
    """

    def __init__(self, backend: Backend) -> None:
        self.backend = backend
        self._leases: set[Lease] = set()
        self._open = False

    @property
    def dangling(self) -> int:
        """Number of connections acquired and not yet released or destroyed."""
        return len(self._leases)

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        await self.backend.open()
        self._open = True

    async def acquire(self, dedicated: bool = False) -> Lease:
        """
        Acquire a connection.

        Args:
            dedicated: Open a connection outside the pool (for server-side cursors).

        Returns:
            A Lease the caller must end exactly once.
        """
        if dedicated:
            connection = await self.backend.connect()
        else:
            connection = await self.backend.acquire()
        lease = Lease(self, connection, dedicated)
        self._leases.add(lease)
        logger.debug(f"Acquired {'dedicated' if dedicated else 'pooled'} connection ({self.dangling} leased)")
        return lease

    def _forget(self, lease: Lease) -> None:
        self._leases.discard(lease)
        logger.debug(f"Returned connection ({self.dangling} leased)")

    @asynccontextmanager
    async def lease(self, dedicated: bool = False) -> AsyncIterator[Connection]:
        """
        Scoped acquisition: acquire, yield, then release or destroy.

        The connection is released after a normal exit or a serialization
        error (the transaction was rolled back and the connection is
        healthy), and destroyed on any other exception.
        """
        lease = await self.acquire(dedicated)
        try:
            yield lease.connection
        except SerializationError:
            await lease.release()
            raise
        except BaseException:
            await lease.destroy()
            raise
        await lease.release()

    async def close(self) -> None:
        """
        Close the backend pool.

        Raises:
            ResourceLeakError: If any lease is still outstanding.
        """
        self._open = False
        try:
            await self.backend.close()
        finally:
            if self._leases:
                logger.critical(f"Pool closed with {self.dangling} dangling connections")
                raise ResourceLeakError(self.dangling)
