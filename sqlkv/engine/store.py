"""
Store - Main key-value store API.
"""

import asyncio
import logging
import weakref
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sqlkv.backends import create_backend
from sqlkv.engine.batch_executor import BatchExecutor
from sqlkv.engine.cursor_iterator import CursorIterator
from sqlkv.engine.initializer import StoreInitializer
from sqlkv.engine.pool import ConnectionPool
from sqlkv.interfaces.backend import Backend
from sqlkv.models.batch_op import BatchOperation
from sqlkv.models.config import StoreConfig
from sqlkv.models.exceptions import NotFoundError, StoreClosedError
from sqlkv.models.range_query import RangeQuery
from sqlkv.models.statements import Statements
from sqlkv.models.value import deserialize_value

logger = logging.getLogger(__name__)


class Store:
    """
    Ordered key-value store backed by a two-column relational table.

    Provides:
    - get(key) / get_or_raise(key): Point lookup
    - put(key, value) / delete(key): Single writes
    - batch(ops): Atomic ordered batch of puts and deletes
    - iterator(query): Ordered range iteration over a server-side cursor
    - approximate_size(start, end): Bytes stored in a key range

    Architecture:
    - Writes go through the BatchExecutor on a pooled connection, inside
      one transaction per batch (single writes are one-operation batches)
    - Iterators hold a dedicated connection for their cursor's lifetime
    - The ConnectionPool counts every outstanding connection; close()
      fails if any is left behind
    """

    def __init__(self, config: StoreConfig, backend: Backend | None = None) -> None:
        """
        Initialize the store. Call open() (or use Store.create) before use.

        Args:
            config: Store configuration.
            backend: Relational backend; built from config when omitted.
        """
        self.config = config
        self._backend = backend if backend is not None else create_backend(config)
        self._pool = ConnectionPool(self._backend)
        self._statements = Statements(config.table, self._backend, config.value_column)
        self._batch = BatchExecutor(self._pool, self._statements, config.value_column)
        self._initializer = StoreInitializer(self._pool, self._statements)

        # Iterators that may still hold a connection
        self._iterators: weakref.WeakSet[CursorIterator] = weakref.WeakSet()

        self._status = "new"
        self._lifecycle_lock = asyncio.Lock()

    @classmethod
    async def create(
        cls,
        config: StoreConfig,
        backend: Backend | None = None,
        create_if_missing: bool = True,
        error_if_exists: bool = False,
    ) -> "Store":
        """
        Async factory method to create and open a store.

        Returns:
            Opened Store instance.
        """
        store = cls(config, backend)
        await store.open(create_if_missing=create_if_missing, error_if_exists=error_if_exists)
        return store

    @classmethod
    async def destroy(cls, config: StoreConfig, backend: Backend | None = None) -> None:
        """Drop the backing table named by config, if it exists."""
        store = cls(config, backend)
        await store._pool.open()
        try:
            await store._initializer.drop()
        finally:
            await store._pool.close()

    @property
    def status(self) -> str:
        return self._status

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def location(self) -> str:
        return self._statements.table

    async def open(self, create_if_missing: bool = True, error_if_exists: bool = False) -> None:
        """
        Open the pool and prepare the table.

        Args:
            create_if_missing: Create the table when it does not exist.
            error_if_exists: Fail when the table already exists.
        """
        async with self._lifecycle_lock:
            if self._status == "open":
                return

            self._status = "opening"
            try:
                await self._pool.open()
                await self._initializer.initialize(create_if_missing, error_if_exists)
            except BaseException:
                self._status = "closed"
                await self._pool.close()
                raise

            self._status = "open"
            logger.info(f"Opened store {self._statements.rel} ({self.config.backend})")

    async def close(self) -> None:
        """
        Close open iterators and the pool. Idempotent.

        Every iterator is closed even if an earlier one fails; the first
        failure is raised after the pool is closed.

        Raises:
            ResourceLeakError: If connections are still outstanding afterwards.
        """
        async with self._lifecycle_lock:
            if self._status != "open":
                return

            self._status = "closing"
            errors: list[Exception] = []
            for iterator in list(self._iterators):
                try:
                    await iterator.close()
                except Exception as e:
                    logger.error(f"Error closing iterator on {self._statements.rel}: {e}")
                    errors.append(e)

            self._status = "closed"
            await self._pool.close()
            logger.info(f"Closed store {self._statements.rel}")
            if errors:
                raise errors[0]

    def _check_open(self) -> None:
        if self._status != "open":
            raise StoreClosedError(f"store is not open (status: {self._status})")

    async def get(self, key: Any) -> Any | None:
        """
        Retrieve a value by key.

        Args:
            key: The key to look up.

        Returns:
            The value (str, or bytes with values_as_bytes), or None if the key
            is absent. Stored values are never None.
        """
        self._check_open()
        sql, params = self._statements.get(key)
        async with self._pool.lease() as conn:
            row = await conn.fetchone(sql, params)
        if row is None:
            return None
        return deserialize_value(row[0], self.config.values_as_bytes)

    async def get_or_raise(self, key: Any) -> Any:
        """
        Retrieve a value by key.

        Raises:
            NotFoundError: If the key is absent.
        """
        value = await self.get(key)
        if value is None:
            raise NotFoundError(key)
        return value

    async def put(self, key: Any, value: Any) -> None:
        """Insert or replace a key-value pair."""
        await self.batch([BatchOperation.put(key, value)])

    async def delete(self, key: Any) -> None:
        """Delete a key. Deleting an absent key is not an error."""
        await self.batch([BatchOperation.delete(key)])

    async def batch(self, operations: Iterable[BatchOperation | Mapping]) -> None:
        """
        Apply puts and deletes atomically, in order.

        Args:
            operations: BatchOperation objects or {"type", "key", "value"} mappings.
        """
        self._check_open()
        ops = [
            op if isinstance(op, BatchOperation) else BatchOperation.from_dict(op)
            for op in operations
        ]
        await self._batch.apply(ops)

    def iterator(
        self,
        query: RangeQuery | Mapping | Sequence | None = None,
        **options: Any,
    ) -> CursorIterator:
        """
        Create an iterator over a key range.

        Args:
            query: A RangeQuery, or the options shape accepted by
                   RangeQuery.from_options.
            **options: Options given as keywords, e.g. gt="a", reverse=True.

        Returns:
            An unopened CursorIterator; the query runs on its first next().
        """
        self._check_open()
        if options:
            if query is None:
                query = options
            elif isinstance(query, Mapping):
                query = {**query, **options}
            else:
                raise TypeError("keyword options combine only with a mapping query")
        if not isinstance(query, RangeQuery):
            query = RangeQuery.from_options(query)

        iterator = CursorIterator(
            self._pool,
            self._statements,
            query,
            fetch_size=self.config.fetch_size,
            keys_as_bytes=self.config.keys_as_bytes,
            values_as_bytes=self.config.values_as_bytes,
        )
        self._iterators.add(iterator)
        return iterator

    async def approximate_size(self, start: Any = None, end: Any = None) -> int:
        """
        Estimate the bytes stored for keys in [start, end).

        Args:
            start: Inclusive lower bound, None for the first key.
            end: Exclusive upper bound, None for past the last key.

        Returns:
            Sum of key and value sizes, at least 1; a wider range never
            reports less.
        """
        self._check_open()
        sql, params = self._statements.approximate_size(start, end)
        async with self._pool.lease() as conn:
            row = await conn.fetchone(sql, params)
        size = int(row[0]) if row else 0
        return max(size, 1)

    async def drop(self) -> None:
        """Drop the backing table. The store stays open but unusable until reopened."""
        self._check_open()
        await self._initializer.drop()

    async def __aenter__(self) -> "Store":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
