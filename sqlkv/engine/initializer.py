"""
StoreInitializer - create, check and drop the backing table.
"""

import logging

from sqlkv.engine.pool import ConnectionPool
from sqlkv.models.exceptions import ConfigurationError
from sqlkv.models.statements import Statements

logger = logging.getLogger(__name__)


class StoreInitializer:
    """
    Handles table setup when a store opens.

    Responsibilities:
    - Check whether the table exists
    - Create it with the key/value column types chosen for the store
    - Drop it on destroy
    """

    def __init__(self, pool: ConnectionPool, statements: Statements) -> None:
        self._pool = pool
        self._statements = statements

    async def table_exists(self) -> bool:
        sql, params = self._statements.table_exists()
        async with self._pool.lease() as conn:
            return await conn.fetchone(sql, params) is not None

    async def initialize(self, create_if_missing: bool = True, error_if_exists: bool = False) -> None:
        """
        Prepare the table for use.

        Args:
            create_if_missing: Create the table when it does not exist.
            error_if_exists: Fail when the table already exists.

        Raises:
            ConfigurationError: If the table's existence contradicts the options.
        """
        exists = await self.table_exists()

        if exists and error_if_exists:
            raise ConfigurationError(f"table {self._statements.rel} already exists")
        if exists:
            return
        if not create_if_missing:
            raise ConfigurationError(f"table {self._statements.rel} does not exist")

        async with self._pool.lease() as conn:
            await conn.execute(self._statements.create_table())
        logger.info(f"Created table {self._statements.rel}")

    async def drop(self) -> None:
        async with self._pool.lease() as conn:
            await conn.execute(self._statements.drop_table())
        logger.info(f"Dropped table {self._statements.rel}")
