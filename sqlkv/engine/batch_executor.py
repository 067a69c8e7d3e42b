"""
BatchExecutor - apply put/delete operations atomically in one transaction.
"""

import logging
from collections.abc import Sequence

from sqlkv.engine.pool import ConnectionPool
from sqlkv.models.batch_op import BatchOperation
from sqlkv.models.statements import Statements
from sqlkv.models.value import ColumnType, serialize_key, serialize_value

logger = logging.getLogger(__name__)


class BatchExecutor:
    """
    Applies a batch with all-or-nothing semantics.

    Every operation is serialized before a connection is taken, so a value
    that cannot be stored fails the batch without touching the database.
    Operations run in order inside one transaction; later writes to the
    same key win.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        statements: Statements,
        value_column: ColumnType = ColumnType.BYTES,
    ) -> None:
        self._pool = pool
        self._statements = statements
        self._value_column = value_column

    def _prepare(self, op: BatchOperation) -> tuple[str, tuple]:
        key = serialize_key(op.key)
        if op.is_delete():
            return self._statements.delete(key)
        return self._statements.upsert(key, serialize_value(op.value, self._value_column))

    async def apply(self, operations: Sequence[BatchOperation]) -> None:
        """
        Apply operations in order, atomically.

        Args:
            operations: Puts and deletes; an empty batch is a no-op.

        Raises:
            SerializationError: If a key or value cannot be stored.
            ConnectionFailure: If the connection, a statement or the commit fails.
                               The transaction is rolled back first.
        """
        if not operations:
            return

        statements = [self._prepare(op) for op in operations]

        async with self._pool.lease() as conn:
            async with conn.transaction():
                for sql, params in statements:
                    await conn.execute(sql, params)

        logger.debug(f"Committed batch of {len(statements)} operations on {self._statements.rel}")
