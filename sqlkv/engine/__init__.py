"""
Store engine: connection leasing, cursor iteration and batch writes.
"""

from sqlkv.engine.batch_executor import BatchExecutor
from sqlkv.engine.cursor_iterator import CursorIterator, IteratorState
from sqlkv.engine.pool import ConnectionPool, Lease
from sqlkv.engine.store import Store

__all__ = [
    "BatchExecutor",
    "ConnectionPool",
    "CursorIterator",
    "IteratorState",
    "Lease",
    "Store",
]
