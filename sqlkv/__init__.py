"""
Ordered key-value store over a relational table.

This package exposes a single two-column table (key, value) with:
- get(key) / put(key, value) / delete(key) - point operations
- batch(ops) - atomic ordered batches of puts and deletes
- iterator(query) - ordered range scans over a server-side cursor
- approximate_size(start, end) - bytes stored in a key range

Backends: PostgreSQL (psycopg) and SQLite (aiosqlite).
"""

from sqlkv.engine.store import Store
from sqlkv.models.batch_op import BatchOperation
from sqlkv.models.config import StoreConfig
from sqlkv.models.exceptions import (
    ConfigurationError,
    ConnectionFailure,
    IteratorClosedError,
    NotFoundError,
    ResourceLeakError,
    SerializationError,
    StoreClosedError,
    StoreError,
)
from sqlkv.models.range_query import RangeBounds, RangeQuery, RangeUnion
from sqlkv.models.value import ColumnType

__all__ = [
    "BatchOperation",
    "ColumnType",
    "ConfigurationError",
    "ConnectionFailure",
    "IteratorClosedError",
    "NotFoundError",
    "RangeBounds",
    "RangeQuery",
    "RangeUnion",
    "ResourceLeakError",
    "SerializationError",
    "Store",
    "StoreClosedError",
    "StoreConfig",
    "StoreError",
]
