"""
Data models for the key-value store.
"""

from sqlkv.models.batch_op import BatchOperation, OperationType
from sqlkv.models.config import StoreConfig
from sqlkv.models.range_query import (
    Predicate,
    RangeBounds,
    RangeQuery,
    RangeUnion,
    build_predicate,
)
from sqlkv.models.value import ColumnType

__all__ = [
    "BatchOperation",
    "ColumnType",
    "OperationType",
    "Predicate",
    "RangeBounds",
    "RangeQuery",
    "RangeUnion",
    "StoreConfig",
    "build_predicate",
]
