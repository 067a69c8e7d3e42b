"""
BatchOperation dataclass for atomic batch writes.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class OperationType(Enum):
    """Kind of write in a batch."""

    PUT = "put"
    DELETE = "del"


@dataclass(frozen=True)
class BatchOperation:
    """
    Represents a single write inside a batch.

    Attributes:
        type: put or delete.
        key: The key being written.
        value: The value being written (ignored for deletes).
    """

    type: OperationType
    key: Any
    value: Any = None

    @classmethod
    def put(cls, key: Any, value: Any) -> "BatchOperation":
        return cls(type=OperationType.PUT, key=key, value=value)

    @classmethod
    def delete(cls, key: Any) -> "BatchOperation":
        return cls(type=OperationType.DELETE, key=key)

    def is_delete(self) -> bool:
        return self.type == OperationType.DELETE

    @classmethod
    def from_dict(cls, op: Mapping) -> "BatchOperation":
        """
        Build from the ``{"type": "put"|"del", "key": ..., "value": ...}`` shape.

        Raises:
            ValueError: If the type is missing or unknown, or the key is missing.
        """
        if "key" not in op or op["key"] is None:
            raise ValueError(f"batch operation has no key: {op!r}")
        try:
            op_type = OperationType(op.get("type"))
        except ValueError:
            raise ValueError(f"unknown batch operation type: {op.get('type')!r}") from None
        return cls(type=op_type, key=op["key"], value=op.get("value"))
