"""
KeyValueIterator protocol for pull-based ordered iteration.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any


class KeyValueIterator(ABC):
    """
    Protocol for forward-only iterators over (key, value) pairs.

    Implementations must support:
    - Pulling one pair at a time via next()
    - Async iteration via __aiter__/__anext__
    - Idempotent close(), also before exhaustion
    """

    @abstractmethod
    async def next(self) -> tuple[Any, Any] | None:
        """
        Return the next key-value pair.

        Returns:
            A (key, value) tuple, or None once the sequence is exhausted.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release every resource held by the iterator."""
        pass

    def __aiter__(self) -> AsyncIterator[tuple[Any, Any]]:
        return self

    async def __anext__(self) -> tuple[Any, Any]:
        item = await self.next()
        if item is None:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "KeyValueIterator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
