"""
Custom exceptions for the key-value store.
"""


class StoreError(Exception):
    """Base class for every error raised by the store."""


class NotFoundError(StoreError, KeyError):
    """Raised when a key is absent and the caller asked for a hard failure."""

    def __init__(self, key):
        self.key = key
        super().__init__(f"Key not found in database [{key!r}]")

    def __str__(self) -> str:
        return self.args[0]


class SerializationError(StoreError, ValueError):
    """
    Raised when a key or value cannot be represented in its column type.

    Examples are NUL characters in a text column or malformed JSON in a
    JSON column. Values are never silently truncated.
    """


class ConnectionFailure(StoreError):
    """
    Raised when acquiring a connection, running a query or committing fails.

    The driver exception is chained as ``__cause__``.
    """


class ResourceLeakError(StoreError):
    """
    Raised at teardown when connections were acquired but never returned.

    This is a fail-fast consistency error and is never retried.
    """

    def __init__(self, dangling: int):
        """
        Initialize leak error.

        Args:
            dangling: Number of connections still leased at teardown.
        """
        self.dangling = dangling
        super().__init__(f"dangling connections: {dangling}")


class ConfigurationError(StoreError, ValueError):
    """Raised for invalid store configuration or location strings."""


class IteratorClosedError(StoreError):
    """Raised when next() is called on an iterator that was closed."""


class StoreClosedError(StoreError):
    """Raised when an operation is attempted on a store that is not open."""
