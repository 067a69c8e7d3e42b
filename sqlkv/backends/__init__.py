"""
Relational backends implementing the connection-pool boundary.
"""

from sqlkv.backends.postgres import PostgresBackend
from sqlkv.backends.sqlite import SQLiteBackend
from sqlkv.interfaces.backend import Backend
from sqlkv.models.config import POSTGRES, SQLITE, StoreConfig
from sqlkv.models.exceptions import ConfigurationError


def create_backend(config: StoreConfig) -> Backend:
    """Return the backend named by ``config.backend``."""
    if config.backend == POSTGRES:
        return PostgresBackend(config)
    if config.backend == SQLITE:
        return SQLiteBackend(config)
    raise ConfigurationError(f"unsupported backend: {config.backend!r}")


__all__ = ["PostgresBackend", "SQLiteBackend", "create_backend"]
