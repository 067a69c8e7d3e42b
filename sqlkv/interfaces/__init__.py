"""
Abstract base classes and protocols for the key-value store.
"""

from sqlkv.interfaces.backend import Backend, Connection, ServerCursor
from sqlkv.interfaces.kv_iterator import KeyValueIterator

__all__ = ["Backend", "Connection", "KeyValueIterator", "ServerCursor"]
