"""
Column serialization for keys and values.

This module is the single place where key/value column types are decided.
Keys always live in a binary column so the engine orders them byte-wise.
Values go to a binary, text or JSON column depending on ``ColumnType``.
"""

import json
from enum import Enum

from sqlkv.models.exceptions import SerializationError

# Round-trips arbitrary bytes through str without loss
_UTF8_ERRORS = "surrogateescape"


class ColumnType(Enum):
    """Storage type of the value column."""

    BYTES = "bytes"  # bytea / BLOB
    TEXT = "text"  # text / TEXT
    JSON = "json"  # jsonb / TEXT holding JSON


def is_bytes(source: object) -> bool:
    return isinstance(source, (bytes, bytearray, memoryview))


def _stringify(source: object) -> str:
    if source is None:
        return ""
    if isinstance(source, str):
        return source
    return str(source)


def _to_bytes(source: object) -> bytes:
    if is_bytes(source):
        return bytes(source)
    try:
        return _stringify(source).encode("utf-8", _UTF8_ERRORS)
    except UnicodeEncodeError as e:
        raise SerializationError(f"Cannot encode {source!r} as UTF-8: {e}") from e


def serialize_key(key: object) -> bytes:
    """
    Convert an application key to its binary column representation.

    Args:
        key: bytes-like keys pass through, anything else is stringified
             and UTF-8 encoded. None becomes the empty key.

    Returns:
        The key as bytes.
    """
    return _to_bytes(key)


def serialize_value(value: object, column: ColumnType = ColumnType.BYTES) -> bytes | str:
    """
    Convert an application value to its column representation.

    Rules:
    - BYTES column: bytes pass through, other values are stringified and
      encoded. None becomes b"".
    - TEXT column: bytes are decoded as UTF-8, other values stringified.
      None becomes "".
    - JSON column: the value must already be JSON text (encoding to JSON
      happens above this layer). None becomes "null".

    Raises:
        SerializationError: If the value cannot be stored without loss.
    """
    if column is ColumnType.BYTES:
        return _to_bytes(value)

    if is_bytes(value):
        try:
            text = bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError(
                f"Value is not valid UTF-8 for a {column.value} column: {e}"
            ) from e
    elif value is None and column is ColumnType.JSON:
        text = "null"
    else:
        text = _stringify(value)

    if "\x00" in text:
        raise SerializationError(
            f"NUL characters cannot be stored in a {column.value} column"
        )
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise SerializationError(
            f"Value is not encodable as UTF-8 for a {column.value} column: {e}"
        ) from e

    if column is ColumnType.JSON:
        try:
            json.loads(text)
        except ValueError as e:
            raise SerializationError(f"Value is not valid JSON: {e}") from e

    return text


def deserialize_key(source: object, as_bytes: bool = False) -> bytes | str:
    """Convert a key column value back to bytes or str."""
    raw = b"" if source is None else bytes(source)
    if as_bytes:
        return raw
    return raw.decode("utf-8", _UTF8_ERRORS)


def deserialize_value(source: object, as_bytes: bool = False) -> bytes | str:
    """
    Convert a value column value back to bytes or str.

    A NULL column comes back as b"" or "", never None, so None can be
    reserved for "key absent".
    """
    if source is None:
        return b"" if as_bytes else ""
    if as_bytes:
        if is_bytes(source):
            return bytes(source)
        return _stringify(source).encode("utf-8", _UTF8_ERRORS)
    if is_bytes(source):
        return bytes(source).decode("utf-8", _UTF8_ERRORS)
    return _stringify(source)
