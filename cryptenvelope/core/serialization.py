"""
Payload Serializers
===================

The envelope codec encrypts bytes. A Serializer turns caller data into those
bytes and back.

    JsonSerializer      dict/list/str/int/float/bool/None <-> UTF-8 JSON
    RawBytesSerializer  bytes <-> bytes, unchanged
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from cryptenvelope.core.crypto.errors import SerializationError


class Serializer(Protocol):
    """Converts structured data to bytes and back."""

    def serialize(self, data: Any) -> bytes:
        ...

    def deserialize(self, payload: bytes) -> Any:
        ...


class JsonSerializer:
    """
    Compact UTF-8 JSON.

    Tuples come back as lists; dict keys come back as strings.
    """

    __slots__ = ()

    def serialize(self, data: Any) -> bytes:
        try:
            return json.dumps(
                data, ensure_ascii=False, separators=(",", ":"), allow_nan=False
            ).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Data is not JSON serializable: {e}") from e
        except RecursionError as e:
            raise SerializationError("Data nests too deeply to serialize") from e

    def deserialize(self, payload: bytes) -> Any:
        """
        Raises:
            ValueError: If the payload is not valid UTF-8 JSON or nests too deeply
        """
        try:
            return json.loads(payload.decode("utf-8"))
        except RecursionError as e:
            raise ValueError("Payload nests too deeply to deserialize") from e

    def __repr__(self) -> str:
        return "JsonSerializer()"


class RawBytesSerializer:
    """Passes bytes through untouched, trailing NULs and whitespace included."""

    __slots__ = ()

    def serialize(self, data: Any) -> bytes:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise SerializationError(
                f"RawBytesSerializer needs bytes, got {type(data).__name__}"
            )
        return bytes(data)

    def deserialize(self, payload: bytes) -> bytes:
        return bytes(payload)

    def __repr__(self) -> str:
        return "RawBytesSerializer()"
