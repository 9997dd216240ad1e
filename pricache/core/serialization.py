"""JSON serialization for cached payloads, backed by orjson."""

from __future__ import annotations

from typing import Any

import orjson

from .errors import SerializationError


def _default(obj: Any) -> Any:
    # orjson can't serialize sets directly, convert to sorted list
    if isinstance(obj, set | frozenset):
        return sorted(obj)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


class JsonSerializer:
    """Compact JSON encoding used both for storage and for size accounting."""

    def serialize(self, data: Any) -> bytes:
        """Serializes data to JSON bytes using orjson."""
        try:
            return orjson.dumps(data, default=_default)
        except (TypeError, orjson.JSONEncodeError) as e:
            raise SerializationError(str(e)) from e

    def deserialize(self, data: bytes | str) -> Any:
        """Deserializes JSON bytes or text using orjson."""
        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise SerializationError(str(e)) from e

    def dumps(self, data: Any) -> str:
        """Serialize to text for string-valued storage backends."""
        return self.serialize(data).decode("utf-8")

    def measure(self, data: Any) -> int:
        """UTF-8 byte length of the serialized value.

        This approximates the storage footprint; it ignores the entry envelope
        and whatever overhead the backend adds.
        """
        return len(self.serialize(data))
