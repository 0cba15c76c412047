"""Payload codecs for cached records.

The record store never looks inside a payload; it only calls a codec's
``dumps`` on the way in and ``loads`` on the way out. ``JsonRecordCodec``
is the default: JSON built from the record's ``to_dict()``, zlib-compressed
unless compression is turned off.
"""
from __future__ import annotations

import json
import zlib
from typing import Any, Callable, Dict, Protocol, runtime_checkable

from ..gedcom.model import GedcomRecord
from .errors import CacheSerializationError


@runtime_checkable
class RecordCodec(Protocol):
    """Serialize a domain object to bytes and back."""

    def dumps(self, value: Any) -> bytes:
        ...

    def loads(self, data: bytes) -> Any:
        ...


class JsonRecordCodec:
    """JSON + zlib codec for objects exposing ``to_dict()``.

    Args:
        factory: Rebuilds an object from the decoded dict
        compress: Compress the JSON bytes with zlib level 6
    """

    def __init__(
        self,
        factory: Callable[[Dict[str, Any]], Any] = GedcomRecord.from_dict,
        compress: bool = True,
    ):
        self.factory = factory
        self.compress = compress

    def dumps(self, value: Any) -> bytes:
        """Encode ``value``.

        Raises:
            CacheSerializationError: If the value has no ``to_dict()`` or its
                dict is not JSON-serializable
        """
        to_dict = getattr(value, "to_dict", None)
        if not callable(to_dict):
            raise CacheSerializationError(f"Cannot serialize {type(value).__name__}: no to_dict()")

        try:
            json_bytes = json.dumps(to_dict(), ensure_ascii=False).encode("utf-8")
            if self.compress:
                json_bytes = zlib.compress(json_bytes, level=6)
            return json_bytes
        except (TypeError, ValueError, zlib.error) as e:
            raise CacheSerializationError(f"Failed to serialize {type(value).__name__}: {e}") from e

    def loads(self, data: bytes) -> Any:
        """Decode bytes produced by ``dumps``.

        Raises:
            CacheSerializationError: On corrupt, truncated or mismatched data
        """
        try:
            raw = zlib.decompress(data) if self.compress else data
            return self.factory(json.loads(raw.decode("utf-8")))
        except (zlib.error, UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as e:
            raise CacheSerializationError(f"Failed to deserialize cached payload: {e}") from e
