"""Lazy, cursor-backed view over the cached records of one type.

A ``LazyRecordCollection`` reads like the list the parser would have
returned (iteration in file order, lookup by id) without loading the rows
into memory:

- Each iteration (``for``, ``keys()``, ``items()``) streams
  ``SELECT ... WHERE type = ?`` on a cursor of its own, one row at a time,
  so loops over the same collection can nest.
- ``has_next``/``peek``/``advance``/``restart`` drive a separate shared
  cursor with a one-row lookahead slot.
- Lookups by id, ``first()`` and ``len()`` run their own single-row query,
  so they never move any streaming cursor.
- Payloads are decoded only when a value is actually read (``peek``,
  ``get``, iteration); ``keys()`` and ``has_next()`` never decode.

Each collection opens its own read-only connection to the cache file.
Writing to the store while a collection is iterating is not supported.
"""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterator, Optional, Tuple, Union

from ..gedcom.model import RecordType
from .compression import JsonRecordCodec, RecordCodec
from .errors import CacheReadError
from .record_store import TABLE_NAME, connect, type_tag

logger = logging.getLogger(__name__)

_STREAM_SQL = f"SELECT id, payload FROM {TABLE_NAME} WHERE type = ? ORDER BY rowid"
_LOOKUP_SQL = f"SELECT id, payload FROM {TABLE_NAME} WHERE type = ? AND id = ? LIMIT 1"
_COUNT_SQL = f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE type = ?"
_FIRST_SQL = f"SELECT id, payload FROM {TABLE_NAME} WHERE type = ? ORDER BY rowid LIMIT 1"


class LazyRecordCollection:
    """Read-only, type-scoped collection over a cache database.

    Usage::

        with LazyRecordCollection("family.ged.sqlite", RecordType.INDI) as indis:
            for indi in indis:
                ...
            if "@I1@" in indis:
                first = indis["@I1@"]

    Args:
        db_path: Cache database file
        record_type: Type of record this collection covers
        codec: Decodes payloads; must match the codec used to write them
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        record_type: Union[str, RecordType],
        codec: Optional[RecordCodec] = None,
    ):
        self.db_path = Path(db_path)
        self.record_type = type_tag(record_type)
        self.codec = codec or JsonRecordCodec()
        self._conn: Optional[sqlite3.Connection] = connect(self.db_path, read_only=True)
        self._cursor: Optional[sqlite3.Cursor] = None
        self._lookahead: Optional[Tuple[str, bytes]] = None

    # ── Streaming cursor ──────────────────────────────────────────────────

    def restart(self) -> None:
        """Re-run the streaming query from the first row.

        Drops any buffered row. Safe to call any number of times. The query
        itself runs on the next read, so an idle collection holds no cursor.
        """
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None
        self._lookahead = None

    def _stream(self) -> sqlite3.Cursor:
        if self._cursor is None:
            try:
                self._cursor = self._connection.execute(_STREAM_SQL, (self.record_type,))
            except sqlite3.Error as e:
                raise CacheReadError(f"Failed to query {self.record_type} records: {e}") from e
        return self._cursor

    def has_next(self) -> bool:
        """Buffer the next row if the slot is empty; True if a row is buffered."""
        if self._lookahead is not None:
            return True
        try:
            row = self._stream().fetchone()
        except sqlite3.Error as e:
            raise CacheReadError(f"Failed to read {self.record_type} records: {e}") from e
        if row is not None:
            self._lookahead = (row[0], row[1])
        return self._lookahead is not None

    def peek(self) -> Optional[Tuple[str, Any]]:
        """Return ``(id, record)`` for the buffered row without advancing.

        Returns:
            The buffered row, decoded, or None when the cursor is exhausted
        """
        if not self.has_next():
            return None
        record_id, payload = self._lookahead
        return record_id, self.codec.loads(payload)

    def peek_key(self) -> Optional[str]:
        """Id of the buffered row, without decoding its payload."""
        if not self.has_next():
            return None
        return self._lookahead[0]

    def advance(self) -> None:
        """Discard the buffered row; the next read pulls a new one."""
        self._lookahead = None

    # ── Point lookups ─────────────────────────────────────────────────────

    def _fetch_one(self, sql: str, params: Tuple[Any, ...], action: str) -> Optional[Tuple[Any, ...]]:
        try:
            cursor = self._connection.execute(sql, params)
        except sqlite3.Error as e:
            raise CacheReadError(f"Failed to {action} {self.record_type} records: {e}") from e
        try:
            return cursor.fetchone()
        except sqlite3.Error as e:
            raise CacheReadError(f"Failed to {action} {self.record_type} records: {e}") from e
        finally:
            cursor.close()

    def _lookup(self, record_id: str) -> Optional[Tuple[str, bytes]]:
        return self._fetch_one(_LOOKUP_SQL, (self.record_type, record_id), f"look up {record_id!r} in")

    def contains_key(self, record_id: str) -> bool:
        return self._lookup(record_id) is not None

    def get(self, record_id: str, default: Any = None) -> Any:
        """Decoded record with ``record_id``, or ``default`` if there is none."""
        row = self._lookup(record_id)
        if row is None:
            return default
        return self.codec.loads(row[1])

    def __contains__(self, record_id: object) -> bool:
        return isinstance(record_id, str) and self.contains_key(record_id)

    def __getitem__(self, record_id: str) -> Any:
        row = self._lookup(record_id)
        if row is None:
            raise KeyError(record_id)
        return self.codec.loads(row[1])

    def __setitem__(self, record_id: str, value: Any) -> None:
        logger.debug(f"Ignoring write of {record_id!r} to read-only {self.record_type} collection")

    def __delitem__(self, record_id: str) -> None:
        logger.debug(f"Ignoring delete of {record_id!r} from read-only {self.record_type} collection")

    def __len__(self) -> int:
        row = self._fetch_one(_COUNT_SQL, (self.record_type,), "count")
        return row[0]

    # ── Iteration ─────────────────────────────────────────────────────────

    def _rows(self) -> Iterator[Tuple[str, bytes]]:
        """Stream ``(id, payload)`` rows on a cursor owned by this generator.

        Every iterator gets its own cursor, so nested loops over the same
        collection, ``first()`` or lookups inside a loop never disturb it.
        """
        try:
            cursor = self._connection.execute(_STREAM_SQL, (self.record_type,))
        except sqlite3.Error as e:
            raise CacheReadError(f"Failed to query {self.record_type} records: {e}") from e
        try:
            while True:
                try:
                    row = cursor.fetchone()
                except sqlite3.Error as e:
                    raise CacheReadError(f"Failed to read {self.record_type} records: {e}") from e
                if row is None:
                    return
                yield row[0], row[1]
        finally:
            if self._conn is not None:
                cursor.close()

    def keys(self) -> Iterator[str]:
        """Ids in file order; payloads are not decoded."""
        for record_id, _ in self._rows():
            yield record_id

    def items(self) -> Iterator[Tuple[str, Any]]:
        for record_id, payload in self._rows():
            yield record_id, self.codec.loads(payload)

    def __iter__(self) -> Iterator[Any]:
        for _, payload in self._rows():
            yield self.codec.loads(payload)

    def first(self) -> Any:
        """First record of this type, or None. Used for singleton types."""
        row = self._fetch_one(_FIRST_SQL, (self.record_type,), "read first")
        return self.codec.loads(row[1]) if row is not None else None

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise CacheReadError(f"{self.record_type} collection is closed")
        return self._conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    def close(self) -> None:
        if self._conn is None:
            return
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None
        self._lookahead = None
        self._conn.close()
        self._conn = None

    def __enter__(self) -> "LazyRecordCollection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"LazyRecordCollection({self.db_path.name!r}, {self.record_type!r}, {state})"
