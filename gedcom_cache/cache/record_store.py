"""SQLite record store for cached zero-level GEDCOM records.

One table holds every cached record, keyed by a unique id and indexed by
record type and (reserved) parent id::

    cache(id TEXT PRIMARY KEY, parentId TEXT, type VARCHAR(4), payload BLOB)

The store owns a single connection opened in autocommit mode. Transactions
are explicit (``BEGIN IMMEDIATE`` ... ``COMMIT``) so that table creation,
clearing and every insert of a fill can share one transaction.

The database stays in the default rollback-journal mode: freshness checks
compare the database file's own modification time with the source file's,
and in WAL mode committed writes would land in the ``-wal`` file instead.
"""
from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from .compression import JsonRecordCodec, RecordCodec
from .errors import (
    CacheConnectError,
    CacheReadError,
    CacheSchemaError,
    CacheSerializationError,
    CacheWriteError,
)

logger = logging.getLogger(__name__)

TABLE_NAME = "cache"

_SCHEMA_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
        id TEXT PRIMARY KEY NOT NULL UNIQUE,
        parentId TEXT,
        type VARCHAR(4),
        payload BLOB
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_cache_parent ON {TABLE_NAME} (parentId)",
    f"CREATE INDEX IF NOT EXISTS idx_cache_type ON {TABLE_NAME} (type)",
)


@dataclass(frozen=True)
class CacheRecord:
    """One stored row.

    Attributes:
        id: Unique key across the whole store
        record_type: Record type tag (HEAD, INDI, FAM, ...)
        payload: Serialized domain object, opaque to the store
        parent_id: Owning zero-level record; reserved, always None today
    """

    id: str
    record_type: Optional[str]
    payload: bytes
    parent_id: Optional[str] = None


def type_tag(record_type: Any) -> Optional[str]:
    """Plain string tag for a record type given as str or RecordType."""
    if record_type is None:
        return None
    return str(getattr(record_type, "value", record_type))


def generate_record_id() -> str:
    """Unique token for records without a natural identifier."""
    return uuid.uuid4().hex


def connect(db_path: Union[str, Path], read_only: bool = False) -> sqlite3.Connection:
    """Open a connection to a cache database file.

    The connection is in autocommit mode (``isolation_level=None``) and is
    probed with a schema query so that a file which is not a SQLite database
    fails here rather than on first use.

    Raises:
        CacheConnectError: If the file cannot be created or opened
    """
    db_path = Path(db_path)
    try:
        if read_only:
            uri = f"{db_path.resolve().as_uri()}?mode=ro"
            conn = sqlite3.connect(uri, uri=True, isolation_level=None)
        else:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(db_path), isolation_level=None)
    except (sqlite3.Error, OSError) as e:
        raise CacheConnectError(f"Cannot open cache database {db_path}: {e}") from e

    try:
        conn.execute("PRAGMA schema_version").fetchone()
    except sqlite3.Error as e:
        conn.close()
        raise CacheConnectError(f"Cannot read cache database {db_path}: {e}") from e
    return conn


class RecordStore:
    """Owns the cache table and the write path into it.

    Usage::

        with RecordStore.open("family.ged.sqlite") as store:
            with store.transaction():
                store.ensure_schema()
                store.cache_record(indi, record_id=indi.natural_id, record_type="INDI")

    Attributes:
        db_path (Path): Path to the SQLite database file
        codec (RecordCodec): Serializes values passed to ``cache_record``
    """

    def __init__(self, db_path: Union[str, Path], codec: Optional[RecordCodec] = None):
        self.db_path = Path(db_path)
        self.codec = codec or JsonRecordCodec()
        self._conn: Optional[sqlite3.Connection] = None

    @classmethod
    def open(cls, db_path: Union[str, Path], codec: Optional[RecordCodec] = None) -> "RecordStore":
        """Open or create the database at ``db_path``.

        Raises:
            CacheConnectError: If the file cannot be created or attached
        """
        store = cls(db_path, codec)
        store._conn = connect(store.db_path)
        logger.debug(f"Opened cache store at {store.db_path}")
        return store

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise CacheConnectError(f"Cache store {self.db_path} is not open")
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    # ── Schema ────────────────────────────────────────────────────────────

    def ensure_schema(self) -> None:
        """Create the cache table and its indexes if they don't exist.

        Raises:
            CacheSchemaError: If any DDL statement fails
        """
        try:
            for statement in _SCHEMA_STATEMENTS:
                self.connection.execute(statement)
        except sqlite3.Error as e:
            raise CacheSchemaError(f"Failed to create cache schema in {self.db_path}: {e}") from e

    def has_schema(self) -> bool:
        """True if the cache table exists."""
        try:
            row = self.connection.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (TABLE_NAME,),
            ).fetchone()
        except sqlite3.Error as e:
            raise CacheReadError(f"Failed to inspect cache schema: {e}") from e
        return row is not None

    # ── Transactions ──────────────────────────────────────────────────────

    def begin(self) -> None:
        try:
            self.connection.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise CacheWriteError(f"Failed to begin transaction on {self.db_path}: {e}") from e

    def commit(self) -> None:
        try:
            self.connection.execute("COMMIT")
        except sqlite3.Error as e:
            raise CacheWriteError(f"Failed to commit transaction on {self.db_path}: {e}") from e

    def rollback(self) -> None:
        """Roll back the open transaction, if any."""
        if not self.in_transaction:
            return
        try:
            self.connection.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error(f"Failed to roll back transaction on {self.db_path}: {e}")

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        """Run the enclosed block in one transaction.

        Commits on normal exit; rolls back and re-raises on any exception.
        """
        self.begin()
        try:
            yield self
            self.commit()
        except BaseException:
            self.rollback()
            raise

    # ── Writes ────────────────────────────────────────────────────────────

    def clear(self) -> int:
        """Delete all rows, keeping the schema.

        Returns:
            Number of rows deleted
        """
        try:
            cursor = self.connection.execute(f"DELETE FROM {TABLE_NAME}")
        except sqlite3.Error as e:
            raise CacheWriteError(f"Failed to clear cache {self.db_path}: {e}") from e
        return cursor.rowcount

    def insert(self, record: CacheRecord) -> None:
        """Insert one row.

        Raises:
            CacheWriteError: If the insert fails, including a duplicate id
        """
        try:
            self.connection.execute(
                f"INSERT INTO {TABLE_NAME} (id, parentId, type, payload) VALUES (?, ?, ?, ?)",
                (record.id, record.parent_id, record.record_type, sqlite3.Binary(record.payload)),
            )
        except sqlite3.Error as e:
            raise CacheWriteError(f"Failed to cache {record.record_type} record {record.id!r}: {e}") from e

    def cache_record(
        self,
        value: Any,
        record_id: Optional[str] = None,
        record_type: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> CacheRecord:
        """Serialize ``value`` with the store's codec and insert it.

        Args:
            value: Object to cache
            record_id: Key for the record; a unique token is generated if None
            record_type: Type tag used to scope lookups and iteration
            parent_id: Owning zero-level record, reserved for sub-record caching

        Returns:
            The stored CacheRecord

        Raises:
            CacheWriteError: If serialization or the insert fails
        """
        try:
            payload = self.codec.dumps(value)
        except CacheSerializationError as e:
            raise CacheWriteError(str(e)) from e

        record = CacheRecord(
            id=record_id if record_id is not None else generate_record_id(),
            record_type=type_tag(record_type),
            payload=payload,
            parent_id=parent_id,
        )
        self.insert(record)
        return record

    # ── Reads ─────────────────────────────────────────────────────────────

    def count_rows(self, record_type: Optional[str] = None) -> int:
        """Count rows, optionally of one type.

        Returns 0 when the cache table does not exist yet.
        """
        if not self.has_schema():
            return 0
        try:
            if record_type is None:
                row = self.connection.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()
            else:
                row = self.connection.execute(
                    f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE type = ?", (type_tag(record_type),)
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheReadError(f"Failed to count cached records: {e}") from e
        return row[0]

    def type_counts(self) -> Dict[str, int]:
        """Rows per record type."""
        if not self.has_schema():
            return {}
        try:
            rows = self.connection.execute(
                f"SELECT type, COUNT(*) FROM {TABLE_NAME} GROUP BY type ORDER BY type"
            ).fetchall()
        except sqlite3.Error as e:
            raise CacheReadError(f"Failed to count cached records: {e}") from e
        return {record_type: count for record_type, count in rows}

    def close(self) -> None:
        """Close the connection, rolling back any unfinished transaction."""
        if self._conn is None:
            return
        self.rollback()
        try:
            self._conn.close()
        finally:
            self._conn = None

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
