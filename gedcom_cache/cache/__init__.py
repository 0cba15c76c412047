"""Persistent SQLite cache for parsed GEDCOM files.

Parsing a large GEDCOM file is slow. This package stores every zero-level
record of a file in a SQLite database the first time it is parsed and
serves later reads lazily from that database, until the source file changes.

Components:
    Front end:
        - CachingParser: Drop-in replacement for direct parsing
        - CachedGedcom: Gedcom-compatible view over a filled cache

    Storage:
        - RecordStore: Owns the cache table and its write transactions
        - LazyRecordCollection: Cursor-backed, read-only view of one record type
        - CacheFiller: Writes a parsed file into a store in one transaction

    Policy:
        - CacheFileFacts / classify: Decide whether a cache must be created,
          cleared, filled or can be used as is

Usage::

    from gedcom_cache.cache import CachingParser

    gedcom = CachingParser().parse("family.ged")
    for indi in gedcom.get_indi():
        print(indi.xref_id, indi.sub_tag_value("NAME"))
    gedcom.close()
"""

from .caching_parser import CachedGedcom, CachingParser
from .collection import LazyRecordCollection
from .compression import JsonRecordCodec, RecordCodec
from .errors import (
    CacheConnectError,
    CacheReadError,
    CacheSchemaError,
    CacheSerializationError,
    CacheSetupError,
    CacheWriteError,
    GedcomCacheError,
)
from .filler import FILL_ORDER, CacheFiller, FillReport
from .freshness import CacheFileFacts, CacheState, classify
from .record_store import CacheRecord, RecordStore

__all__ = [
    "CachedGedcom",
    "CachingParser",
    "CacheConnectError",
    "CacheFileFacts",
    "CacheFiller",
    "CacheReadError",
    "CacheRecord",
    "CacheSchemaError",
    "CacheSerializationError",
    "CacheSetupError",
    "CacheState",
    "CacheWriteError",
    "FILL_ORDER",
    "FillReport",
    "GedcomCacheError",
    "JsonRecordCodec",
    "LazyRecordCollection",
    "RecordCodec",
    "RecordStore",
    "classify",
]
