"""Caching front end for the GEDCOM parser.

Use ``CachingParser`` wherever you would parse a GEDCOM file directly::

    parser = CachingParser("cache/family.ged.sqlite")
    gedcom = parser.parse("family.ged")

    for indi in gedcom.get_indi():
        ...
    head = gedcom.get_head()

On each ``parse`` the cache file is classified against the source file
(``freshness.classify``) and created, cleared or filled as needed. The
returned ``CachedGedcom`` then serves records lazily from the database.

Caching is an optimization only: if the cache cannot be opened, created or
filled, the failure is logged and ``parse`` returns the live ``Gedcom``
model from parsing the file directly. Both objects expose the same
accessors.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from ..config import Config, get_config
from ..gedcom.model import Gedcom, GedcomRecord, RecordType
from ..gedcom.parser import parse_gedcom
from .collection import LazyRecordCollection
from .compression import JsonRecordCodec, RecordCodec
from .errors import CacheConnectError, CacheReadError, CacheSetupError
from .filler import CacheFiller, FillReport, ProgressCallback
from .freshness import CacheFileFacts, CacheState, classify
from .record_store import RecordStore

logger = logging.getLogger(__name__)


class CachedGedcom:
    """``Gedcom``-compatible view backed by a cache database.

    Collection types return a ``LazyRecordCollection``; the singleton types
    HEAD and SUBN return the record itself, or None. Every collection handed
    out stays open until it is closed or this object is closed.
    """

    def __init__(self, db_path: Union[str, Path], codec: Optional[RecordCodec] = None):
        self.db_path = Path(db_path)
        self.codec = codec or JsonRecordCodec()
        self._collections: List[LazyRecordCollection] = []

    def records(self, record_type: Union[str, RecordType]) -> Any:
        """Cached records of one type.

        Raises:
            UnknownRecordTypeError: If ``record_type`` is not a handled type
            CacheReadError: If the cache cannot be read
        """
        record_type = RecordType.parse(record_type)
        collection = LazyRecordCollection(self.db_path, record_type, self.codec)
        if record_type.is_singleton:
            with collection:
                return collection.first()
        self._collections.append(collection)
        return collection

    def add(self, record: GedcomRecord) -> bool:
        """Accepted and ignored; the cache is written only by a fill."""
        logger.debug(f"Ignoring add of {record.tag} record to read-only cache {self.db_path.name}")
        return True

    def get_head(self) -> Optional[GedcomRecord]:
        return self.records(RecordType.HEAD)

    def get_subn(self) -> Optional[GedcomRecord]:
        return self.records(RecordType.SUBN)

    def get_subm(self) -> LazyRecordCollection:
        return self.records(RecordType.SUBM)

    def get_sour(self) -> LazyRecordCollection:
        return self.records(RecordType.SOUR)

    def get_indi(self) -> LazyRecordCollection:
        return self.records(RecordType.INDI)

    def get_fam(self) -> LazyRecordCollection:
        return self.records(RecordType.FAM)

    def get_note(self) -> LazyRecordCollection:
        return self.records(RecordType.NOTE)

    def get_repo(self) -> LazyRecordCollection:
        return self.records(RecordType.REPO)

    def get_obje(self) -> LazyRecordCollection:
        return self.records(RecordType.OBJE)

    def close(self) -> None:
        """Close every collection this view has handed out."""
        for collection in self._collections:
            collection.close()
        self._collections.clear()

    def __enter__(self) -> "CachedGedcom":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class CachingParser:
    """Parses GEDCOM files through a persistent SQLite cache.

    Args:
        cache_file: Cache database path; defaults to ``config.cache_path_for(source)``
        parser: Parses a source path into a Gedcom model
        codec: Payload codec; defaults to JSON, compressed per config
        config: Settings; defaults to the global config
        progress_callback: Passed to the CacheFiller as its heartbeat

    Attributes:
        state: CacheState from the last ``parse``, None if caching was skipped
        last_report: FillReport from the last fill, None if nothing was written
    """

    def __init__(
        self,
        cache_file: Optional[Union[str, Path]] = None,
        *,
        parser: Optional[Callable[[Path], Gedcom]] = None,
        codec: Optional[RecordCodec] = None,
        config: Optional[Config] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.config = config or get_config()
        self.cache_file = Path(cache_file) if cache_file is not None else None
        self.codec = codec or JsonRecordCodec(compress=self.config.compress_payloads)
        self._parser = parser or self._default_parser
        self.filler = CacheFiller(
            parser=self._parser,
            progress_callback=progress_callback,
            heartbeat_interval=self.config.heartbeat_interval,
        )
        self.state: Optional[CacheState] = None
        self.last_report: Optional[FillReport] = None

    def _default_parser(self, source_path: Path) -> Gedcom:
        return parse_gedcom(source_path, encoding=self.config.source_encoding)

    def cache_path_for(self, source_path: Union[str, Path]) -> Path:
        if self.cache_file is not None:
            return self.cache_file
        return self.config.cache_path_for(source_path)

    @staticmethod
    def _count_rows(store: RecordStore) -> int:
        # A file that opens but cannot be read (corrupt pages, locked) is unusable
        try:
            return store.count_rows()
        except CacheReadError as e:
            raise CacheConnectError(f"Cache {store.db_path} is unreadable: {e}") from e

    def parse(self, source_path: Union[str, Path]) -> Union[CachedGedcom, Gedcom]:
        """Parse ``source_path``, through the cache when possible.

        Returns:
            CachedGedcom when the cache is usable, otherwise the live Gedcom

        Raises:
            GedcomParseError: If the source file itself cannot be parsed
        """
        source_path = Path(source_path)
        self.state = None
        self.last_report = None

        if not self.config.enable_caching:
            logger.debug(f"Caching disabled, parsing {source_path.name} directly")
            return self._parser(source_path)

        cache_path = self.cache_path_for(source_path)
        parsed: Optional[Gedcom] = None
        facts = CacheFileFacts.collect(cache_path, source_path)
        try:
            with RecordStore.open(cache_path, self.codec) as store:
                row_count = self._count_rows(store) if facts.exists and not facts.is_empty else 0
                self.state = classify(facts, row_count)
                logger.info(f"Cache {cache_path.name} for {source_path.name}: {self.state.value}")

                if self.state.needs_fill:
                    parsed = self.filler.parse(source_path)
                    self.last_report = self.filler.write(
                        parsed, store, clear=self.state is CacheState.NEEDS_CLEAR
                    )
        except CacheSetupError as e:
            logger.warning(f"Cache unavailable for {source_path.name}, parsing without it: {e}")
            self.state = None
            return parsed if parsed is not None else self._parser(source_path)

        return CachedGedcom(cache_path, self.codec)

    def open_cache(self, cache_file: Optional[Union[str, Path]] = None) -> CachedGedcom:
        """Open an existing cache without a source file.

        With no source to compare against the cache is never stale, but it
        must exist and hold records.

        Raises:
            CacheConnectError: If the cache is missing, unreadable or empty
        """
        cache_path = Path(cache_file) if cache_file is not None else self.cache_file
        if cache_path is None:
            raise CacheConnectError("No cache file given")

        facts = CacheFileFacts.collect(cache_path)
        if not facts.exists or facts.is_empty:
            raise CacheConnectError(f"Cache file {cache_path} does not exist or is empty")

        with RecordStore.open(cache_path, self.codec) as store:
            self.state = classify(facts, self._count_rows(store))
        if self.state is not CacheState.FRESH:
            raise CacheConnectError(f"Cache file {cache_path} holds no records")
        return CachedGedcom(cache_path, self.codec)
