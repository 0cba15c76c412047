"""Fill a record store from a GEDCOM file.

The filler parses the source once, then writes every zero-level record in a
single transaction that also covers schema creation and (for a stale cache)
clearing. Any failed write rolls the whole transaction back, so a store is
never left holding part of a file.
"""
from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..gedcom.model import Gedcom, RecordType
from ..gedcom.parser import parse_gedcom
from .errors import CacheWriteError
from .record_store import RecordStore

logger = logging.getLogger(__name__)

# Write order for one fill
FILL_ORDER: Tuple[RecordType, ...] = (
    RecordType.HEAD,
    RecordType.SUBN,
    RecordType.SUBM,
    RecordType.SOUR,
    RecordType.INDI,
    RecordType.FAM,
    RecordType.NOTE,
    RecordType.REPO,
    RecordType.OBJE,
)

ProgressCallback = Callable[[int, int], None]


@dataclass
class FillReport:
    """Outcome of one fill.

    Attributes:
        counts: Records written per type tag
        unhandled: Zero-level tags the parser found but the cache does not handle
        cleared: Rows removed before filling
        duration: Seconds spent writing
    """

    counts: Dict[str, int] = field(default_factory=dict)
    unhandled: Dict[str, int] = field(default_factory=dict)
    cleared: int = 0
    duration: float = 0.0

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class CacheFiller:
    """Writes the zero-level records of a GEDCOM file into a RecordStore.

    Args:
        parser: Turns a source path into a Gedcom model
        progress_callback: Called as ``(completed, total)`` every
            ``heartbeat_interval`` records and once when writing ends; lets
            a host reset execution budgets during long fills. The last call
            comes before the commit; an exception from the callback rolls
            the fill back and is raised as CacheWriteError
        heartbeat_interval: Records between progress callbacks
    """

    def __init__(
        self,
        parser: Callable[[Path], Gedcom] = parse_gedcom,
        progress_callback: Optional[ProgressCallback] = None,
        heartbeat_interval: int = 100,
    ):
        if heartbeat_interval <= 0:
            raise ValueError(f"heartbeat_interval must be positive, got {heartbeat_interval}")
        self._parser = parser
        self.progress_callback = progress_callback
        self.heartbeat_interval = heartbeat_interval

    def parse(self, source_path: Union[str, Path]) -> Gedcom:
        """Parse the source file.

        Raises:
            GedcomParseError: If the source is unreadable or malformed
        """
        start = time.time()
        gedcom = self._parser(Path(source_path))
        logger.info(f"Parsed {Path(source_path).name} in {time.time() - start:.2f}s")
        return gedcom

    def fill(
        self, source_path: Union[str, Path], store: RecordStore, clear: bool = False
    ) -> FillReport:
        """Parse ``source_path`` and write all of its records into ``store``.

        Raises:
            GedcomParseError: If parsing fails; the store is not touched
            CacheSetupError: If schema creation or a write fails; the
                transaction is rolled back
        """
        return self.write(self.parse(source_path), store, clear=clear)

    def write(self, gedcom: Gedcom, store: RecordStore, clear: bool = False) -> FillReport:
        """Write an already parsed model into ``store`` in one transaction.

        Args:
            gedcom: Parsed model
            store: Open record store
            clear: Delete existing rows first (stale cache)

        Returns:
            FillReport with per-type counts

        Raises:
            CacheSetupError: If schema creation, a write or the progress
                callback fails; nothing from this call is kept
        """
        report = FillReport()
        report.unhandled = dict(Counter(record.tag for record in gedcom.unhandled))
        for tag, count in report.unhandled.items():
            logger.warning(f"Not caching {count} unhandled {tag} record(s)")

        batches: List[Tuple[RecordType, list]] = [
            (record_type, gedcom.all_records(record_type)) for record_type in FILL_ORDER
        ]
        total = sum(len(records) for _, records in batches)
        completed = 0

        start = time.time()
        with store.transaction():
            store.ensure_schema()
            if clear:
                report.cleared = store.clear()

            for record_type, records in batches:
                for record in records:
                    # HEAD and SUBN have no natural id; they are looked up by type
                    record_id = None if record_type.is_singleton else record.natural_id
                    if record_id is None and not record_type.is_singleton:
                        logger.warning(f"{record_type.value} record without an id, generating one")
                    store.cache_record(record, record_id=record_id, record_type=record_type)
                    completed += 1
                    if completed % self.heartbeat_interval == 0:
                        self._heartbeat(completed, total)
                if records:
                    report.counts[record_type.value] = len(records)

            self._heartbeat(completed, total)

        report.duration = time.time() - start
        if report.cleared:
            logger.info(f"Cleared {report.cleared} stale records from {store.db_path.name}")
        logger.info(
            f"Cached {report.total} records into {store.db_path.name} in {report.duration:.2f}s"
        )
        return report

    def _heartbeat(self, completed: int, total: int) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(completed, total)
        except Exception as e:
            raise CacheWriteError(f"Progress callback failed at {completed}/{total}: {e}") from e
