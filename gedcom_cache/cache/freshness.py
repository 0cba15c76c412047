"""Cache freshness policy.

Decides from filesystem metadata whether a cache file can be used as is or
must be created, cleared or filled first. ``CacheFileFacts.collect`` does
the stat calls; ``classify`` is a pure function over the collected facts.

States:
    NEEDS_CREATE: No cache file, or a zero-length one
    NEEDS_CLEAR: Cache file is older than the source file
    NEEDS_FILL: Cache file is current but holds no records
    FRESH: Cache file is current and populated
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class CacheState(Enum):
    """Classification of a cache file relative to its source."""

    NEEDS_CREATE = "needs_create"
    NEEDS_CLEAR = "needs_clear"
    NEEDS_FILL = "needs_fill"
    FRESH = "fresh"

    @property
    def needs_fill(self) -> bool:
        """Every state except FRESH is followed by a fill."""
        return self is not CacheState.FRESH


@dataclass(frozen=True)
class CacheFileFacts:
    """Filesystem facts about a cache file and its source.

    Attributes:
        exists: Whether the cache file exists
        size: Cache file size in bytes (0 if missing)
        mtime: Cache file modification time, None if unknown
        source_mtime: Source file modification time, None if unknown or no source
    """

    exists: bool
    size: int = 0
    mtime: Optional[float] = None
    source_mtime: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    @property
    def is_stale(self) -> bool:
        """True only when both times are known and the cache is older.

        An unknown time never makes a cache stale.
        """
        if self.mtime is None or self.source_mtime is None:
            return False
        return self.mtime < self.source_mtime

    @classmethod
    def collect(
        cls,
        cache_path: Union[str, Path],
        source_path: Optional[Union[str, Path]] = None,
    ) -> "CacheFileFacts":
        """Stat the cache file and, if given, the source file.

        A source that cannot be stat'ed is logged and reported with an
        unknown mtime, which ``is_stale`` treats as not stale.
        """
        try:
            stat = os.stat(cache_path)
            exists, size, mtime = True, stat.st_size, stat.st_mtime
        except FileNotFoundError:
            exists, size, mtime = False, 0, None
        except OSError as e:
            logger.warning(f"Cannot stat cache file {cache_path}: {e}")
            exists, size, mtime = True, 0, None

        source_mtime = None
        if source_path is not None:
            try:
                source_mtime = os.stat(source_path).st_mtime
            except OSError as e:
                logger.warning(
                    f"Cannot stat source file {source_path}, treating cache as not stale: {e}"
                )

        return cls(exists=exists, size=size, mtime=mtime, source_mtime=source_mtime)


def classify(facts: CacheFileFacts, row_count: int = 0) -> CacheState:
    """Classify a cache file.

    Args:
        facts: Filesystem facts from ``CacheFileFacts.collect``
        row_count: Rows currently in the cache; only consulted for a
            non-empty cache file that is not stale

    Returns:
        The CacheState that decides what must happen before reads
    """
    if not facts.exists or facts.is_empty:
        return CacheState.NEEDS_CREATE
    if facts.is_stale:
        return CacheState.NEEDS_CLEAR
    if row_count > 0:
        return CacheState.FRESH
    return CacheState.NEEDS_FILL
