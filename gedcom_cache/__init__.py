"""Transparent persistent cache in front of a GEDCOM parser."""

__version__ = "1.0.0"

from .cache import CachedGedcom, CachingParser
from .gedcom import Gedcom, GedcomParseError, GedcomRecord, RecordType, parse_gedcom

__all__ = [
    "CachedGedcom",
    "CachingParser",
    "Gedcom",
    "GedcomParseError",
    "GedcomRecord",
    "RecordType",
    "parse_gedcom",
    "__version__",
]
