"""GEDCOM domain model and file parsing.

The cache treats both as collaborators: the parser turns a file into a
``Gedcom`` model, and each ``GedcomRecord`` knows how to become a plain dict.
"""

from .model import Gedcom, GedcomRecord, RecordType, UnknownRecordTypeError
from .parser import GedcomParseError, parse_gedcom

__all__ = [
    "Gedcom",
    "GedcomParseError",
    "GedcomRecord",
    "RecordType",
    "UnknownRecordTypeError",
    "parse_gedcom",
]
