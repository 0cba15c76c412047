"""GEDCOM file parsing on top of ged4py.

``parse_gedcom`` reads every zero-level record of a file with
``ged4py.parser.GedcomReader`` and converts the ged4py record trees into
plain ``GedcomRecord`` trees. The converted trees carry no reference to the
reader, so they can be serialized after the file is closed.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

from ged4py.parser import GedcomReader, ParserError

from .model import Gedcom, GedcomRecord, UnknownRecordTypeError

logger = logging.getLogger(__name__)

# Trailer record, marks end of file and carries no data
TRAILER_TAG = "TRLR"


class GedcomParseError(Exception):
    """Raised when a GEDCOM file cannot be read or is malformed."""


def _plain_value(value: Any) -> Any:
    """Reduce a ged4py record value to something JSON can hold."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (list, tuple)):
        return [_plain_value(item) for item in value]
    # ged4py pointers keep the referenced xref id in .value
    pointer = getattr(value, "value", None)
    if isinstance(pointer, str):
        return pointer
    return str(value)


def convert_record(record: Any) -> GedcomRecord:
    """Convert a ged4py record (and its sub-records) to a ``GedcomRecord``."""
    return GedcomRecord(
        tag=record.tag,
        xref_id=record.xref_id,
        value=_plain_value(record.value),
        level=record.level,
        sub_records=[convert_record(sub) for sub in (record.sub_records or [])],
    )


def parse_gedcom(path: Union[str, Path], encoding: Optional[str] = None) -> Gedcom:
    """Parse a GEDCOM file into a ``Gedcom`` model.

    Args:
        path: Path to the GEDCOM file
        encoding: Source encoding; None lets ged4py detect it from the header

    Returns:
        Gedcom model with all zero-level records

    Raises:
        GedcomParseError: If the file is missing, unreadable or malformed
    """
    path = Path(path)
    gedcom = Gedcom()

    try:
        with GedcomReader(str(path), encoding=encoding) as reader:
            for record in reader.records0():
                if record.tag == TRAILER_TAG:
                    continue
                converted = convert_record(record)
                try:
                    gedcom.add(converted)
                except UnknownRecordTypeError:
                    logger.warning(
                        f"Unhandled zero-level record {converted.tag} "
                        f"({converted.xref_id or 'no id'}) in {path.name}"
                    )
                    gedcom.unhandled.append(converted)
    except (ParserError, OSError, ValueError) as e:
        raise GedcomParseError(f"Failed to parse GEDCOM file {path}: {e}") from e

    logger.debug(f"Parsed {len(gedcom)} zero-level records from {path.name}")
    return gedcom
