"""In-memory GEDCOM domain model.

The model holds the zero-level records of one GEDCOM file. Each record is a
plain tree of ``GedcomRecord`` nodes so it can be serialized to JSON and
rebuilt without any reference back to the parser that produced it.

Components:
    - RecordType: The zero-level record tags this package knows how to cache
    - GedcomRecord: One GEDCOM record with its nested sub-records
    - Gedcom: All zero-level records of a file, grouped by type
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class UnknownRecordTypeError(ValueError):
    """Raised when a record type tag is not one of the handled types."""


class RecordType(str, Enum):
    """Zero-level record types.

    HEAD and SUBN are singletons: a GEDCOM file carries at most one of each,
    so accessors return the record itself instead of a collection.
    """

    HEAD = "HEAD"
    SUBN = "SUBN"
    SUBM = "SUBM"
    SOUR = "SOUR"
    INDI = "INDI"
    FAM = "FAM"
    NOTE = "NOTE"
    REPO = "REPO"
    OBJE = "OBJE"

    @property
    def is_singleton(self) -> bool:
        return self in (RecordType.HEAD, RecordType.SUBN)

    @classmethod
    def parse(cls, value: Union[str, "RecordType"]) -> "RecordType":
        """Resolve a tag such as ``"indi"`` or ``RecordType.INDI``.

        Raises:
            UnknownRecordTypeError: If the tag is not a handled type
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise UnknownRecordTypeError(f"Unknown GEDCOM record type: {value!r}") from None


@dataclass
class GedcomRecord:
    """A GEDCOM record and its sub-records.

    Attributes:
        tag: GEDCOM tag (e.g. "INDI", "NAME", "DATE")
        xref_id: Cross-reference id such as "@I1@", None when the line has none
        value: Line value; a string, a list for structured values, or None
        level: Level number of the line in the source file
        sub_records: Nested records one level down
    """

    tag: str
    xref_id: Optional[str] = None
    value: Any = None
    level: int = 0
    sub_records: List["GedcomRecord"] = field(default_factory=list)

    @property
    def natural_id(self) -> Optional[str]:
        """Identifier the record is known by in its source file."""
        return self.xref_id

    def sub_tag(self, tag: str) -> Optional["GedcomRecord"]:
        """Return the first direct sub-record with the given tag."""
        for record in self.sub_records:
            if record.tag == tag:
                return record
        return None

    def sub_tags(self, tag: str) -> List["GedcomRecord"]:
        """Return all direct sub-records with the given tag."""
        return [record for record in self.sub_records if record.tag == tag]

    def sub_tag_value(self, tag: str) -> Any:
        record = self.sub_tag(tag)
        return record.value if record is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "tag": self.tag,
            "xref_id": self.xref_id,
            "value": self.value,
            "level": self.level,
            "sub_records": [record.to_dict() for record in self.sub_records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GedcomRecord":
        """Create from dictionary."""
        return cls(
            tag=data["tag"],
            xref_id=data.get("xref_id"),
            value=data.get("value"),
            level=data.get("level", 0),
            sub_records=[cls.from_dict(sub) for sub in data.get("sub_records", [])],
        )


@dataclass
class Gedcom:
    """Zero-level records of a parsed GEDCOM file.

    Records of types outside ``RecordType`` are kept in ``unhandled`` so that
    gaps in coverage stay visible to callers.
    """

    head: Optional[GedcomRecord] = None
    subn: List[GedcomRecord] = field(default_factory=list)
    subm: List[GedcomRecord] = field(default_factory=list)
    sour: List[GedcomRecord] = field(default_factory=list)
    indi: List[GedcomRecord] = field(default_factory=list)
    fam: List[GedcomRecord] = field(default_factory=list)
    note: List[GedcomRecord] = field(default_factory=list)
    repo: List[GedcomRecord] = field(default_factory=list)
    obje: List[GedcomRecord] = field(default_factory=list)
    unhandled: List[GedcomRecord] = field(default_factory=list)

    def add(self, record: GedcomRecord) -> RecordType:
        """Route a zero-level record to the list for its type.

        Returns:
            The record type the record was filed under

        Raises:
            UnknownRecordTypeError: If the record's tag is not a handled type
        """
        record_type = RecordType.parse(record.tag)
        if record_type is RecordType.HEAD:
            self.head = record
        else:
            getattr(self, record_type.name.lower()).append(record)
        return record_type

    def all_records(self, record_type: Union[str, RecordType]) -> List[GedcomRecord]:
        """Every record of a type as a list, singletons included."""
        record_type = RecordType.parse(record_type)
        if record_type is RecordType.HEAD:
            return [self.head] if self.head is not None else []
        return list(getattr(self, record_type.name.lower()))

    def records(self, record_type: Union[str, RecordType]) -> Any:
        """Accessor shared with ``CachedGedcom``.

        Singleton types return the record or None, the rest return a list.
        """
        record_type = RecordType.parse(record_type)
        found = self.all_records(record_type)
        if record_type.is_singleton:
            return found[0] if found else None
        return found

    def __len__(self) -> int:
        return sum(len(self.all_records(record_type)) for record_type in RecordType)

    def get_head(self) -> Optional[GedcomRecord]:
        return self.records(RecordType.HEAD)

    def get_subn(self) -> Optional[GedcomRecord]:
        return self.records(RecordType.SUBN)

    def get_subm(self) -> List[GedcomRecord]:
        return self.records(RecordType.SUBM)

    def get_sour(self) -> List[GedcomRecord]:
        return self.records(RecordType.SOUR)

    def get_indi(self) -> List[GedcomRecord]:
        return self.records(RecordType.INDI)

    def get_fam(self) -> List[GedcomRecord]:
        return self.records(RecordType.FAM)

    def get_note(self) -> List[GedcomRecord]:
        return self.records(RecordType.NOTE)

    def get_repo(self) -> List[GedcomRecord]:
        return self.records(RecordType.REPO)

    def get_obje(self) -> List[GedcomRecord]:
        return self.records(RecordType.OBJE)
