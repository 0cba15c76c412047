"""Global pytest fixtures and configuration.

This module provides shared fixtures for all tests including:
- A small GEDCOM file on disk, parsed with ged4py
- An in-memory Gedcom model and a counting fake parser around it
- A Config pointing the cache at a temporary directory
"""
from __future__ import annotations

import copy
from pathlib import Path
from typing import List

import pytest

from gedcom_cache import config as config_module
from gedcom_cache.config import Config
from gedcom_cache.gedcom import Gedcom, GedcomRecord

SAMPLE_GEDCOM = """0 HEAD
1 SOUR TEST
1 GEDC
2 VERS 5.5.1
2 FORM LINEAGE-LINKED
1 CHAR UTF-8
1 SUBM @U1@
0 @U1@ SUBM
1 NAME Test Submitter
0 @I1@ INDI
1 NAME John /Smith/
1 SEX M
1 FAMS @F1@
0 @I2@ INDI
1 NAME Mary /Jones/
1 SEX F
1 FAMS @F1@
0 @I3@ INDI
1 NAME Anna /Smith/
1 SEX F
1 FAMC @F1@
0 @F1@ FAM
1 HUSB @I1@
1 WIFE @I2@
1 CHIL @I3@
0 @N1@ NOTE Family records kept by Anna
0 @S1@ SOUR
1 TITL Parish register
0 @X1@ _LOC
1 NAME Springfield
0 TRLR
"""

CACHE_ENV_VARS = (
    "GEDCOM_CACHE_ENABLED",
    "GEDCOM_CACHE_DIR",
    "GEDCOM_CACHE_SUFFIX",
    "GEDCOM_CACHE_COMPRESS",
    "GEDCOM_CACHE_HEARTBEAT",
    "GEDCOM_SOURCE_ENCODING",
    "LOG_LEVEL",
    "LOG_FILE",
    "VERBOSE",
)


@pytest.fixture(autouse=True)
def clean_cache_env(monkeypatch):
    """Run every test with no cache settings in the environment and a fresh global config."""
    for name in CACHE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture
def gedcom_file(tmp_path: Path) -> Path:
    """Write the sample GEDCOM file.

    Returns:
        Path to a UTF-8 GEDCOM file with HEAD, SUBM, three INDI, one FAM,
        one NOTE, one SOUR and one unhandled ``_LOC`` record
    """
    path = tmp_path / "family.ged"
    path.write_bytes(SAMPLE_GEDCOM.encode("utf-8"))
    return path


def build_sample_model() -> Gedcom:
    """In-memory model matching the sample file, built without a parser."""
    gedcom = Gedcom()
    gedcom.add(
        GedcomRecord(
            tag="HEAD",
            sub_records=[GedcomRecord(tag="CHAR", value="UTF-8", level=1)],
        )
    )
    gedcom.add(GedcomRecord(tag="SUBM", xref_id="@U1@"))
    for xref_id, name in (("@I1@", "John /Smith/"), ("@I2@", "Mary /Jones/"), ("@I3@", "Anna /Smith/")):
        gedcom.add(
            GedcomRecord(
                tag="INDI",
                xref_id=xref_id,
                sub_records=[GedcomRecord(tag="NAME", value=name, level=1)],
            )
        )
    gedcom.add(
        GedcomRecord(
            tag="FAM",
            xref_id="@F1@",
            sub_records=[
                GedcomRecord(tag="HUSB", value="@I1@", level=1),
                GedcomRecord(tag="WIFE", value="@I2@", level=1),
                GedcomRecord(tag="CHIL", value="@I3@", level=1),
            ],
        )
    )
    gedcom.add(GedcomRecord(tag="NOTE", xref_id="@N1@", value="Family records kept by Anna"))
    gedcom.add(GedcomRecord(tag="SOUR", xref_id="@S1@"))
    gedcom.unhandled.append(GedcomRecord(tag="_LOC", xref_id="@X1@"))
    return gedcom


class FakeParser:
    """Parser stand-in that returns a copy of a fixed model and counts its calls."""

    def __init__(self, model: Gedcom):
        self.model = model
        self.calls: List[Path] = []

    def __call__(self, path: Path) -> Gedcom:
        self.calls.append(Path(path))
        return copy.deepcopy(self.model)

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def sample_model() -> Gedcom:
    return build_sample_model()


@pytest.fixture
def fake_parser(sample_model: Gedcom) -> FakeParser:
    return FakeParser(sample_model)


@pytest.fixture
def cache_config(tmp_path: Path) -> Config:
    """Config with the cache directory under the test's temp dir."""
    return Config(
        enable_caching=True,
        cache_dir=tmp_path / "cache",
        cache_suffix=".sqlite",
        compress_payloads=True,
        heartbeat_interval=2,
    )
