"""End-to-end tests for CachingParser and CachedGedcom."""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from gedcom_cache.cache.caching_parser import CachedGedcom, CachingParser
from gedcom_cache.cache.collection import LazyRecordCollection
from gedcom_cache.cache.errors import CacheConnectError, CacheSerializationError
from gedcom_cache.cache.freshness import CacheState
from gedcom_cache.cache.record_store import RecordStore
from gedcom_cache.config import Config
from gedcom_cache.gedcom import Gedcom, GedcomParseError, GedcomRecord, RecordType


@pytest.fixture
def source(tmp_path: Path) -> Path:
    path = tmp_path / "family.ged"
    path.write_text("0 HEAD\n0 TRLR\n")
    return path


def _make_stale(cache_file: Path, source: Path) -> None:
    source_mtime = source.stat().st_mtime
    os.utime(cache_file, (source_mtime - 100, source_mtime - 100))


class TestFirstParse:
    """A missing cache is created and filled from one parse."""

    def test_creates_and_fills_cache(self, source: Path, fake_parser, cache_config: Config):
        caching_parser = CachingParser(parser=fake_parser, config=cache_config)

        with caching_parser.parse(source) as gedcom:
            assert isinstance(gedcom, CachedGedcom)
            assert caching_parser.state is CacheState.NEEDS_CREATE
            assert caching_parser.last_report.total == 8
            assert [indi.xref_id for indi in gedcom.get_indi()] == ["@I1@", "@I2@", "@I3@"]

        assert fake_parser.call_count == 1
        assert (cache_config.cache_dir / "family.ged.sqlite").exists()

    def test_explicit_cache_file(self, source: Path, fake_parser, cache_config: Config, tmp_path: Path):
        cache_file = tmp_path / "elsewhere" / "custom.sqlite"
        caching_parser = CachingParser(cache_file, parser=fake_parser, config=cache_config)

        caching_parser.parse(source).close()

        assert cache_file.exists()
        assert caching_parser.cache_path_for(source) == cache_file

    def test_cached_view_matches_live_model(self, source: Path, fake_parser, cache_config: Config, sample_model: Gedcom):
        with CachingParser(parser=fake_parser, config=cache_config).parse(source) as gedcom:
            assert gedcom.get_head() == sample_model.get_head()
            assert gedcom.get_subn() is None
            assert list(gedcom.get_subm()) == sample_model.get_subm()
            assert list(gedcom.get_sour()) == sample_model.get_sour()
            assert list(gedcom.get_fam()) == sample_model.get_fam()
            assert list(gedcom.get_note()) == sample_model.get_note()
            assert list(gedcom.get_repo()) == []
            assert list(gedcom.get_obje()) == []

    def test_empty_cache_file_is_filled(self, source: Path, fake_parser, cache_config: Config):
        cache_file = cache_config.cache_path_for(source)
        cache_file.parent.mkdir(parents=True)
        cache_file.touch()
        caching_parser = CachingParser(parser=fake_parser, config=cache_config)

        caching_parser.parse(source).close()

        assert caching_parser.state is CacheState.NEEDS_CREATE
        assert fake_parser.call_count == 1


class TestFreshCache:
    """A current, populated cache is read without parsing or writing."""

    def test_second_parse_does_not_parse_or_write(self, source: Path, fake_parser, cache_config: Config):
        CachingParser(parser=fake_parser, config=cache_config).parse(source).close()
        caching_parser = CachingParser(parser=fake_parser, config=cache_config)

        with patch.object(RecordStore, "insert", Mock()) as insert:
            with caching_parser.parse(source) as gedcom:
                assert caching_parser.state is CacheState.FRESH
                assert caching_parser.last_report is None
                assert len(gedcom.get_indi()) == 3
                assert gedcom.get_head().tag == "HEAD"

        insert.assert_not_called()
        assert fake_parser.call_count == 1

    def test_existing_table_without_rows_is_filled(self, source: Path, fake_parser, cache_config: Config):
        cache_file = cache_config.cache_path_for(source)
        with RecordStore.open(cache_file) as store:
            store.ensure_schema()
        caching_parser = CachingParser(parser=fake_parser, config=cache_config)

        with caching_parser.parse(source) as gedcom:
            assert caching_parser.state is CacheState.NEEDS_FILL
            assert len(gedcom.get_indi()) == 3


class TestStaleCache:
    """An outdated cache is cleared and refilled in one transaction."""

    def test_stale_cache_is_cleared_and_refilled(self, source: Path, fake_parser, cache_config: Config):
        CachingParser(parser=fake_parser, config=cache_config).parse(source).close()
        cache_file = cache_config.cache_path_for(source)
        _make_stale(cache_file, source)

        fake_parser.model.indi.pop()
        caching_parser = CachingParser(parser=fake_parser, config=cache_config)

        with caching_parser.parse(source) as gedcom:
            assert caching_parser.state is CacheState.NEEDS_CLEAR
            assert caching_parser.last_report.cleared == 8
            assert [indi.xref_id for indi in gedcom.get_indi()] == ["@I1@", "@I2@"]

        assert fake_parser.call_count == 2

    def test_refill_makes_cache_fresh_again(self, source: Path, fake_parser, cache_config: Config):
        CachingParser(parser=fake_parser, config=cache_config).parse(source).close()
        _make_stale(cache_config.cache_path_for(source), source)
        CachingParser(parser=fake_parser, config=cache_config).parse(source).close()

        caching_parser = CachingParser(parser=fake_parser, config=cache_config)
        caching_parser.parse(source).close()

        assert caching_parser.state is CacheState.FRESH
        assert fake_parser.call_count == 2


class TestFallback:
    """Cache failures fall back to the live model; parse failures propagate."""

    def test_unusable_cache_location_returns_live_model(self, source: Path, fake_parser, cache_config: Config, tmp_path: Path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        caching_parser = CachingParser(blocker / "family.sqlite", parser=fake_parser, config=cache_config)

        gedcom = caching_parser.parse(source)

        assert isinstance(gedcom, Gedcom)
        assert len(gedcom.get_indi()) == 3
        assert caching_parser.state is None
        assert fake_parser.call_count == 1
        assert "Cache unavailable" in caplog.text

    def test_failed_fill_returns_parsed_model_and_keeps_nothing(self, source: Path, fake_parser, cache_config: Config):
        codec = Mock()
        codec.dumps.side_effect = CacheSerializationError("cannot encode")
        caching_parser = CachingParser(parser=fake_parser, codec=codec, config=cache_config)

        gedcom = caching_parser.parse(source)

        assert isinstance(gedcom, Gedcom)
        assert fake_parser.call_count == 1
        with RecordStore.open(cache_config.cache_path_for(source)) as store:
            assert not store.has_schema()

    def test_duplicate_ids_fall_back_without_partial_cache(self, source: Path, fake_parser, cache_config: Config):
        fake_parser.model.indi.append(GedcomRecord(tag="INDI", xref_id="@I1@"))
        caching_parser = CachingParser(parser=fake_parser, config=cache_config)

        gedcom = caching_parser.parse(source)

        assert isinstance(gedcom, Gedcom)
        assert len(gedcom.get_indi()) == 4
        conn = sqlite3.connect(str(cache_config.cache_path_for(source)))
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        finally:
            conn.close()
        assert tables == []

    def test_non_database_cache_file_returns_live_model(self, source: Path, fake_parser, cache_config: Config, caplog):
        cache_file = cache_config.cache_path_for(source)
        cache_file.parent.mkdir(parents=True)
        cache_file.write_bytes(b"this is not a sqlite database\n" * 64)
        caching_parser = CachingParser(parser=fake_parser, config=cache_config)

        gedcom = caching_parser.parse(source)

        assert isinstance(gedcom, Gedcom)
        assert len(gedcom.get_indi()) == 3
        assert caching_parser.state is None
        assert "Cache unavailable" in caplog.text

    def test_malformed_database_returns_live_model(self, source: Path, fake_parser, cache_config: Config, caplog):
        CachingParser(parser=fake_parser, config=cache_config).parse(source).close()
        cache_file = cache_config.cache_path_for(source)
        size = cache_file.stat().st_size
        with open(cache_file, "r+b") as f:
            f.seek(100)
            f.write(b"\xff" * (size - 100))
        source_mtime = source.stat().st_mtime
        os.utime(cache_file, (source_mtime + 100, source_mtime + 100))

        caching_parser = CachingParser(parser=fake_parser, config=cache_config)
        gedcom = caching_parser.parse(source)

        assert isinstance(gedcom, Gedcom)
        assert len(gedcom.get_indi()) == 3
        assert caching_parser.state is None
        assert "Cache unavailable" in caplog.text

    def test_open_cache_on_malformed_database_raises_connect_error(self, source: Path, fake_parser, cache_config: Config):
        CachingParser(parser=fake_parser, config=cache_config).parse(source).close()
        cache_file = cache_config.cache_path_for(source)
        size = cache_file.stat().st_size
        with open(cache_file, "r+b") as f:
            f.seek(100)
            f.write(b"\xff" * (size - 100))

        with pytest.raises(CacheConnectError):
            CachingParser(config=cache_config).open_cache(cache_file)

    def test_failing_progress_callback_returns_parsed_model(self, source: Path, fake_parser, cache_config: Config):
        callback = Mock(side_effect=RuntimeError("host budget exceeded"))
        caching_parser = CachingParser(parser=fake_parser, config=cache_config, progress_callback=callback)

        gedcom = caching_parser.parse(source)

        assert isinstance(gedcom, Gedcom)
        assert fake_parser.call_count == 1
        assert caching_parser.last_report is None
        with RecordStore.open(cache_config.cache_path_for(source)) as store:
            assert not store.has_schema()

    def test_parse_error_propagates(self, source: Path, cache_config: Config):
        parser = Mock(side_effect=GedcomParseError("bad file"))
        caching_parser = CachingParser(parser=parser, config=cache_config)

        with pytest.raises(GedcomParseError):
            caching_parser.parse(source)

    def test_caching_disabled_parses_directly(self, source: Path, fake_parser, tmp_path: Path):
        config = Config(enable_caching=False, cache_dir=tmp_path / "cache")
        caching_parser = CachingParser(parser=fake_parser, config=config)

        gedcom = caching_parser.parse(source)

        assert isinstance(gedcom, Gedcom)
        assert not (tmp_path / "cache").exists()

    def test_unreadable_source_mtime_keeps_cache(self, source: Path, fake_parser, cache_config: Config):
        CachingParser(parser=fake_parser, config=cache_config).parse(source).close()
        _make_stale(cache_config.cache_path_for(source), source)
        source.unlink()

        caching_parser = CachingParser(parser=fake_parser, config=cache_config)
        with caching_parser.parse(source) as gedcom:
            assert caching_parser.state is CacheState.FRESH
            assert len(gedcom.get_indi()) == 3

        assert fake_parser.call_count == 1


class TestHeartbeat:
    """The progress callback reaches the filler."""

    def test_progress_callback_receives_heartbeats(self, source: Path, fake_parser, cache_config: Config):
        callback = Mock()
        caching_parser = CachingParser(parser=fake_parser, config=cache_config, progress_callback=callback)

        caching_parser.parse(source).close()

        calls = [c.args for c in callback.call_args_list]
        assert calls == [(2, 8), (4, 8), (6, 8), (8, 8), (8, 8)]


class TestCachedGedcom:
    """Test the cached view itself."""

    @pytest.fixture
    def cached(self, source: Path, fake_parser, cache_config: Config):
        with CachingParser(parser=fake_parser, config=cache_config).parse(source) as gedcom:
            yield gedcom

    def test_records_by_tag_string(self, cached: CachedGedcom):
        indis = cached.records("indi")
        assert isinstance(indis, LazyRecordCollection)
        assert "@I2@" in indis

    def test_unknown_type_raises(self, cached: CachedGedcom):
        with pytest.raises(ValueError):
            cached.records("_LOC")

    def test_add_is_ignored(self, cached: CachedGedcom):
        assert cached.add(GedcomRecord(tag="INDI", xref_id="@I9@")) is True
        assert "@I9@" not in cached.get_indi()

    def test_close_closes_handed_out_collections(self, cached: CachedGedcom):
        indis = cached.get_indi()
        fams = cached.get_fam()

        cached.close()

        assert indis.closed
        assert fams.closed

    def test_open_cache_without_source(self, source: Path, fake_parser, cache_config: Config):
        CachingParser(parser=fake_parser, config=cache_config).parse(source).close()
        caching_parser = CachingParser(cache_config.cache_path_for(source), parser=fake_parser, config=cache_config)

        with caching_parser.open_cache() as gedcom:
            assert len(gedcom.get_indi()) == 3

        assert fake_parser.call_count == 1

    def test_open_cache_missing_file_raises(self, tmp_path: Path, cache_config: Config):
        with pytest.raises(CacheConnectError):
            CachingParser(config=cache_config).open_cache(tmp_path / "missing.sqlite")

    def test_open_cache_without_records_raises(self, tmp_path: Path, cache_config: Config):
        cache_file = tmp_path / "empty.sqlite"
        with RecordStore.open(cache_file) as store:
            store.ensure_schema()

        with pytest.raises(CacheConnectError):
            CachingParser(config=cache_config).open_cache(cache_file)
