"""Command line interface for the GEDCOM cache.

Commands:
    warm   Parse a GEDCOM file through its cache, creating or refreshing it
    show   List cached records of one type
    stats  Summarize the contents of a cache file
"""
from __future__ import annotations

import argparse
import logging
import sys
from itertools import islice
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

from . import __version__
from .cache import CachedGedcom, CachingParser, GedcomCacheError, RecordStore
from .config import get_config
from .gedcom import Gedcom, GedcomParseError, RecordType, UnknownRecordTypeError
from .ui.console import ConsoleManager

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="gedcom-cache",
        description="Persistent SQLite cache for parsed GEDCOM files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  # Build or refresh the cache for a file
  gedcom-cache warm family.ged

  # Cache into an explicit location
  gedcom-cache warm family.ged --cache-file /tmp/family.sqlite

  # List the first ten individuals
  gedcom-cache show family.ged --type INDI --limit 10

  # Record counts of an existing cache
  gedcom-cache stats cache/family.ged.sqlite

Record types:
  HEAD SUBN SUBM SOUR INDI FAM NOTE REPO OBJE
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-output",
        action="store_true",
        help="Emit machine-readable JSON events to stderr/stdout",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    warm_parser = subparsers.add_parser(
        "warm",
        help="Create or refresh the cache for a GEDCOM file",
        description="Parse a GEDCOM file through its cache, filling the cache if needed",
    )
    warm_parser.add_argument("source", help="GEDCOM file path")
    warm_parser.add_argument(
        "--cache-file", help="Cache database path (default: <cache_dir>/<source name><suffix>)"
    )

    show_parser = subparsers.add_parser(
        "show",
        help="List records of one type",
        description="List records of one type, read through the cache",
    )
    show_parser.add_argument("source", help="GEDCOM file path")
    show_parser.add_argument(
        "--type",
        "-t",
        dest="record_type",
        required=True,
        help="Record type tag, e.g. INDI or FAM",
    )
    show_parser.add_argument("--cache-file", help="Cache database path")
    show_parser.add_argument(
        "--limit", "-n", type=int, default=20, help="Maximum records to list (default: 20)"
    )

    stats_parser = subparsers.add_parser(
        "stats",
        help="Summarize a cache file",
        description="Show record counts per type for an existing cache file",
    )
    stats_parser.add_argument("cache_file", help="Cache database path")

    return parser


def _type_counts(gedcom: Any) -> dict:
    """Record counts for whatever ``CachingParser.parse`` returned."""
    counts = {}
    for record_type in RecordType:
        records = gedcom.records(record_type)
        if record_type.is_singleton:
            count = 0 if records is None else 1
        else:
            count = len(records)
        if count:
            counts[record_type.value] = count
    return counts


def _close(gedcom: Any) -> None:
    if isinstance(gedcom, CachedGedcom):
        gedcom.close()


def warm_command(args: argparse.Namespace, console_manager: ConsoleManager) -> int:
    """Handle the warm subcommand.

    Args:
        args: Command line arguments
        console_manager: Console manager for rich or JSON output

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    source = Path(args.source)
    if not source.is_file():
        console_manager.print_error(f"GEDCOM file not found: {source}")
        return 1

    with console_manager.progress_context(f"Caching {source.name}") as tracker:
        caching_parser = CachingParser(args.cache_file, progress_callback=tracker.update)
        try:
            gedcom = caching_parser.parse(source)
        except GedcomParseError as e:
            console_manager.print_error(str(e))
            return 1

    cache_path = caching_parser.cache_path_for(source)
    if isinstance(gedcom, Gedcom):
        console_manager.print_error(f"Cache {cache_path} could not be used; see log for details")
        return 1

    try:
        counts = _type_counts(gedcom)
    finally:
        _close(gedcom)

    extra = {"cache_file": str(cache_path), "state": caching_parser.state.value}
    report = caching_parser.last_report
    if report is not None:
        extra["duration"] = round(report.duration, 3)
        if report.unhandled:
            extra["unhandled"] = report.unhandled
    console_manager.print_counts(f"Cached records: {source.name}", counts, extra)
    return 0


def _record_rows(records: Any, limit: int) -> Iterator[Tuple[str, str, str]]:
    for record in islice(records, max(limit, 0)):
        value = record.value if record.value is not None else ""
        yield record.xref_id or "-", record.tag, str(value)


def show_command(args: argparse.Namespace, console_manager: ConsoleManager) -> int:
    """Handle the show subcommand."""
    try:
        record_type = RecordType.parse(args.record_type)
    except UnknownRecordTypeError as e:
        console_manager.print_error(str(e))
        return 1

    source = Path(args.source)
    if not source.is_file():
        console_manager.print_error(f"GEDCOM file not found: {source}")
        return 1

    try:
        gedcom = CachingParser(args.cache_file).parse(source)
    except GedcomParseError as e:
        console_manager.print_error(str(e))
        return 1

    try:
        records = gedcom.records(record_type)
        if record_type.is_singleton:
            records = [] if records is None else [records]
        rows = list(_record_rows(records, args.limit))
    except GedcomCacheError as e:
        console_manager.print_error(f"Failed to read cached records: {e}")
        return 1
    finally:
        _close(gedcom)

    console_manager.print_records(f"{record_type.value} records: {source.name}", rows)
    return 0


def stats_command(args: argparse.Namespace, console_manager: ConsoleManager) -> int:
    """Handle the stats subcommand."""
    cache_path = Path(args.cache_file)
    if not cache_path.is_file():
        console_manager.print_error(f"Cache file not found: {cache_path}")
        return 1

    try:
        with RecordStore.open(cache_path) as store:
            counts = store.type_counts()
    except GedcomCacheError as e:
        console_manager.print_error(f"Failed to read cache {cache_path}: {e}")
        return 1

    extra = {"cache_file": str(cache_path), "size": cache_path.stat().st_size}
    console_manager.print_counts(f"Cache contents: {cache_path.name}", counts, extra)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    config = get_config()
    verbose = args.verbose or config.verbose
    console_manager = ConsoleManager(verbose=verbose, json_output=args.json_output)
    console_manager.setup_logging(logging.getLogger("gedcom_cache"), config.log_file)
    if not verbose:
        logging.getLogger("gedcom_cache").setLevel(config.log_level)

    try:
        if args.command == "warm":
            return warm_command(args, console_manager)
        elif args.command == "show":
            return show_command(args, console_manager)
        elif args.command == "stats":
            return stats_command(args, console_manager)
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
