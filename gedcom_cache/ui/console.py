"""Console management with Rich integration.

This module provides a ConsoleManager that adapts output to:
- Rich-rendered color output and progress bars when in a TTY
- JSON-only output for machine-readable logs (CI/CD)
- Plain-text fallback for non-TTY environments
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table


class ConsoleManager:
    """Manages console output with Rich integration."""

    def __init__(self, verbose: bool = False, json_output: bool = False):
        self.verbose = verbose
        self.json_output = json_output
        self.is_tty = sys.stderr.isatty()
        self._lock = threading.RLock()

        if self.json_output:
            self.console = None
        else:
            self.console = Console(stderr=True)

    def setup_logging(self, logger: logging.Logger, log_file: str | None = None) -> None:
        """Configure logging with Rich handler or plain formatter.

        Adds a handler (plus a file handler when ``log_file`` is given) and
        sets the logger level based on `verbose`.
        """

        # Prevent duplicate handlers if called multiple times
        def _has_handler_of_type(h_type):
            return any(type(h) is h_type for h in logger.handlers)

        if self.json_output:
            if not _has_handler_of_type(logging.StreamHandler):
                handler = logging.StreamHandler(sys.stderr)
                handler.setFormatter(logging.Formatter("%(message)s"))
                logger.addHandler(handler)
        else:
            if not _has_handler_of_type(RichHandler):
                handler = RichHandler(
                    console=self.console,
                    show_time=True,
                    show_path=self.verbose,
                    rich_tracebacks=True,
                )
                logger.addHandler(handler)

        if log_file and not _has_handler_of_type(logging.FileHandler):
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            logger.addHandler(file_handler)

        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    @contextmanager
    def progress_context(self, description: str, total: int | None = None):
        """Progress context manager; yields a tracker with ``update(completed, total)``."""
        progress = None
        try:
            if self.json_output:
                tracker: Any = JsonProgressTracker(description)
            elif self.is_tty and self.console is not None:
                progress = Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                    TimeRemainingColumn(),
                    console=self.console,
                )
                progress.start()
                task_id = progress.add_task(description, total=total)
                tracker = RichProgressTracker(progress, task_id, self._lock)
            else:
                tracker = FallbackProgressTracker(description)

            yield tracker
        finally:
            if progress is not None:
                progress.stop()

    def print_counts(self, title: str, counts: dict[str, int], extra: dict[str, Any] | None = None) -> None:
        """Print a record-type/count table, or one JSON object on stdout."""
        if self.json_output:
            payload: dict[str, Any] = {
                "timestamp": self._get_timestamp(),
                "type": "summary",
                "title": title,
                "counts": dict(counts),
                "total": sum(counts.values()),
            }
            if extra:
                payload.update(extra)
            print(json.dumps(payload))
        elif self.console:
            table = Table(title=title)
            table.add_column("Type", style="cyan")
            table.add_column("Records", style="green", justify="right")
            for record_type, count in counts.items():
                table.add_row(record_type, str(count))
            table.add_row("[bold]Total[/bold]", f"[bold]{sum(counts.values())}[/bold]")
            self.console.print(table)
            for key, value in (extra or {}).items():
                self.console.print(f"{key}: {value}")

    def print_records(self, title: str, rows: Iterable[tuple[str, str, str]]) -> None:
        """Print ``(id, tag, value)`` rows as a table, or JSON lines on stdout."""
        if self.json_output:
            for record_id, tag, value in rows:
                print(json.dumps({"id": record_id, "tag": tag, "value": value}, ensure_ascii=False))
            return

        table = Table(title=title)
        table.add_column("Id", style="cyan")
        table.add_column("Tag", style="magenta")
        table.add_column("Value")
        for record_id, tag, value in rows:
            table.add_row(record_id, tag, value)
        self.console.print(table)

    def print_error(self, message: str) -> None:
        """Print an error message to stderr."""
        if self.json_output:
            print(
                json.dumps(
                    {"timestamp": self._get_timestamp(), "type": "error", "message": message}
                ),
                file=sys.stderr,
            )
        else:
            self.console.print(f"[red]ERROR: {message}[/red]")

    def _get_timestamp(self) -> str:
        """Get ISO timestamp for JSON output."""
        return datetime.now().isoformat()


class RichProgressTracker:
    """Progress tracker using Rich progress bars."""

    def __init__(self, progress: Progress, task_id: Any, lock: threading.RLock):
        self.progress = progress
        self.task_id = task_id
        self._lock = lock

    def update(self, completed: int, total: int | None = None) -> None:
        """Set the absolute completed (and optionally total) position."""
        with self._lock:
            kwargs: dict[str, Any] = {"completed": completed}
            if total is not None:
                kwargs["total"] = total
            self.progress.update(self.task_id, **kwargs)


class JsonProgressTracker:
    """Progress tracker for JSON output (stderr)."""

    def __init__(self, description: str):
        self.description = description
        self.start_time = time.time()

    def update(self, completed: int, total: int | None = None) -> None:
        """Report progress as a JSON line on stderr."""
        progress_data: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "type": "progress",
            "stage": self.description,
            "completed": completed,
            "elapsed": round(time.time() - self.start_time, 3),
        }
        if total:
            progress_data["total"] = total
            progress_data["percentage"] = round(completed / total * 100, 1)
        print(json.dumps(progress_data), file=sys.stderr)


class FallbackProgressTracker:
    """Fallback progress tracker for non-TTY environments."""

    def __init__(self, description: str):
        self.description = description
        self.last_reported = -10.0

    def update(self, completed: int, total: int | None = None) -> None:
        """Print a line roughly every 10%."""
        if not total:
            return
        percentage = completed / total * 100
        if percentage - self.last_reported >= 10 or completed >= total:
            print(f"{self.description}: {percentage:.0f}% complete", file=sys.stderr)
            self.last_reported = percentage
