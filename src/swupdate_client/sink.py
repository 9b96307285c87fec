"""Destinations for classified log records.

The upload path and the progress listener write to the same sink
concurrently, so every record is written with a single call under a lock.
"""

import json
import sys
import threading
from typing import IO, List, Optional, Protocol

import click

from swupdate_client.events import Category, LogRecord, Severity


class LogSink(Protocol):
    """Receives log records in emission order."""

    def emit(self, record: LogRecord) -> None:
        ...


class ConsoleSink:
    """Human-readable output.

    Errors and warnings are always shown. Informational records are shown
    for status and progress updates, and for everything else in verbose mode.
    """

    ALWAYS_SHOWN = (Category.STATUS, Category.PROGRESS)

    def __init__(self, verbose: bool = False, stream: Optional[IO[str]] = None):
        self.verbose = verbose
        self.stream = stream
        self._lock = threading.Lock()

    def format(self, record: LogRecord) -> Optional[str]:
        """Render a record as a console line, or None if it is hidden."""
        if record.severity == Severity.ERROR:
            return f"Error: {record.message}"

        if record.severity == Severity.WARN:
            return f"Warning: {record.message}"

        if self.verbose or record.category in self.ALWAYS_SHOWN:
            return record.message

        return None

    def emit(self, record: LogRecord) -> None:
        line = self.format(record)
        if line is None:
            return

        with self._lock:
            click.echo(line, file=self.stream or sys.stdout)


class JSONSink:
    """One JSON object per line: ``{type, level, message, time}``."""

    def __init__(self, stream: Optional[IO[str]] = None):
        self.stream = stream
        self._lock = threading.Lock()

    def emit(self, record: LogRecord) -> None:
        line = json.dumps(record.to_dict())

        with self._lock:
            click.echo(line, file=self.stream or sys.stdout)


class MemorySink:
    """Keeps records in memory, e.g. for embedding or inspection."""

    def __init__(self):
        self.records: List[LogRecord] = []
        self._lock = threading.Lock()

    def emit(self, record: LogRecord) -> None:
        with self._lock:
            self.records.append(record)

    def by_category(self, category: Category) -> List[LogRecord]:
        return [r for r in self.records if r.category == category]

    def by_severity(self, severity: Severity) -> List[LogRecord]:
        return [r for r in self.records if r.severity == severity]


def create_sink(json_output: bool, verbose: bool) -> LogSink:
    """Create the sink matching the requested output format."""
    if json_output:
        return JSONSink()
    return ConsoleSink(verbose=verbose)
