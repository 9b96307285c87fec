"""Tests for log sinks."""

import io
import json

from swupdate_client.events import Category, LogRecord, Severity
from swupdate_client.sink import ConsoleSink, JSONSink, MemorySink, create_sink


class TestConsoleSink:
    """Test human-readable output."""

    def test_error_prefix(self):
        stream = io.StringIO()
        ConsoleSink(stream=stream).emit(LogRecord(Category.MESSAGE, Severity.ERROR, "disk full"))

        assert stream.getvalue() == "Error: disk full\n"

    def test_warning_prefix(self):
        stream = io.StringIO()
        ConsoleSink(stream=stream).emit(LogRecord(Category.RESTART, Severity.WARN, "no reply"))

        assert stream.getvalue() == "Warning: no reply\n"

    def test_status_and_progress_always_shown(self):
        stream = io.StringIO()
        sink = ConsoleSink(verbose=False, stream=stream)

        sink.emit(LogRecord(Category.STATUS, Severity.INFO, "Update started"))
        sink.emit(LogRecord(Category.PROGRESS, Severity.INFO, "Step 1 of 2"))

        assert stream.getvalue() == "Update started\nStep 1 of 2\n"

    def test_other_info_hidden_unless_verbose(self):
        record = LogRecord(Category.UPLOAD, Severity.INFO, "Firmware uploaded successfully")

        quiet = io.StringIO()
        ConsoleSink(verbose=False, stream=quiet).emit(record)
        loud = io.StringIO()
        ConsoleSink(verbose=True, stream=loud).emit(record)

        assert quiet.getvalue() == ""
        assert loud.getvalue() == "Firmware uploaded successfully\n"


class TestJSONSink:
    """Test JSON-lines output."""

    def test_one_object_per_line(self):
        stream = io.StringIO()
        sink = JSONSink(stream=stream)

        sink.emit(LogRecord(Category.UPLOAD, Severity.INFO, "Uploading firmware: a.swu (0.00 MB)"))
        sink.emit(LogRecord(Category.MESSAGE, Severity.ERROR, "boom"))

        lines = stream.getvalue().splitlines()
        assert len(lines) == 2

        first = json.loads(lines[0])
        assert set(first) == {"type", "level", "message", "time"}
        assert first["type"] == "upload"
        assert first["level"] == "INFO"

        second = json.loads(lines[1])
        assert second["level"] == "ERROR"
        assert second["message"] == "boom"


class TestMemorySink:
    """Test in-memory collection."""

    def test_filters(self):
        sink = MemorySink()
        sink.emit(LogRecord(Category.UPLOAD, Severity.INFO, "a"))
        sink.emit(LogRecord(Category.RESTART, Severity.WARN, "b"))

        assert len(sink.records) == 2
        assert [r.message for r in sink.by_category(Category.RESTART)] == ["b"]
        assert [r.message for r in sink.by_severity(Severity.INFO)] == ["a"]


def test_create_sink():
    assert isinstance(create_sink(json_output=True, verbose=False), JSONSink)

    console = create_sink(json_output=False, verbose=True)
    assert isinstance(console, ConsoleSink)
    assert console.verbose is True
