"""Tests for DiagnosticsBuffer."""

import io
import threading

import pytest

from diagbuf.diagnostics.buffer import DiagnosticsBuffer, DispatchMode
from diagbuf.diagnostics.records import Severity, SourceLocation
from diagbuf.diagnostics.sinks import TerminalSink

from conftest import RecordingDatabaseSink

HERE = SourceLocation("x.cpp", "Foo::bar(int)", 42)


class Terminated(Exception):
    pass


class FailingTerminalSink(TerminalSink):
    def write(self, records):
        raise RuntimeError("terminal unavailable")


def make_buffer(terminal, clock, database_sink=None, **kwargs):
    return DiagnosticsBuffer(
        terminal_sink=terminal,
        database_sink=database_sink,
        tag_provider=lambda: "abc123",
        clock=clock,
        **kwargs,
    )


class TestAppend:
    """Tests for append()."""

    def test_records_kept_in_call_order(self, terminal, clock):
        """N appends should leave N aligned records in call order."""
        buffer = make_buffer(terminal, clock)
        for i in range(25):
            buffer.append(Severity.INFO, SourceLocation("f.py", f"fn{i}", i), f"message {i}")

        pending = buffer.pending()
        assert len(buffer) == 25
        for i, record in enumerate(pending):
            assert record.source_function == f"fn{i}"
            assert record.source_line == i
            assert record.message == f"message {i}"
            assert record.revision_tag == "abc123"
        times = [r.timestamp for r in pending]
        assert times == sorted(times)

    def test_revision_tag_is_snapshot(self, terminal, clock):
        """Changing the tag later should not alter captured records."""
        tag = {"value": "first"}
        buffer = DiagnosticsBuffer(terminal, tag_provider=lambda: tag["value"], clock=clock)
        buffer.append(Severity.INFO, HERE, "one")
        tag["value"] = "second"
        buffer.append(Severity.INFO, HERE, "two")
        assert [r.revision_tag for r in buffer.pending()] == ["first", "second"]

    def test_concurrent_appends_not_lost(self, terminal, clock):
        """Appends from several threads should all be kept."""
        buffer = make_buffer(terminal, clock)

        def worker(n):
            for i in range(500):
                buffer.append(Severity.DEBUG, HERE, f"{n}-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(buffer) == 2000
        assert buffer.flush() == 2000
        assert len(buffer) == 0


class TestFlush:
    """Tests for flush()."""

    def test_empty_flush_is_noop(self, terminal, stream, clock):
        """Flushing an empty buffer should not touch any sink."""
        database = RecordingDatabaseSink()
        buffer = make_buffer(terminal, clock, database_sink=database)
        assert buffer.flush() == 0
        assert database.batches == []
        assert stream.getvalue() == ""

    def test_flush_to_terminal_without_database(self, terminal, stream, clock):
        """One terminal line with fields in order."""
        buffer = make_buffer(terminal, clock)
        buffer.append(Severity.WARNING, HERE, "disk full")
        assert buffer.flush() == 1

        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        line = lines[0]
        positions = [line.index(part) for part in ("Warning", "x.cpp", "bar", "42", "disk full")]
        assert positions == sorted(positions)
        assert len(buffer) == 0

    def test_flush_to_database_when_available(self, terminal, stream, clock):
        database = RecordingDatabaseSink(available=True)
        buffer = make_buffer(terminal, clock, database_sink=database)
        buffer.append(Severity.INFO, HERE, "one")
        buffer.append(Severity.INFO, HERE, "two")
        buffer.flush()

        assert [r.message for r in database.records] == ["one", "two"]
        assert stream.getvalue() == ""
        assert len(buffer) == 0

    def test_unavailable_database_falls_back_to_terminal(self, terminal, stream, clock):
        database = RecordingDatabaseSink(available=False)
        buffer = make_buffer(terminal, clock, database_sink=database)
        buffer.append(Severity.INFO, HERE, "fallback")
        buffer.flush()

        assert database.batches == []
        assert "fallback" in stream.getvalue()

    def test_records_flushed_once(self, terminal, clock):
        database = RecordingDatabaseSink()
        buffer = make_buffer(terminal, clock, database_sink=database)
        buffer.append(Severity.INFO, HERE, "one")
        buffer.flush()
        buffer.flush()
        assert len(database.records) == 1


class TestOverflow:
    """Tests for the overflow flush."""

    def test_threshold_flushes_to_terminal(self, terminal, stream, clock):
        """Reaching 10,000 records should flush to the terminal even with a database."""
        database = RecordingDatabaseSink(available=True)
        buffer = make_buffer(terminal, clock, database_sink=database)
        assert buffer.overflow_threshold == 10_000

        for i in range(9_999):
            buffer.append(Severity.DEBUG, HERE, f"m{i}")
        assert len(buffer) == 9_999
        assert stream.getvalue() == ""

        buffer.append(Severity.DEBUG, HERE, "last")

        assert len(buffer) == 0
        assert database.batches == []
        assert len(stream.getvalue().splitlines()) == 10_000
        assert buffer.mode is DispatchMode.BUFFERING

    def test_custom_threshold(self, terminal, stream, clock):
        buffer = make_buffer(terminal, clock, overflow_threshold=3)
        for i in range(7):
            buffer.append(Severity.INFO, HERE, f"m{i}")
        assert len(buffer) == 1
        assert len(stream.getvalue().splitlines()) == 6


class TestFatal:
    """Tests for Fatal records."""

    def test_fatal_flushes_then_terminates(self, terminal, clock):
        events = []
        database = RecordingDatabaseSink()
        original_write = database.write

        def write(records):
            events.append("flush")
            return original_write(records)

        database.write = write

        def terminate():
            events.append("terminate")
            raise Terminated()

        buffer = make_buffer(terminal, clock, database_sink=database, terminate=terminate)
        buffer.append(Severity.INFO, HERE, "before")
        with pytest.raises(Terminated):
            buffer.append(Severity.FATAL, HERE, "boom")

        assert events == ["flush", "terminate"]
        assert [r.message for r in database.records] == ["before", "boom"]

    def test_terminates_even_if_flush_fails(self, clock):
        terminated = []
        buffer = make_buffer(
            FailingTerminalSink(), clock, terminate=lambda: terminated.append(True)
        )
        buffer.append(Severity.FATAL, HERE, "boom")
        assert terminated == [True]


class TestDispatch:
    """Tests for dispatch() and the dispatch mode."""

    def test_buffering_mode_queues(self, terminal, stream, clock):
        buffer = make_buffer(terminal, clock)
        buffer.dispatch(Severity.INFO, HERE, "queued")
        assert len(buffer) == 1
        assert stream.getvalue() == ""

    def test_direct_mode_writes_immediately(self, terminal, stream, clock):
        """Pending records go out first, then the new one."""
        buffer = make_buffer(terminal, clock)
        buffer.append(Severity.INFO, HERE, "earlier")
        with buffer.direct_terminal():
            buffer.dispatch(Severity.WARNING, HERE, "now")

        lines = stream.getvalue().splitlines()
        assert [line.split("\t")[-1] for line in lines] == ["earlier", "now"]
        assert len(buffer) == 0

    def test_direct_mode_fatal_terminates(self, terminal, clock):
        terminated = []
        buffer = make_buffer(terminal, clock, terminate=lambda: terminated.append(True))
        buffer.mode = DispatchMode.DIRECT_TERMINAL
        buffer.dispatch(Severity.FATAL, HERE, "boom")
        assert terminated == [True]

    def test_direct_terminal_restores_mode(self, terminal, clock):
        buffer = make_buffer(terminal, clock)
        with pytest.raises(ValueError):
            with buffer.direct_terminal():
                assert buffer.mode is DispatchMode.DIRECT_TERMINAL
                raise ValueError("inside")
        assert buffer.mode is DispatchMode.BUFFERING

    def test_reentrant_fatal_still_terminates(self, clock):
        """A Fatal logged from inside a terminal write ends the process."""
        terminated = []

        class ReenteringStream(io.StringIO):
            def write(self, text):
                buffer.dispatch(Severity.FATAL, HERE, "nested")
                return super().write(text)

        buffer = make_buffer(
            TerminalSink(ReenteringStream()), clock, terminate=lambda: terminated.append(True)
        )
        with buffer.direct_terminal():
            buffer.dispatch(Severity.INFO, HERE, "outer")
        assert terminated == [True]

    def test_mode_is_per_thread(self, terminal, stream, clock):
        """Direct terminal mode on one thread leaves other threads buffering."""
        buffer = make_buffer(terminal, clock)
        seen = []

        def other_thread():
            seen.append(buffer.mode)
            buffer.dispatch(Severity.INFO, HERE, "from worker")

        with buffer.direct_terminal():
            worker = threading.Thread(target=other_thread)
            worker.start()
            worker.join(5)

        assert seen == [DispatchMode.BUFFERING]
        assert [r.message for r in buffer.pending()] == ["from worker"]
        assert stream.getvalue() == ""

    def test_default_mode(self, terminal, clock):
        buffer = make_buffer(terminal, clock, mode=DispatchMode.DIRECT_TERMINAL)
        assert buffer.mode is DispatchMode.DIRECT_TERMINAL
