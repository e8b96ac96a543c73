"""Shared fixtures for diagbuf tests."""

import io
from datetime import datetime, timedelta

import pytest

from diagbuf.db.connections import ConnectionManager
from diagbuf.diagnostics.sinks import DatabaseSink, TerminalSink


class FakeClock:
    """Clock that advances one millisecond per reading."""

    def __init__(self, start=None, step=timedelta(milliseconds=1)):
        self.now = start or datetime.now().replace(microsecond=0)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class RecordingDatabaseSink:
    """Stand-in for DatabaseSink that keeps written records in memory."""

    def __init__(self, available=True):
        self.available = available
        self.batches = []
        self.engine = None

    def is_available(self):
        return self.available

    def write(self, records):
        self.batches.append(list(records))
        return len(records)

    @property
    def records(self):
        return [r for batch in self.batches for r in batch]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def terminal(stream):
    return TerminalSink(stream)


@pytest.fixture
def sqlite_path(tmp_path):
    return tmp_path / "diagnostics.db"


@pytest.fixture
def connections(sqlite_path):
    manager = ConnectionManager(connection_name="app")
    result = manager.open_diagnostics("QSQLITE", str(sqlite_path), connection_name="Debugapp")
    assert result.ok, result.error
    yield manager
    manager.close_all()


@pytest.fixture
def database_sink(connections):
    return DatabaseSink(connections)
