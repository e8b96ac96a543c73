"""In-memory diagnostics buffer.

Records accumulate here and are flushed in batches:
- explicitly, via ``flush()``
- automatically, when the buffer reaches the overflow threshold
  (to the terminal, never the database)
- immediately, for a Fatal record, after which the process terminates

The buffer also owns the dispatch mode. In BUFFERING mode log calls are
queued; in DIRECT_TERMINAL mode they are written straight to the terminal,
which is how buffering is paused during overflow flushes and replay. The mode
is per thread: pausing buffering on one thread leaves the others queueing.
"""

import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Callable, Iterator, List, Optional

from diagbuf.config import DEFAULT_OVERFLOW_THRESHOLD

from .records import DiagnosticRecord, Severity, SourceLocation
from .sinks import DatabaseSink, TerminalSink

logger = logging.getLogger(__name__)


class DispatchMode(str, Enum):
    """How ``dispatch()`` handles a log call."""

    BUFFERING = "buffering"
    DIRECT_TERMINAL = "direct_terminal"


class DiagnosticsBuffer:
    """Queue of pending diagnostic records.

    Usage:
        buffer = DiagnosticsBuffer(TerminalSink(), DatabaseSink(connections))
        buffer.append(Severity.WARNING, SourceLocation("x.py", "run", 42), "disk full")
        buffer.flush()
    """

    def __init__(
        self,
        terminal_sink: Optional[TerminalSink] = None,
        database_sink: Optional[DatabaseSink] = None,
        tag_provider: Callable[[], str] = lambda: "",
        overflow_threshold: int = DEFAULT_OVERFLOW_THRESHOLD,
        clock: Callable[[], datetime] = datetime.now,
        terminate: Callable[[], None] = os.abort,
        mode: DispatchMode = DispatchMode.BUFFERING,
    ):
        """Initialize the buffer.

        Args:
            terminal_sink: Sink for overflow flushes and database fallback
            database_sink: Sink used when its connection is available
            tag_provider: Returns the revision tag to stamp on new records
            overflow_threshold: Buffer size that triggers a terminal flush
            clock: Source of capture timestamps
            terminate: Called after a Fatal record has been flushed
            mode: Dispatch mode for threads that have not set their own
        """
        self.terminal_sink = terminal_sink or TerminalSink()
        self.database_sink = database_sink
        self.tag_provider = tag_provider
        self.overflow_threshold = overflow_threshold
        self.clock = clock
        self.terminate = terminate
        self.default_mode = mode

        self._records: List[DiagnosticRecord] = []
        self._lock = threading.Lock()
        self._flush_lock = threading.RLock()
        self._local = threading.local()

    @property
    def mode(self) -> DispatchMode:
        """Dispatch mode of the calling thread."""
        return getattr(self._local, "mode", self.default_mode)

    @mode.setter
    def mode(self, value: DispatchMode) -> None:
        self._local.mode = value

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def pending(self) -> List[DiagnosticRecord]:
        """Copy of the records not yet flushed."""
        with self._lock:
            return list(self._records)

    def create_record(
        self,
        severity: Severity,
        location: SourceLocation,
        message: str,
    ) -> DiagnosticRecord:
        return DiagnosticRecord(
            timestamp=self.clock(),
            severity=severity,
            revision_tag=self.tag_provider(),
            source_file=location.file or "",
            source_function=location.function or "",
            source_line=location.line or 0,
            message=message,
        )

    def append(
        self,
        severity: Severity,
        location: SourceLocation,
        message: str,
    ) -> DiagnosticRecord:
        """Queue a record, flushing on Fatal or on overflow."""
        record = self.create_record(severity, location, message)
        with self._lock:
            self._records.append(record)
            size = len(self._records)

        if severity is Severity.FATAL:
            self._flush_and_terminate()
        elif size >= self.overflow_threshold:
            # Terminal routing keeps flush-path logging from re-entering the buffer.
            with self.direct_terminal():
                self.flush(force_terminal=True)
        return record

    def dispatch(
        self,
        severity: Severity,
        location: SourceLocation,
        message: str,
    ) -> None:
        """Route a log call according to the current mode."""
        if self.mode is DispatchMode.BUFFERING:
            self.append(severity, location, message)
            return

        if self.terminal_sink.active:
            # Reentered from a terminal write: the line is lost but Fatal still ends the process.
            if severity is Severity.FATAL:
                self.terminate()
            return
        # Anything still queued goes out first so terminal order matches capture order.
        self.flush(force_terminal=True)
        self.terminal_sink.write([self.create_record(severity, location, message)])
        if severity is Severity.FATAL:
            self.terminate()

    def flush(self, force_terminal: bool = False) -> int:
        """Write all pending records to a sink and clear the buffer.

        The database sink is used when its connection is open and
        ``force_terminal`` is not set; otherwise the terminal sink.

        Returns:
            Number of records flushed
        """
        with self._flush_lock:
            with self._lock:
                if not self._records:
                    return 0
                records, self._records = self._records, []

            if not force_terminal and self._database_ready():
                self.database_sink.write(records)
            else:
                self.terminal_sink.write(records)
            return len(records)

    @contextmanager
    def direct_terminal(self) -> Iterator[None]:
        """Suspend buffering; log calls inside go straight to the terminal."""
        previous = self.mode
        self.mode = DispatchMode.DIRECT_TERMINAL
        try:
            yield
        finally:
            self.mode = previous

    def _database_ready(self) -> bool:
        if self.database_sink is None:
            return False
        try:
            return self.database_sink.is_available()
        except Exception as e:
            logger.debug(f"Diagnostics connection check failed: {e}")
            return False

    def _flush_and_terminate(self) -> None:
        try:
            self.flush()
        except Exception:
            logger.exception("Flush before termination failed")
        finally:
            self.terminate()
