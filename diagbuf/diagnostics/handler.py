"""logging.Handler that feeds the diagnostics buffer."""

import logging

from .buffer import DiagnosticsBuffer
from .records import Severity, SourceLocation


class DiagnosticsHandler(logging.Handler):
    """Route ``logging`` records into a DiagnosticsBuffer.

    The buffer's dispatch mode decides whether a record is queued or written
    straight to the terminal.
    """

    def __init__(self, buffer: DiagnosticsBuffer, level: int = logging.NOTSET):
        super().__init__(level)
        self.buffer = buffer

    def handle(self, record: logging.LogRecord):
        """Filter and emit without taking the handler lock.

        The buffer does its own locking. A flush holding the buffer's flush
        lock may log back through this handler, so emit must never wait on
        a lock another thread holds while it waits for that flush.
        """
        rv = self.filter(record)
        if isinstance(rv, logging.LogRecord):
            record = rv
        if rv:
            self.emit(record)
        return rv

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record) if self.formatter else record.getMessage()
            location = SourceLocation(
                file=record.pathname or "",
                function=record.funcName or "",
                line=record.lineno or 0,
            )
            self.buffer.dispatch(Severity.from_level(record.levelno), location, message)
        except Exception:
            self.handleError(record)
