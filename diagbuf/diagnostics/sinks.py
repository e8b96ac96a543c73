"""Destinations for flushed diagnostic records.

TerminalSink writes fixed-width lines to stderr. DatabaseSink inserts rows into
the DebugInfo table through the diagnostics connection and purges rows past
the retention window.
"""

import logging
import sys
import threading
from datetime import date, timedelta
from typing import Iterable, Optional, TextIO

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from diagbuf.config import DEFAULT_RETENTION_DAYS
from diagbuf.db.connections import ConnectionManager
from diagbuf.db.schema import debug_info, ensure_schema, has_schema
from diagbuf.utils.errors import DiagnosticsWriteError

from .records import DiagnosticRecord, format_terminal_line

logger = logging.getLogger(__name__)


class TerminalSink:
    """Write records to a terminal stream, one line each.

    Guarded against reentry: if writing a line causes another log call that
    lands back here on the same thread, the nested call returns without
    writing anything.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def stream(self) -> TextIO:
        # Looked up on each write so a replaced sys.stderr is honoured.
        return self._stream if self._stream is not None else sys.stderr

    @property
    def active(self) -> bool:
        """True while the current thread is inside ``write()``."""
        return getattr(self._local, "active", False)

    def write(self, records: Iterable[DiagnosticRecord]) -> int:
        """Write records in order.

        Returns:
            Number of lines written (0 on reentry)
        """
        if self.active:
            return 0
        self._local.active = True
        try:
            written = 0
            with self._lock:
                stream = self.stream
                for record in records:
                    stream.write(format_terminal_line(record) + "\n")
                    stream.flush()
                    written += 1
            return written
        finally:
            self._local.active = False


class DatabaseSink:
    """Insert records into DebugInfo over the diagnostics connection."""

    def __init__(
        self,
        connections: ConnectionManager,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        strip_quotes: bool = True,
    ):
        self.connections = connections
        self.retention_days = retention_days
        self.strip_quotes = strip_quotes

    @property
    def engine(self) -> Optional[Engine]:
        return self.connections.diagnostics_engine()

    def is_available(self) -> bool:
        """Check the diagnostics connection is registered and reachable."""
        engine = self.engine
        if engine is None:
            logger.debug("No diagnostics connection registered")
            return False
        return self.connections.is_open(engine)

    def write(self, records: Iterable[DiagnosticRecord]) -> int:
        """Insert records, then purge aged rows.

        Failed inserts are logged at CRITICAL and skipped; the remaining
        records and the purge still run.

        Returns:
            Number of rows inserted
        """
        engine = self.engine
        if engine is None:
            logger.critical("Diagnostics connection is not open; records dropped")
            return 0

        inserted = 0
        schema_checked = False
        with engine.connect() as conn:
            for record in records:
                row = record.to_row(strip_quotes=self.strip_quotes)
                try:
                    self._insert(conn, row)
                    inserted += 1
                    continue
                except DiagnosticsWriteError as e:
                    failure = e

                if not schema_checked:
                    schema_checked = True
                    if self._create_missing_table(engine):
                        try:
                            self._insert(conn, row)
                            inserted += 1
                            continue
                        except DiagnosticsWriteError as e:
                            failure = e

                logger.critical(
                    f"Error inserting DebugInfo record in database: {failure}\n"
                    f"Query: {failure.statement}"
                )

            try:
                self._purge(conn, self.retention_days)
            except DiagnosticsWriteError as e:
                logger.critical(
                    f"Error deleting old debug info from database: {e}\nQuery: {e.statement}"
                )

        return inserted

    def purge(self, days: Optional[int] = None) -> int:
        """Delete rows older than ``days`` (default: the retention window).

        Returns:
            Number of rows deleted, 0 if nothing could be deleted
        """
        engine = self.engine
        if engine is None:
            logger.warning("Diagnostics connection is not open; nothing purged")
            return 0
        with engine.connect() as conn:
            try:
                return self._purge(conn, self.retention_days if days is None else days)
            except DiagnosticsWriteError as e:
                logger.critical(
                    f"Error deleting old debug info from database: {e}\nQuery: {e.statement}"
                )
                return 0

    @staticmethod
    def _insert(conn: Connection, row: dict) -> None:
        statement = debug_info.insert()
        try:
            conn.execute(statement, row)
            conn.commit()
        except SQLAlchemyError as e:
            conn.rollback()
            raise DiagnosticsWriteError(str(e), "insert", str(statement)) from e

    @staticmethod
    def _purge(conn: Connection, days: int) -> int:
        cutoff = (date.today() - timedelta(days=days)).isoformat()
        statement = debug_info.delete().where(debug_info.c.Time < cutoff)
        try:
            result = conn.execute(statement)
            conn.commit()
        except SQLAlchemyError as e:
            conn.rollback()
            raise DiagnosticsWriteError(str(e), "delete", str(statement)) from e
        if result.rowcount:
            logger.debug(f"Deleted {result.rowcount} DebugInfo rows before {cutoff}")
        return result.rowcount or 0

    @staticmethod
    def _create_missing_table(engine: Engine) -> bool:
        try:
            if has_schema(engine):
                return False
            return ensure_schema(engine)
        except SQLAlchemyError as e:
            logger.critical(f"Unable to create DebugInfo table: {e}")
            return False
