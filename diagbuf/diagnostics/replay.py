"""Replay of stored diagnostics for periodic review.

Each call flushes the buffer, reads every stored record in the window
``[since, until)`` and writes it to the terminal as an Info line, whatever
the logger levels. ``until`` is returned so the next call picks up exactly
where this one stopped.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from diagbuf.config import DEFAULT_REPLAY_MESSAGE_WIDTH
from diagbuf.db.schema import debug_info

from .buffer import DiagnosticsBuffer
from .records import Severity, SourceLocation, format_replay_line, format_timestamp
from .sinks import DatabaseSink

logger = logging.getLogger(__name__)

REPLAY_LOCATION = SourceLocation(__file__, "collect_since", 0)


class DiagnosticsReplay:
    """Re-emit stored diagnostics by time window.

    Usage:
        replay = DiagnosticsReplay(buffer, database_sink)
        checkpoint = replay.collect_since(start_time)
        ...
        checkpoint = replay.collect_since(checkpoint)
    """

    def __init__(
        self,
        buffer: DiagnosticsBuffer,
        sink: DatabaseSink,
        message_width: int = DEFAULT_REPLAY_MESSAGE_WIDTH,
        clock: Optional[Callable[[], datetime]] = None,
        immediate: bool = False,
    ):
        self.buffer = buffer
        self.sink = sink
        self.message_width = message_width
        self.clock = clock or buffer.clock
        self.immediate = immediate

    def collect_since(self, since: Optional[datetime]) -> datetime:
        """Flush, then log every stored record captured at or after ``since``.

        Args:
            since: Start of the window (None for everything stored)

        Returns:
            End of the window, to pass as ``since`` on the next call
        """
        if self.immediate:
            logger.debug("Diagnostics already go to the terminal; nothing to replay")
            return self.clock()

        # Taken before the flush: everything captured earlier is in the database
        # once the flush returns, so the next window cannot miss it.
        until = self.clock()
        self.buffer.flush()

        if not self.sink.is_available():
            return until

        with self.buffer.direct_terminal():
            try:
                lines = self.fetch_lines(since, until)
            except SQLAlchemyError as e:
                logger.warning(f"Diag extraction error: {e}")
                return until
            for line in lines:
                self.buffer.dispatch(Severity.INFO, REPLAY_LOCATION, line)

        logger.debug(f"Replayed {len(lines)} records up to {format_timestamp(until)}")
        return until

    def fetch_lines(
        self,
        since: Optional[datetime],
        until: Optional[datetime] = None,
    ) -> List[str]:
        """Read and format stored records in ``[since, until)``.

        Raises:
            SQLAlchemyError: If the query fails
        """
        engine = self.sink.engine
        if engine is None:
            return []

        c = debug_info.c
        query = select(
            c.Time, c.ArchiveTag, c.Severity, c.SourceLineNo, c.FunctionName, c.Message
        )
        if since is not None:
            query = query.where(c.Time >= format_timestamp(since))
        if until is not None:
            query = query.where(c.Time < format_timestamp(until))
        query = query.order_by(c.Time, c.idDebugInfo)

        with engine.connect() as conn:
            rows = conn.execute(query).all()

        return [
            format_replay_line(
                row.Time,
                row.ArchiveTag,
                row.Severity,
                row.SourceLineNo,
                row.FunctionName,
                row.Message,
                self.message_width,
            )
            for row in rows
        ]
