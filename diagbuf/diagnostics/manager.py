"""Process-wide diagnostics wiring.

DiagnosticsManager owns the buffer, both sinks, the replay checkpoint, the
connection registry and the revision resolver. Create one at startup, call
``install()`` to start capturing ``logging`` output, and ``close()`` (or let
the atexit hook run) to flush what is left.

Usage:
    manager = DiagnosticsManager(DiagnosticsSettings.from_env())
    manager.resolve_revision(sys.argv[0], "myprogram.pro")
    manager.connect(diagnostics_url="mysql://diag:secret@db/diagnostics")
    manager.install()
    ...
    manager.review()   # periodically, when show_diagnostics is on
"""

import atexit
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from diagbuf.config import DiagnosticsSettings
from diagbuf.db.connections import ConnectionManager, OpenResult
from diagbuf.revision import RevisionTagResolver

from .buffer import DiagnosticsBuffer, DispatchMode
from .handler import DiagnosticsHandler
from .replay import DiagnosticsReplay
from .sinks import DatabaseSink, TerminalSink

logger = logging.getLogger(__name__)


class DiagnosticsManager:
    """Single owner of the buffered diagnostics state."""

    def __init__(
        self,
        settings: Optional[DiagnosticsSettings] = None,
        connections: Optional[ConnectionManager] = None,
        resolver: Optional[RevisionTagResolver] = None,
        terminal_sink: Optional[TerminalSink] = None,
        clock: Callable[[], datetime] = datetime.now,
        terminate: Callable[[], None] = os.abort,
    ):
        self.settings = settings or DiagnosticsSettings()
        self.connections = connections or ConnectionManager(
            connection_name=self.settings.connection_name,
            diagnostics_connection_name=self.settings.diagnostics_connection_name,
        )
        self.resolver = resolver or RevisionTagResolver(
            tag_file_name=self.settings.tag_file_name
        )
        self.database_sink = DatabaseSink(
            self.connections,
            retention_days=self.settings.retention_days,
            strip_quotes=self.settings.strip_quotes,
        )
        self.buffer = DiagnosticsBuffer(
            terminal_sink=terminal_sink or TerminalSink(),
            database_sink=self.database_sink,
            tag_provider=lambda: self.resolver.tag,
            overflow_threshold=self.settings.overflow_threshold,
            clock=clock,
            terminate=terminate,
            mode=(
                DispatchMode.DIRECT_TERMINAL
                if self.settings.immediate_diagnostics
                else DispatchMode.BUFFERING
            ),
        )
        self.replay = DiagnosticsReplay(
            self.buffer,
            self.database_sink,
            message_width=self.settings.replay_message_width,
            immediate=self.settings.immediate_diagnostics,
        )
        self.handler = DiagnosticsHandler(self.buffer)
        self.start_time = clock()

        self._installed_on: Optional[logging.Logger] = None

    def resolve_revision(self, executable_path: Union[str, Path], program_name: str) -> str:
        """Resolve the revision tag and default the connection names.

        When no connection name was configured, the source root's directory
        name is used for both the primary and diagnostics connections.
        """
        tag = self.resolver.resolve(executable_path, program_name)
        source_path = self.resolver.source_path
        if source_path is not None:
            if not self.connections.connection_name:
                self.connections.connection_name = source_path.name
                logger.debug(f"Connection name set: {source_path.name}")
            if not self.connections.diagnostics_connection_name:
                self.connections.diagnostics_connection_name = self.connections.connection_name
        return tag

    def connect(
        self,
        database_url: Optional[str] = None,
        diagnostics_url: Optional[str] = None,
    ) -> Optional[OpenResult]:
        """Open the configured connections.

        Returns:
            Result for the diagnostics connection if one was requested,
            otherwise for the primary connection (None if neither)
        """
        database_url = database_url or self.settings.database_url
        diagnostics_url = diagnostics_url or self.settings.diagnostics_url
        result = None
        if database_url:
            result = self.connections.open_from_url(database_url)
        if diagnostics_url:
            result = self.connections.open_from_url(diagnostics_url, diagnostics=True)
        return result

    def install(self, target: Optional[logging.Logger] = None) -> DiagnosticsHandler:
        """Attach the handler and register a flush at interpreter exit."""
        target = target if target is not None else logging.getLogger()
        if self._installed_on is not None:
            return self.handler
        target.addHandler(self.handler)
        self._installed_on = target
        atexit.register(self.flush)
        return self.handler

    def uninstall(self) -> None:
        """Flush and detach the handler."""
        if self._installed_on is None:
            return
        self.flush()
        self._installed_on.removeHandler(self.handler)
        self._installed_on = None
        atexit.unregister(self.flush)

    def flush(self) -> int:
        return self.buffer.flush()

    def review(self) -> Optional[datetime]:
        """Replay everything stored since the previous review.

        Does nothing unless ``show_diagnostics`` is set and diagnostics are
        not already going straight to the terminal.
        """
        if not self.settings.show_diagnostics or self.settings.immediate_diagnostics:
            return None
        self.start_time = self.replay.collect_since(self.start_time)
        return self.start_time

    def close(self) -> None:
        """Flush, detach and dispose of every connection."""
        self.uninstall()
        self.flush()
        self.connections.close_all()
