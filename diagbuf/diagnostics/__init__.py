"""Buffered diagnostics: capture, flush, store and replay."""

from .logger import FATAL_LEVEL, setup_logging
from .records import DiagnosticRecord, Severity, SourceLocation
from .sinks import TerminalSink, DatabaseSink
from .buffer import DiagnosticsBuffer, DispatchMode
from .replay import DiagnosticsReplay
from .handler import DiagnosticsHandler
from .manager import DiagnosticsManager

__all__ = [
    "FATAL_LEVEL",
    "setup_logging",
    "DiagnosticRecord",
    "Severity",
    "SourceLocation",
    "TerminalSink",
    "DatabaseSink",
    "DiagnosticsBuffer",
    "DispatchMode",
    "DiagnosticsReplay",
    "DiagnosticsHandler",
    "DiagnosticsManager",
]
