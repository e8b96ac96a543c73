"""Diagnostic record model and line formatting.

A record is one captured log event. Records are stored in the ``DebugInfo``
table with a text timestamp (``YYYY-MM-DD HH:MM:SS.mmm``) that sorts
lexicographically, and are printed in two fixed-width shapes:

- terminal lines, written by ``TerminalSink``
- replay lines, produced by ``DiagnosticsReplay`` from stored rows
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from .logger import FATAL_LEVEL

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Severity(str, Enum):
    """Record severities, declared in increasing urgency."""

    DEBUG = "Debug"
    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"
    FATAL = "Fatal"

    @property
    def urgency(self) -> int:
        """Position in the urgency order (Debug is 0)."""
        return list(Severity).index(self)

    @property
    def level(self) -> int:
        """Matching ``logging`` level number."""
        return _SEVERITY_LEVELS[self]

    @classmethod
    def from_level(cls, levelno: int) -> "Severity":
        """Map a ``logging`` level number onto a severity."""
        if levelno >= FATAL_LEVEL:
            return cls.FATAL
        if levelno >= logging.ERROR:
            return cls.CRITICAL
        if levelno >= logging.WARNING:
            return cls.WARNING
        if levelno >= logging.INFO:
            return cls.INFO
        return cls.DEBUG


_SEVERITY_LEVELS = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.CRITICAL: logging.CRITICAL,
    Severity.FATAL: FATAL_LEVEL,
}


@dataclass(frozen=True)
class SourceLocation:
    """Where a log call came from."""

    file: str = ""
    function: str = ""
    line: int = 0


@dataclass(frozen=True)
class DiagnosticRecord:
    """One logged event, captured with the revision tag in effect."""

    timestamp: datetime
    severity: Severity
    revision_tag: str
    source_file: str
    source_function: str
    source_line: int
    message: str

    @property
    def location(self) -> SourceLocation:
        return SourceLocation(self.source_file, self.source_function, self.source_line)

    @property
    def time_text(self) -> str:
        return format_timestamp(self.timestamp)

    def to_row(self, strip_quotes: bool = True) -> Dict[str, Any]:
        """Column values for a ``DebugInfo`` insert."""
        message = self.message.replace("'", "") if strip_quotes else self.message
        return {
            "Time": self.time_text,
            "Severity": self.severity.value,
            "ArchiveTag": self.revision_tag,
            "FilePath": self.source_file,
            "FunctionName": self.source_function,
            "SourceLineNo": int(self.source_line),
            "Message": message,
        }


def format_timestamp(moment: datetime) -> str:
    """Format with millisecond precision: ``2024-03-01 09:15:02.045``."""
    return f"{moment.strftime(TIMESTAMP_FORMAT)}.{moment.microsecond // 1000:03d}"


def short_function_name(function: str) -> str:
    """Strip the argument list and any scope qualifier from a function name.

    ``"void Foo::bar(int)"`` becomes ``"bar"``; ``"main"`` stays ``"main"``.
    """
    end = function.find("(")
    if end < 0:
        end = len(function)
    head = function[:end]
    begin = head.rfind(":")
    if begin < 0:
        begin = head.rfind(" ")
    return head[begin + 1:]


def format_terminal_line(record: DiagnosticRecord) -> str:
    """Tab separated line: severity, file, function, line number, message."""
    file_name = os.path.basename(record.source_file)[:12]
    function = short_function_name(record.source_function)[:30]
    return (
        f"{record.severity.value:<8}\t{file_name:>12}\t{function:>30}\t"
        f"{int(record.source_line):6d}\t{record.message}"
    )


def escape_message(message: str) -> str:
    return message.replace("\r", "\\r").replace("\n", "\\n")


def format_replay_line(
    time_text: str,
    revision_tag: str,
    severity: str,
    line: int,
    function: str,
    message: str,
    message_width: int = 250,
) -> str:
    """Fixed-width line for a stored row.

    Layout: time, three spaces, last 8 characters of the tag padded to 10,
    severity padded to 10, line number right-aligned in 4 and padded to 6,
    short function name padded to 25, a space, then the escaped message cut
    to ``message_width``.
    """
    tag = (revision_tag or "")[-8:]
    line_text = f"{line if line is not None else 0:>4}"
    function_text = short_function_name(function or "")[:25]
    return (
        f"{time_text}   {tag:<10}{(severity or '')[:10]:<10}{line_text:<6}"
        f"{function_text:<25} {escape_message(message or '')[:message_width]}"
    )
