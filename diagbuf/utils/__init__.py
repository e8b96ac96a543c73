"""Utility modules for diagbuf."""

from .errors import (
    DiagbufError,
    DatabaseConnectionError,
    InvalidConnectionURL,
    DiagnosticsWriteError,
    RevisionLookupError,
)

__all__ = [
    "DiagbufError",
    "DatabaseConnectionError",
    "InvalidConnectionURL",
    "DiagnosticsWriteError",
    "RevisionLookupError",
]
