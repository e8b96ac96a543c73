"""Error hierarchy for diagbuf.

Connection failures are returned to callers inside an ``OpenResult`` rather
than raised; write failures are caught at the sink and logged.
"""

from typing import Optional


class DiagbufError(Exception):
    """Base exception for all diagbuf errors."""

    pass


class DatabaseConnectionError(DiagbufError):
    """Raised (or returned) when a database connection cannot be opened."""

    def __init__(
        self,
        message: str,
        driver: Optional[str] = None,
        database: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        connection_name: Optional[str] = None,
    ):
        super().__init__(message)
        self.driver = driver
        self.database = database
        self.host = host
        self.port = port
        self.connection_name = connection_name


class InvalidConnectionURL(DatabaseConnectionError):
    """Raised when a connection string cannot be parsed."""

    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


class DiagnosticsWriteError(DiagbufError):
    """Raised when a single insert or delete against DebugInfo fails.

    Carries the failing operation ("insert" or "delete") and the statement
    text so the sink can report it at CRITICAL.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        statement: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.statement = statement


class RevisionLookupError(DiagbufError):
    """Raised when the version-control command cannot produce a tag."""

    def __init__(self, message: str, source_path: Optional[str] = None):
        super().__init__(message)
        self.source_path = source_path
