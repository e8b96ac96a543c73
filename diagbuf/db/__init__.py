"""Database connections, the DebugInfo schema and SQL helpers."""

from .connections import ConnectionManager, OpenResult, resolve_driver
from .schema import debug_info, ensure_schema, has_schema, DEBUG_INFO_TABLE
from .timezone import set_db_time_zone_sql

__all__ = [
    "ConnectionManager",
    "OpenResult",
    "resolve_driver",
    "debug_info",
    "ensure_schema",
    "has_schema",
    "DEBUG_INFO_TABLE",
    "set_db_time_zone_sql",
]
