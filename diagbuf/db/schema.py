"""DebugInfo table definition.

Matches the schema existing diagnostics databases already use, so rows written
here can be read by older tools and vice versa.
"""

import logging

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, inspect
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEBUG_INFO_TABLE = "DebugInfo"

metadata = MetaData()

debug_info = Table(
    DEBUG_INFO_TABLE,
    metadata,
    Column("idDebugInfo", Integer, primary_key=True, autoincrement=True),
    Column("Time", String(32), index=True),  # "YYYY-MM-DD HH:MM:SS.mmm"
    Column("Severity", String(16)),
    Column("ArchiveTag", String(64)),
    Column("FilePath", String(512)),
    Column("FunctionName", String(512)),
    Column("SourceLineNo", Integer),
    Column("Message", Text),
)


def has_schema(engine: Engine) -> bool:
    """Check whether the DebugInfo table exists."""
    return inspect(engine).has_table(DEBUG_INFO_TABLE)


def ensure_schema(engine: Engine) -> bool:
    """Create the DebugInfo table if it is missing.

    Returns:
        True if the table was created by this call
    """
    if has_schema(engine):
        return False
    debug_info.create(engine, checkfirst=True)
    logger.info(f"Created {DEBUG_INFO_TABLE} table on {engine.url.render_as_string()}")
    return True
