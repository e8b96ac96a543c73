"""Logging configuration for diagbuf.

Registers the FATAL level used for flush-then-terminate records and provides
``setup_logging`` for the CLI and for applications that do not configure
logging themselves.
"""

import logging

# logging.FATAL is an alias of CRITICAL; Fatal records need their own level.
FATAL_LEVEL = logging.CRITICAL + 10

logging.addLevelName(FATAL_LEVEL, "FATAL")


def setup_logging(
    level: str = "INFO",
    debug_sql: bool = False,
) -> None:
    """Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        debug_sql: Enable verbose SQLAlchemy engine logging
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if debug_sql:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
        logging.getLogger("sqlalchemy.pool").setLevel(logging.DEBUG)
    else:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
