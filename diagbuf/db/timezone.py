"""Session time zone statement for MySQL-style databases."""

from datetime import datetime, timezone, tzinfo
from typing import Union
from zoneinfo import ZoneInfo


def set_db_time_zone_sql(zone: Union[tzinfo, str], at: datetime) -> str:
    """Build a ``SET time_zone`` statement for a zone's offset at an instant.

    The offset is taken at ``at``, so daylight saving is reflected for the
    moment asked about. A naive ``at`` is read as UTC.

    Args:
        zone: tzinfo instance or IANA zone name ("America/New_York")
        at: Instant to evaluate the offset at

    Returns:
        e.g. ``SET time_zone = '-05:00'``
    """
    if isinstance(zone, str):
        zone = ZoneInfo(zone)
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)

    offset = at.astimezone(zone).utcoffset()
    total_seconds = int(offset.total_seconds()) if offset is not None else 0

    sign = "-" if total_seconds < 0 else "+"
    hours = abs(total_seconds) // 3600
    minutes = (abs(total_seconds) // 60) % 60
    return f"SET time_zone = '{sign}{hours:02d}:{minutes:02d}'"
