"""Settings for the buffered diagnostics subsystem.

Values can be set directly, read from ``DIAGBUF_*`` environment variables via
``DiagnosticsSettings.from_env()``, or passed as CLI options.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_OVERFLOW_THRESHOLD = 10_000
DEFAULT_RETENTION_DAYS = 2
DEFAULT_REPLAY_MESSAGE_WIDTH = 250
DEFAULT_TAG_FILE_NAME = "ArchiveTag.txt"
ENV_PREFIX = "DIAGBUF_"


class DiagnosticsSettings(BaseModel):
    """Tunables for buffering, storage and replay."""

    overflow_threshold: int = Field(
        DEFAULT_OVERFLOW_THRESHOLD,
        gt=0,
        description="Buffer size that triggers a flush to the terminal",
    )
    retention_days: int = Field(
        DEFAULT_RETENTION_DAYS,
        ge=0,
        description="Rows older than this many days are purged after each write",
    )
    strip_quotes: bool = Field(
        True,
        description="Strip single quotes from messages before storing them",
    )
    replay_message_width: int = Field(
        DEFAULT_REPLAY_MESSAGE_WIDTH,
        gt=0,
        description="Maximum message length in replayed lines",
    )
    tag_file_name: str = Field(
        DEFAULT_TAG_FILE_NAME,
        description="Revision tag cache file kept beside the source tree",
    )
    show_diagnostics: bool = Field(
        False,
        description="Replay stored diagnostics on each review",
    )
    immediate_diagnostics: bool = Field(
        False,
        description="Write every message straight to the terminal",
    )
    connection_name: str = Field("", description="Primary connection name")
    diagnostics_connection_name: str = Field(
        "", description="Diagnostics connection name (defaults to primary)"
    )
    database_url: Optional[str] = Field(None, description="Primary database URL")
    diagnostics_url: Optional[str] = Field(
        None, description="Diagnostics database URL"
    )

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, **overrides) -> "DiagnosticsSettings":
        """Build settings from environment variables.

        ``DIAGBUF_OVERFLOW_THRESHOLD=500`` sets ``overflow_threshold`` and so
        on. Keyword overrides win over the environment.
        """
        values = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update(overrides)
        return cls(**values)
