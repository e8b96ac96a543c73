"""diagbuf - buffered application diagnostics with database storage and replay."""

__version__ = "0.1.0"
