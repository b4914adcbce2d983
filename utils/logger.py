"""Logging configuration."""
import logging
from datetime import datetime, timezone

from rich.logging import RichHandler

DB_LOGGER_NAME = "pmonitor.db"


def setup_logging(level="INFO", log_file=None):
    """Configure logging with rich console and optional file handler."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger("pmonitor")
    root.setLevel(numeric_level)

    if not root.handlers:
        console_handler = RichHandler(level=numeric_level, rich_tracebacks=True, markup=False)
        root.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
            file_handler.setFormatter(file_formatter)
            root.addHandler(file_handler)

    return root


class DatabaseLogHandler(logging.Handler):
    """Persists log records into the log_entries table for log-pattern conditions."""

    def __init__(self, db, level=logging.INFO):
        super().__init__(level)
        self.db = db

    def emit(self, record):
        if record.name.startswith(DB_LOGGER_NAME):
            return
        try:
            self.db.save_log_entry(
                level=record.levelname,
                logger_name=record.name,
                message=record.getMessage(),
                created_at=datetime.fromtimestamp(record.created, tz=timezone.utc),
            )
        except Exception:
            self.handleError(record)


def attach_database_handler(db, level=logging.INFO):
    """Attach a DatabaseLogHandler to the pmonitor logger, or repoint the existing one."""
    root = logging.getLogger("pmonitor")
    for h in root.handlers:
        if isinstance(h, DatabaseLogHandler):
            h.db = db
            return h
    handler = DatabaseLogHandler(db, level)
    root.addHandler(handler)
    return handler
