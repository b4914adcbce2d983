"""Utility modules for the proactive monitor."""
from utils.logger import setup_logging, DatabaseLogHandler, attach_database_handler
from utils.formatters import format_timestamp, format_duration, format_severity, time_ago
