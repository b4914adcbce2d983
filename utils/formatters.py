"""Formatting utilities for display."""
from datetime import datetime, timezone


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_duration(ms):
    """Format milliseconds: 850 -> '850ms', 2500 -> '2.5s', 90000 -> '1m 30s'."""
    if ms is None:
        return "N/A"
    ms = float(ms)
    if ms < 1000:
        return f"{ms:.0f}ms"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def format_severity(severity, with_color=False):
    """Upper-case severity label, optionally wrapped in rich color markup."""
    value = getattr(severity, "value", severity)
    label = str(value).upper()
    if not with_color:
        return label
    color = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "cyan"}.get(value, "white")
    return f"[{color}]{label}[/{color}]"


def time_ago(dt, now=None):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    now = now or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = now - dt
    seconds = int(delta.total_seconds())

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"
