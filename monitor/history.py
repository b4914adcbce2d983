"""Bounded in-memory record of rule executions."""
import threading
from collections import deque
from datetime import datetime, timedelta, timezone


class ExecutionHistory:
    """Insertion-ordered ring buffer; the oldest entry is evicted first."""

    def __init__(self, max_size=1000):
        if max_size < 1:
            raise ValueError("history size must be >= 1")
        self.max_size = max_size
        self._entries = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def append(self, execution):
        with self._lock:
            self._entries.append(execution)

    def list(self, rule_id=None, limit=None):
        with self._lock:
            entries = list(self._entries)
        if rule_id is not None:
            entries = [e for e in entries if e.rule_id == rule_id]
        if limit is not None:
            entries = entries[-limit:]
        return entries

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def statistics(self, now=None, window_hours=24):
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=window_hours)
        recent = [e for e in self.list() if e.executed_at >= cutoff]
        triggered = [e for e in recent if e.conditions_met]
        durations = [e.duration_ms for e in recent]
        return {
            "total_executions": len(recent),
            "successful_executions": sum(1 for e in recent if not e.error),
            "triggered_executions": len(triggered),
            "skipped_executions": sum(1 for e in recent if e.skipped),
            "average_execution_ms": round(sum(durations) / len(durations)) if durations else 0,
            "recent_triggers": triggered[-10:],
        }
