"""Data sources the condition evaluators read from."""
import logging
import threading
from typing import Optional, Protocol, runtime_checkable

from models.alerts import HealthReport
from models.enums import Aggregation, HealthStatus

logger = logging.getLogger("pmonitor.sources")


@runtime_checkable
class MetricAggregator(Protocol):
    def query(self, names, start, end, aggregation) -> Optional[float]: ...


@runtime_checkable
class HealthReporter(Protocol):
    def current_report(self) -> HealthReport: ...


@runtime_checkable
class LogSearcher(Protocol):
    def search(self, pattern, start, end) -> int: ...


class DatabaseMetricAggregator:
    """Metric aggregator over the `metrics` table. Returns None when the window is empty."""

    def __init__(self, db):
        self.db = db

    def query(self, names, start, end, aggregation=Aggregation.AVG):
        return self.db.query_metric(names, start, end, aggregation)

    def record(self, name, value, recorded_at=None):
        self.db.record_metric(name, value, recorded_at)


class DatabaseLogSearcher:
    """Counts captured log entries matching a pattern."""

    def __init__(self, db):
        self.db = db

    def search(self, pattern, start, end):
        return self.db.count_log_matches(pattern, start, end)


class HealthRegistry:
    """Rolls named component checks up into one health report.

    A check is a zero-argument callable returning a HealthStatus (or its
    string value). A check that raises counts as critical.
    """

    def __init__(self):
        self._checks = {}
        self._lock = threading.Lock()

    def register(self, component, check):
        with self._lock:
            self._checks[component] = check

    def unregister(self, component):
        with self._lock:
            self._checks.pop(component, None)

    def current_report(self) -> HealthReport:
        with self._lock:
            checks = dict(self._checks)

        components = {}
        for name, check in checks.items():
            try:
                components[name] = HealthStatus(check())
            except Exception as e:
                logger.warning(f"Health check {name} failed: {e}")
                components[name] = HealthStatus.CRITICAL

        return HealthReport(overall_status=self._overall(components.values()), components=components)

    @staticmethod
    def _overall(statuses):
        statuses = list(statuses)
        if not statuses:
            return HealthStatus.UNKNOWN
        if HealthStatus.CRITICAL in statuses:
            return HealthStatus.CRITICAL
        if HealthStatus.WARNING in statuses or HealthStatus.UNKNOWN in statuses:
            return HealthStatus.WARNING
        return HealthStatus.HEALTHY
