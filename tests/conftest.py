"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.database import Database
from models.monitoring import MonitoringRule, MonitoringCondition, MonitoringAction, Schedule
from datetime import datetime, timedelta, timezone


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


class FakeClock:
    """Manually advanced UTC clock."""
    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeTimer:
    """Stands in for threading.Timer; fires only when told to."""
    created = []

    def __init__(self, delay, func):
        self.delay = delay
        self.func = func
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.func()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_timers():
    FakeTimer.created = []
    yield FakeTimer
    FakeTimer.created = []


def make_rule(rule_id="queue_backup", interval=300, conditions=None, actions=None,
              max_executions=None, active_hours=None, enabled=True):
    return MonitoringRule(
        id=rule_id,
        name=rule_id.replace("_", " ").title(),
        schedule=Schedule(interval_seconds=interval, max_executions=max_executions,
                          active_hours=active_hours),
        category="business",
        enabled=enabled,
        conditions=conditions if conditions is not None else [
            MonitoringCondition(type="metric_threshold", metric="business_queue_size",
                                operator="gt", value=100, window_minutes=10),
        ],
        actions=actions if actions is not None else [
            MonitoringAction(type="alert", severity="critical", alert_type="queue_issue"),
        ],
    )
