"""Tests for the execution history ring buffer."""
import pytest
from datetime import datetime, timedelta, timezone

from models.monitoring import MonitoringExecution
from monitor.history import ExecutionHistory


def _exec(rule_id="r1", met=False, error=None, skipped=False, at=None, duration=10.0):
    return MonitoringExecution(
        rule_id=rule_id,
        executed_at=at or datetime.now(timezone.utc),
        conditions_met=met,
        duration_ms=duration,
        error=error,
        details={"skipped": "Outside active hours"} if skipped else {},
    )


def test_evicts_oldest():
    history = ExecutionHistory(max_size=3)
    for i in range(5):
        history.append(_exec(rule_id=f"r{i}"))
    assert len(history) == 3
    assert [e.rule_id for e in history.list()] == ["r2", "r3", "r4"]


def test_filter_and_limit():
    history = ExecutionHistory()
    for i in range(4):
        history.append(_exec(rule_id="a" if i % 2 else "b"))
    assert len(history.list(rule_id="a")) == 2
    assert len(history.list(limit=3)) == 3


def test_invalid_size():
    with pytest.raises(ValueError):
        ExecutionHistory(max_size=0)


def test_statistics_window():
    now = datetime.now(timezone.utc)
    history = ExecutionHistory()
    history.append(_exec(at=now - timedelta(hours=30)))
    history.append(_exec(met=True, duration=20))
    history.append(_exec(error="boom", duration=40))
    history.append(_exec(skipped=True, duration=0))

    stats = history.statistics(now=now + timedelta(seconds=1))
    assert stats["total_executions"] == 3
    assert stats["successful_executions"] == 2
    assert stats["triggered_executions"] == 1
    assert stats["skipped_executions"] == 1
    assert stats["average_execution_ms"] == 20
    assert len(stats["recent_triggers"]) == 1


def test_clear():
    history = ExecutionHistory()
    history.append(_exec())
    history.clear()
    assert len(history) == 0
