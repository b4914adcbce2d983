"""Tests for periodic task scheduling."""
import threading
import time
import pytest

from monitor.scheduler import PeriodicTask, RuleScheduler

from conftest import make_rule


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_runs_repeatedly_until_cancelled():
    calls = []
    task = PeriodicTask("t", 0.05, lambda: calls.append(1))
    task.start()
    assert _wait_for(lambda: len(calls) >= 3)
    task.cancel(wait=True)
    count = len(calls)
    time.sleep(0.2)
    assert len(calls) == count
    assert not task.is_alive


def test_max_runs_disarms():
    calls = []
    exhausted = threading.Event()
    task = PeriodicTask("t", 0.05, lambda: calls.append(1), max_runs=2,
                        on_exhausted=lambda t: exhausted.set())
    task.start()
    assert exhausted.wait(3)
    time.sleep(0.2)
    assert len(calls) == 2
    assert task.exhausted


def test_exception_does_not_stop_task():
    calls = []

    def flaky():
        calls.append(1)
        raise RuntimeError("tick failed")

    task = PeriodicTask("t", 0.05, flaky)
    task.start()
    assert _wait_for(lambda: len(calls) >= 2)
    task.cancel()


def test_cancel_waits_for_in_flight_tick():
    started = threading.Event()
    finished = []

    def slow():
        started.set()
        time.sleep(0.2)
        finished.append(1)

    task = PeriodicTask("t", 0.05, slow)
    task.start()
    assert started.wait(3)
    task.cancel(wait=True)
    assert finished == [1]


def test_invalid_interval():
    with pytest.raises(ValueError):
        PeriodicTask("t", 0, lambda: None)


class TestRuleScheduler:
    def test_arm_and_disarm(self):
        ticks = []
        scheduler = RuleScheduler()
        scheduler.arm(make_rule("a", interval=0.05), ticks.append)
        assert scheduler.is_armed("a")
        assert _wait_for(lambda: "a" in ticks)
        assert scheduler.disarm("a") is True
        assert not scheduler.is_armed("a")
        assert scheduler.disarm("a") is False

    def test_rearm_replaces_task(self):
        scheduler = RuleScheduler()
        first = scheduler.arm(make_rule("a", interval=10), lambda rid: None)
        second = scheduler.arm(make_rule("a", interval=10), lambda rid: None)
        assert first is not second
        assert scheduler.get_task("a") is second
        assert not first.is_alive
        scheduler.disarm_all()
        assert scheduler.armed_ids() == []

    def test_exhausted_rule_is_removed(self):
        scheduler = RuleScheduler()
        scheduler.arm(make_rule("a", interval=0.05, max_executions=1), lambda rid: None)
        assert _wait_for(lambda: not scheduler.is_armed("a"))
