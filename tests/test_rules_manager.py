"""Tests for YAML rule loading."""
import pytest
import yaml

from models.enums import ActionType, AlertType, CorrelationAction, Severity
from monitor.rules_manager import DEFAULT_RULES_PATH, RulesManager, parse_rule


def _write(tmp_path, data):
    path = tmp_path / "rules.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def test_default_rules_load():
    mgr = RulesManager(DEFAULT_RULES_PATH)
    ids = [r.id for r in mgr.get_all_rules()]
    assert ids == ["high_error_rate", "memory_usage_high", "queue_backup"]

    errors = mgr.get_rule("high_error_rate")
    assert errors.schedule.interval_seconds == 60
    assert errors.actions[0].severity == Severity.CRITICAL

    queue = mgr.get_rule("queue_backup")
    assert [a.type for a in queue.actions] == [ActionType.ALERT]

    memory = mgr.get_rule("memory_usage_high")
    assert [a.type for a in memory.actions] == [ActionType.ALERT, ActionType.RECOVERY]
    assert memory.actions[1].recovery_action_id == "force_garbage_collection"

    patterns = {p.pattern: p for p in mgr.get_correlations()}
    assert patterns["database_failures"].action == CorrelationAction.ESCALATE
    assert patterns["database_failures"].minimum_occurrences == 3
    assert patterns["memory_issues"].alert_types == [
        AlertType.RESOURCE_EXHAUSTION, AlertType.PERFORMANCE_DEGRADATION,
    ]


def test_missing_file(tmp_path):
    mgr = RulesManager(tmp_path / "nope.yaml")
    assert mgr.get_all_rules() == []


def test_invalid_and_duplicate_rules_skipped(tmp_path):
    good = {"id": "a", "schedule": {"interval_seconds": 30}, "conditions": [], "actions": []}
    path = _write(tmp_path, {"rules": [
        good,
        dict(good, name="dup"),
        {"id": "bad_interval", "schedule": {"interval_seconds": 0}},
        {"id": "bad_operator", "schedule": {"interval_seconds": 5},
         "conditions": [{"type": "metric_threshold", "operator": "between"}]},
        {"id": "no_schedule"},
        {"id": "zero_window", "schedule": {"interval_seconds": 5},
         "conditions": [{"type": "metric_threshold", "operator": "gt", "metric": "m", "window_minutes": 0}]},
    ]})
    mgr = RulesManager(path)
    assert [r.id for r in mgr.get_all_rules()] == ["a"]
    assert mgr.get_rule("a").name == "a"


def test_active_hours_and_max_executions():
    rule = parse_rule({
        "id": "night",
        "schedule": {"interval_seconds": 60, "max_executions": 5, "active_hours": {"start": 22, "end": 6}},
    })
    assert rule.schedule.max_executions == 5
    assert rule.schedule.active_hours.wraps


def test_bad_active_hours():
    with pytest.raises(ValueError):
        parse_rule({"id": "x", "schedule": {"interval_seconds": 60, "active_hours": {"start": 25, "end": 1}}})


def test_set_enabled_persists(tmp_path):
    path = _write(tmp_path, {"rules": [
        {"id": "a", "enabled": True, "schedule": {"interval_seconds": 30}},
    ]})
    mgr = RulesManager(path)
    assert mgr.set_enabled("a", False) is True
    assert mgr.get_enabled_rules() == []
    assert RulesManager(path).get_rule("a").enabled is False
    assert mgr.set_enabled("missing", True) is False
