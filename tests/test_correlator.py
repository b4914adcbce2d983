"""Tests for cross-alert correlation."""
from datetime import timedelta
from unittest.mock import MagicMock

from alerts.correlator import AlertCorrelator
from alerts.dispatcher import AlertDispatcher
from alerts.governor import FrequencyGovernor
from models.alerts import Alert
from models.enums import AlertType, ChannelType, CorrelationAction, Severity
from models.monitoring import AlertCorrelationPattern


class NullChannel:
    def send(self, alert):
        return True


def _setup(temp_db, clock, action="escalate", dedup_window_minutes=0):
    governor = FrequencyGovernor(clock=clock)
    dispatcher = AlertDispatcher(temp_db, governor, {ChannelType.EMAIL: NullChannel(), ChannelType.LOG: NullChannel()},
                                 dedup_window_minutes=dedup_window_minutes, clock=clock)
    pattern = AlertCorrelationPattern(
        pattern="database_failures", time_window_minutes=10, minimum_occurrences=3,
        alert_types=["database_issue", "api_failure"], action=action,
    )
    return governor, dispatcher, AlertCorrelator(temp_db, dispatcher, governor, [pattern], clock=clock)


def _seed(temp_db, clock, types):
    for t in types:
        temp_db.insert_alert(Alert(type=t, severity="high", title=t, created_at=clock()))


def test_below_threshold_no_outcome(temp_db, clock):
    _, _, correlator = _setup(temp_db, clock)
    _seed(temp_db, clock, ["database_issue", "api_failure"])
    assert correlator.scan() == []


def test_escalate_sends_critical_meta_alert(temp_db, clock):
    _, _, correlator = _setup(temp_db, clock)
    _seed(temp_db, clock, ["database_issue", "api_failure", "database_issue", "queue_issue"])

    outcomes = correlator.scan()
    assert len(outcomes) == 1
    outcome = outcomes[0]
    assert outcome.action == CorrelationAction.ESCALATE
    assert len(outcome.alert_ids) == 3

    meta = temp_db.get_alert(outcome.meta_alert_id)
    assert meta.severity == Severity.CRITICAL
    assert meta.type == AlertType.SYSTEM_ERROR
    assert meta.metadata["correlation_id"] == outcome.correlation_id

    for alert_id in outcome.alert_ids:
        tags = temp_db.get_alert(alert_id).metadata["correlation"]
        assert tags["database_failures"] == outcome.correlation_id


def test_already_tagged_alerts_not_counted_twice(temp_db, clock):
    _, _, correlator = _setup(temp_db, clock)
    _seed(temp_db, clock, ["database_issue"] * 3)
    assert len(correlator.scan()) == 1
    assert correlator.scan() == []


def test_alerts_outside_window_ignored(temp_db, clock):
    _, _, correlator = _setup(temp_db, clock)
    _seed(temp_db, clock, ["database_issue"] * 3)
    clock.advance(minutes=11)
    assert correlator.scan() == []


def test_suppress_installs_suppression(temp_db, clock):
    governor, _, correlator = _setup(temp_db, clock, action="suppress")
    _seed(temp_db, clock, ["api_failure"] * 3)
    outcome = correlator.scan()[0]
    assert outcome.meta_alert_id is None
    for severity in Severity:
        assert governor.is_suppressed(AlertType.API_FAILURE, severity)
        assert governor.is_suppressed(AlertType.DATABASE_ISSUE, severity)
    clock.advance(minutes=61)
    assert not governor.is_suppressed(AlertType.API_FAILURE, Severity.HIGH)


def test_group_only_tags(temp_db, clock):
    governor, _, correlator = _setup(temp_db, clock, action="group")
    _seed(temp_db, clock, ["database_issue"] * 3)
    outcome = correlator.scan()[0]
    assert outcome.meta_alert_id is None
    assert temp_db.list_alerts()["total"] == 3
    assert not governor.is_suppressed(AlertType.DATABASE_ISSUE, Severity.HIGH)


def test_escalation_not_swallowed_by_open_system_error(temp_db, clock):
    _, _, correlator = _setup(temp_db, clock, dedup_window_minutes=60)
    temp_db.insert_alert(Alert(type="system_error", severity="high", title="earlier failure",
                               created_at=clock()))
    _seed(temp_db, clock, ["database_issue"] * 3)

    outcome = correlator.scan()[0]
    assert outcome.meta_alert_id is not None
    meta = temp_db.get_alert(outcome.meta_alert_id)
    assert meta.severity == Severity.CRITICAL
    assert meta.metadata["pattern"] == "database_failures"


def test_rejected_escalation_leaves_alerts_untagged(temp_db, clock):
    pattern = AlertCorrelationPattern(
        pattern="database_failures", time_window_minutes=10, minimum_occurrences=3,
        alert_types=["database_issue"], action="escalate",
    )
    dispatcher = MagicMock()
    dispatcher.send_critical_alert.return_value = None
    correlator = AlertCorrelator(temp_db, dispatcher, FrequencyGovernor(clock=clock), [pattern], clock=clock)
    _seed(temp_db, clock, ["database_issue"] * 3)

    assert correlator.scan() == []
    for alert in temp_db.list_alerts()["items"]:
        assert "correlation" not in (alert.metadata or {})

    dispatcher.send_critical_alert.return_value = 42
    outcome = correlator.scan()[0]
    assert outcome.meta_alert_id == 42
    assert len(outcome.alert_ids) == 3
