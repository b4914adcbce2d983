"""Cross-alert pattern detection over the recent alert stream."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from models.enums import AlertType, CorrelationAction, Severity

logger = logging.getLogger("pmonitor.alerts.correlator")


@dataclass
class CorrelationOutcome:
    pattern: str
    action: CorrelationAction
    correlation_id: str
    alert_ids: list = field(default_factory=list)
    meta_alert_id: int = None


class AlertCorrelator:
    """Scans persisted alerts for configured patterns.

    Alerts that already took part in a pattern carry its correlation id in
    ``metadata["correlation"]`` and are not counted for that pattern again.
    The only write this class makes to an existing alert is that tag.
    """

    def __init__(self, store, dispatcher, governor, patterns, clock=None):
        self.store = store
        self.dispatcher = dispatcher
        self.governor = governor
        self.patterns = list(patterns or [])
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def scan(self) -> list:
        outcomes = []
        for pattern in self.patterns:
            try:
                outcome = self._scan_pattern(pattern)
            except Exception as e:
                logger.error(f"Correlation scan failed for pattern {pattern.pattern}: {e}")
                continue
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def _scan_pattern(self, pattern):
        since = self._clock() - timedelta(minutes=pattern.time_window_minutes)
        candidates = [
            a for a in self.store.get_alerts_since(since, pattern.alert_types)
            if pattern.pattern not in (a.metadata or {}).get("correlation", {})
        ]
        if len(candidates) < pattern.minimum_occurrences:
            return None

        correlation_id = uuid.uuid4().hex[:12]
        outcome = CorrelationOutcome(
            pattern=pattern.pattern,
            action=pattern.action,
            correlation_id=correlation_id,
            alert_ids=[a.id for a in candidates],
        )
        logger.info(
            f"Correlation '{pattern.pattern}' matched {len(candidates)} alerts "
            f"in {pattern.time_window_minutes}m -> {pattern.action.value}"
        )

        if pattern.action == CorrelationAction.ESCALATE:
            outcome.meta_alert_id = self._escalate(pattern, candidates, correlation_id)
            if outcome.meta_alert_id is None:
                logger.warning(
                    f"Escalation for '{pattern.pattern}' was not admitted; "
                    f"leaving {len(candidates)} alerts untagged for the next scan"
                )
                return None
        elif pattern.action == CorrelationAction.SUPPRESS:
            self._suppress(pattern)

        self._tag(candidates, pattern.pattern, correlation_id)
        return outcome

    def _escalate(self, pattern, alerts, correlation_id):
        types = sorted({a.type.value for a in alerts})
        return self.dispatcher.send_critical_alert(
            f"Correlated alerts: {pattern.pattern}",
            f"{pattern.description or pattern.pattern}: {len(alerts)} alerts "
            f"({', '.join(types)}) within {pattern.time_window_minutes} minutes",
            AlertType.SYSTEM_ERROR,
            {
                "correlation_id": correlation_id,
                "pattern": pattern.pattern,
                "alert_ids": [a.id for a in alerts],
                "correlation": {pattern.pattern: correlation_id},
            },
            dedup=False,
        )

    def _suppress(self, pattern):
        until = self._clock() + timedelta(minutes=pattern.suppress_minutes)
        for alert_type in pattern.alert_types:
            for severity in Severity:
                self.governor.suppress(alert_type, severity, until)

    def _tag(self, alerts, pattern_name, correlation_id):
        for a in alerts:
            metadata = dict(a.metadata or {})
            tags = dict(metadata.get("correlation", {}))
            tags[pattern_name] = correlation_id
            metadata["correlation"] = tags
            try:
                self.store.update_alert(a.id, {"metadata": metadata})
                a.metadata = metadata
            except Exception as e:
                logger.warning(f"Failed to tag alert {a.id} with correlation {correlation_id}: {e}")
