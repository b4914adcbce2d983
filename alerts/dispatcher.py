"""Alert dispatch: admission, dedup, persistence, and multi-channel fan-out."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from models.alerts import DEFAULT_THRESHOLDS, Alert
from models.enums import AlertType, ChannelType, HealthStatus, Severity

logger = logging.getLogger("pmonitor.alerts.dispatcher")

DEFAULT_CHANNELS = [ChannelType.EMAIL, ChannelType.LOG]

# Component-name fragment -> (alert type, title). First match wins.
COMPONENT_ALERTS = [
    ("database", AlertType.DATABASE_ISSUE, "Database Critical"),
    ("api", AlertType.API_FAILURE, "{name} API Critical"),
    ("queue", AlertType.QUEUE_ISSUE, "Content Queue Critical"),
    ("scheduler", AlertType.SCHEDULER_FAILURE, "Scheduler Critical"),
    ("memory", AlertType.RESOURCE_EXHAUSTION, "Memory Critical"),
]


class AlertDispatcher:
    """Persists alerts and fans them out to delivery channels.

    Admission runs in a fixed order: suppression and throttle (the
    governor), then the unresolved-duplicate check, then persistence.
    Only persisted alerts are delivered.
    """

    def __init__(self, store, governor, channels, retry=None, default_channels=None,
                 dedup_window_minutes=60, clock=None, thresholds=None):
        self.store = store
        self.governor = governor
        self.channels = {ChannelType(k): v for k, v in (channels or {}).items()}
        self.retry = retry
        self.default_channels = [ChannelType(c) for c in (default_channels or DEFAULT_CHANNELS)]
        self.dedup_window = timedelta(minutes=dedup_window_minutes) if dedup_window_minutes else None
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.thresholds = list(DEFAULT_THRESHOLDS if thresholds is None else thresholds)

    def send_alert(self, alert: Alert, dedup=True) -> Optional[int]:
        """Admit, persist, and deliver. Returns the new alert id, or None if dropped.

        With ``dedup=False`` the unresolved-duplicate check is skipped; the
        governor still applies.
        """
        if not alert.channels:
            alert.channels = list(self.default_channels)

        if not self.governor.admit(alert.type, alert.severity):
            return None

        if dedup and self.dedup_window is not None:
            try:
                existing = self.store.find_unresolved_alert(alert.type, self._clock() - self.dedup_window)
            except Exception as e:
                logger.error(f"Duplicate check failed for {alert.alert_class}: {e}")
                existing = None
            if existing is not None:
                logger.info(
                    f"Skipping duplicate {alert.type.value} alert; unresolved alert "
                    f"{existing.id} from {existing.created_at.isoformat()}"
                )
                return None

        try:
            alert.id = self.store.insert_alert(alert)
        except Exception as e:
            logger.error(f"Failed to persist alert '{alert.title}' ({alert.alert_class}): {e}")
            return None

        results = self.deliver(alert)
        delivered = [c.value for c, ok in results.items() if ok]
        logger.info(
            f"Alert {alert.id} [{alert.severity.value}] {alert.title} -> "
            f"delivered via {delivered or 'no channel'}"
        )
        return alert.id

    def deliver(self, alert: Alert) -> dict:
        """Try every requested channel independently; retry if none succeeded."""
        results = {}
        for channel_type in alert.channels:
            results[channel_type] = self._send_through(alert, channel_type)

        if results and not any(results.values()):
            logger.warning(f"All channels failed for alert {alert.id} ({alert.alert_class})")
            if self.retry is not None:
                self.retry.schedule(alert)
        return results

    def redeliver(self, alert: Alert) -> dict:
        """Retry callback: record the attempt and deliver again without re-admission."""
        try:
            self.store.update_alert(alert.id, {"retry_count": alert.retry_count})
        except Exception as e:
            logger.error(f"Failed to record retry count for alert {alert.id}: {e}")
        return self.deliver(alert)

    def _send_through(self, alert, channel_type) -> bool:
        channel = self.channels.get(channel_type)
        if channel is None:
            logger.error(f"Unknown alert channel: {channel_type.value}")
            return False
        try:
            ok = channel.send(alert)
        except Exception as e:
            logger.warning(f"Channel {channel_type.value} failed for alert {alert.id}: {e}")
            return False
        if ok is False:
            logger.warning(f"Channel {channel_type.value} declined alert {alert.id}")
            return False
        return True

    def send_critical_alert(self, title, message, alert_type=AlertType.SYSTEM_ERROR,
                            metadata=None, channels=None, dedup=True):
        return self.send_alert(Alert(
            type=alert_type,
            severity=Severity.CRITICAL,
            title=title,
            message=message,
            metadata=metadata or {},
            channels=channels or list(self.default_channels),
        ), dedup=dedup)

    def send_warning_alert(self, title, message, alert_type=AlertType.PERFORMANCE_DEGRADATION,
                           metadata=None, channels=None):
        return self.send_alert(Alert(
            type=alert_type,
            severity=Severity.MEDIUM,
            title=title,
            message=message,
            metadata=metadata or {},
            channels=channels or list(self.default_channels),
        ))

    def acknowledge_alert(self, alert_id, acknowledged_by) -> bool:
        updated = self.store.update_alert(alert_id, {
            "acknowledged": True,
            "acknowledged_by": acknowledged_by,
            "acknowledged_at": self._clock(),
        })
        if updated:
            logger.info(f"Alert {alert_id} acknowledged by {acknowledged_by}")
        return updated

    def resolve_alert(self, alert_id, resolved_by) -> bool:
        now = self._clock()
        updated = self.store.update_alert(alert_id, {
            "resolved_at": now,
            "acknowledged": True,
            "acknowledged_by": resolved_by,
            "acknowledged_at": now,
        })
        if updated:
            logger.info(f"Alert {alert_id} resolved by {resolved_by}")
        return updated

    def get_alert_history(self, limit=100, offset=0, severity=None, alert_type=None,
                          start=None, end=None) -> dict:
        page = self.store.list_alerts(
            severity=severity, alert_type=alert_type, start=start, end=end,
            limit=limit, offset=offset,
        )
        by_type = {}
        by_severity = {}
        resolved = 0
        for a in page["items"]:
            by_type[a.type.value] = by_type.get(a.type.value, 0) + 1
            by_severity[a.severity.value] = by_severity.get(a.severity.value, 0) + 1
            if a.is_resolved:
                resolved += 1
        return {
            "alerts": page["items"],
            "total": page["total"],
            "by_type": by_type,
            "by_severity": by_severity,
            "resolved_count": resolved,
            "unresolved_count": page["total"] - resolved,
        }

    def test_alert_system(self):
        return self.send_warning_alert(
            "Alert System Test",
            "This is a test alert to verify the alert system is working correctly.",
            AlertType.SYSTEM_ERROR,
            {"test": True, "timestamp": self._clock().isoformat()},
        )

    # --- Health and threshold checks ---

    def monitor_system_health(self, report) -> list:
        """Alert on a health report: one roll-up alert, then one per critical component.

        Returns the ids of the alerts that were admitted.
        """
        sent = []
        failed = sorted(n for n, s in report.components.items() if s == HealthStatus.CRITICAL)
        summary = report.summary

        if report.overall_status == HealthStatus.CRITICAL:
            sent.append(self.send_critical_alert(
                "System Health Critical",
                f"System health is critical. Failed checks: {', '.join(failed)}",
                AlertType.SYSTEM_ERROR,
                {"overall_status": report.overall_status.value, "failed_checks": failed, "summary": summary},
            ))
        elif report.overall_status == HealthStatus.WARNING:
            warnings = sorted(n for n, s in report.components.items()
                              if s in (HealthStatus.WARNING, HealthStatus.UNKNOWN))
            sent.append(self.send_warning_alert(
                "System Health Warning",
                f"System health has warnings. Issues: {', '.join(warnings)}",
                AlertType.PERFORMANCE_DEGRADATION,
                {"overall_status": report.overall_status.value, "warning_checks": warnings, "summary": summary},
            ))

        for name in failed:
            match = _component_alert(name)
            if match is None:
                continue
            alert_type, title = match
            sent.append(self.send_critical_alert(
                title.format(name=name),
                f"Health check '{name}' is critical",
                alert_type,
                {"component": name, "status": HealthStatus.CRITICAL.value},
            ))
        return [i for i in sent if i is not None]

    def check_alert_thresholds(self, metrics) -> list:
        """Compare current metric values against the configured thresholds.

        ``metrics`` maps metric name to value; thresholds whose metric is
        missing are skipped. Returns the ids of the alerts that were admitted.
        """
        sent = []
        for threshold in self.thresholds:
            value = metrics.get(threshold.metric)
            if value is None:
                continue
            if value >= threshold.critical:
                level, limit, send = "critical", threshold.critical, self.send_critical_alert
            elif value >= threshold.warning:
                level, limit, send = "warning", threshold.warning, self.send_warning_alert
            else:
                continue
            alert_id = send(
                f"{threshold.metric} {level.title()}",
                f"{threshold.metric} has reached {level} level: {value:g} {threshold.unit}".rstrip(),
                AlertType.PERFORMANCE_DEGRADATION,
                {"metric": threshold.metric, "value": value, "threshold": limit, "unit": threshold.unit},
            )
            if alert_id is not None:
                sent.append(alert_id)
        return sent


def _component_alert(name):
    lowered = name.lower()
    for fragment, alert_type, title in COMPONENT_ALERTS:
        if fragment in lowered:
            return alert_type, title
    return None
