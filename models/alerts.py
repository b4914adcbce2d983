"""Dataclasses for alerts, governor state, and health reports."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.enums import AlertType, ChannelType, HealthStatus, Severity


def alert_class_key(alert_type, severity) -> str:
    """Throttle/suppression key for a (type, severity) pair."""
    t = alert_type.value if hasattr(alert_type, "value") else str(alert_type)
    s = severity.value if hasattr(severity, "value") else str(severity)
    return f"{t}_{s}"


@dataclass
class Alert:
    type: AlertType = AlertType.SYSTEM_ERROR
    severity: Severity = Severity.MEDIUM
    title: str = ""
    message: str = ""
    metadata: dict = field(default_factory=dict)
    channels: list = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    retry_count: int = 0

    def __post_init__(self):
        self.type = AlertType(self.type)
        self.severity = Severity(self.severity)
        self.channels = [ChannelType(c) for c in self.channels]

    @property
    def alert_class(self) -> str:
        return alert_class_key(self.type, self.severity)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "metadata": self.metadata,
            "channels": [c.value for c in self.channels],
            "created_at": self.created_at.isoformat(),
            "acknowledged": self.acknowledged,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "retry_count": self.retry_count,
        }


@dataclass
class ThrottleState:
    count: int
    window_start: datetime


@dataclass
class SuppressionState:
    suppressed_until: datetime


@dataclass
class HealthReport:
    overall_status: HealthStatus = HealthStatus.UNKNOWN
    components: dict = field(default_factory=dict)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def summary(self) -> dict:
        counts = {}
        for status in self.components.values():
            key = status.value if hasattr(status, "value") else str(status)
            counts[key] = counts.get(key, 0) + 1
        return counts


@dataclass
class AlertThreshold:
    """Warning/critical levels for a single metric."""
    metric: str
    warning: float
    critical: float
    unit: str = ""
    check_interval_minutes: int = 5

    def __post_init__(self):
        self.warning = float(self.warning)
        self.critical = float(self.critical)
        if self.critical < self.warning:
            raise ValueError(f"threshold {self.metric}: critical must be >= warning")
        if self.check_interval_minutes < 1:
            raise ValueError(f"threshold {self.metric}: check_interval_minutes must be >= 1")


DEFAULT_THRESHOLDS = [
    AlertThreshold("queue_size", warning=100, critical=500, unit="items", check_interval_minutes=5),
    AlertThreshold("error_rate", warning=5, critical=10, unit="percent", check_interval_minutes=5),
    AlertThreshold("memory_usage", warning=80, critical=95, unit="percent", check_interval_minutes=10),
]
