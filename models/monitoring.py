"""Dataclasses for monitoring rules, their schedule, and execution records."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from models.enums import (
    ActionType, Aggregation, AlertType, ConditionType, CorrelationAction,
    Operator, RuleCategory, Severity,
)

NUMERIC_OPERATORS = {Operator.GT, Operator.GTE, Operator.LT, Operator.LTE, Operator.EQ}
STRING_OPERATORS = {Operator.EQ, Operator.CONTAINS, Operator.NOT_CONTAINS}


@dataclass
class ActiveHours:
    """Local hour-of-day window. start > end wraps past midnight (e.g. 22 -> 6)."""
    start: int
    end: int

    def __post_init__(self):
        for name, hour in (("start", self.start), ("end", self.end)):
            if not isinstance(hour, int) or not 0 <= hour <= 23:
                raise ValueError(f"active hours {name} must be an hour 0-23, got {hour!r}")

    @property
    def wraps(self) -> bool:
        return self.start > self.end

    def contains(self, hour: int) -> bool:
        if self.wraps:
            return hour >= self.start or hour < self.end
        return self.start <= hour <= self.end


@dataclass
class Schedule:
    interval_seconds: float
    max_executions: Optional[int] = None
    active_hours: Optional[ActiveHours] = None

    def __post_init__(self):
        if self.interval_seconds is None or self.interval_seconds <= 0:
            raise ValueError(f"schedule interval must be > 0, got {self.interval_seconds!r}")
        if self.max_executions is not None and self.max_executions < 1:
            raise ValueError(f"max_executions must be >= 1, got {self.max_executions!r}")


@dataclass
class MonitoringCondition:
    type: ConditionType
    operator: Operator
    value: Any = None
    metric: Optional[str] = None  # metric name, log search pattern, or custom predicate name
    window_minutes: int = 5
    aggregation: Aggregation = Aggregation.AVG

    def __post_init__(self):
        self.type = ConditionType(self.type)
        self.operator = Operator(self.operator)
        self.aggregation = Aggregation(self.aggregation)
        if self.window_minutes < 1:
            raise ValueError(f"window_minutes must be >= 1, got {self.window_minutes}")


@dataclass
class MonitoringAction:
    type: ActionType
    severity: Optional[Severity] = None
    alert_type: Optional[AlertType] = None
    recovery_action_id: Optional[str] = None
    handler: Optional[str] = None
    custom_function: Optional[Callable[[], Any]] = field(default=None, repr=False, compare=False)
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.type = ActionType(self.type)
        if self.severity is not None:
            self.severity = Severity(self.severity)
        if self.alert_type is not None:
            self.alert_type = AlertType(self.alert_type)

    @property
    def label(self) -> str:
        ref = self.alert_type or self.recovery_action_id or self.handler
        ref = ref.value if hasattr(ref, "value") else ref
        return f"{self.type.value}:{ref}" if ref else self.type.value


@dataclass
class MonitoringRule:
    id: str
    name: str
    schedule: Schedule
    category: RuleCategory = RuleCategory.HEALTH
    description: str = ""
    enabled: bool = True
    conditions: list = field(default_factory=list)
    actions: list = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.category = RuleCategory(self.category)
        if not self.id:
            raise ValueError("monitoring rule needs an id")


@dataclass
class ConditionResult:
    met: bool
    value: Any = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"met": self.met, "value": self.value, "details": self.details}


@dataclass(frozen=True)
class MonitoringExecution:
    rule_id: str
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    conditions_met: bool = False
    actions_executed: int = 0
    duration_ms: float = 0.0
    error: Optional[str] = None
    details: dict = field(default_factory=dict)

    @property
    def skipped(self) -> bool:
        return "skipped" in self.details


@dataclass
class AlertCorrelationPattern:
    pattern: str
    time_window_minutes: int
    minimum_occurrences: int
    alert_types: list
    action: CorrelationAction
    description: str = ""
    suppress_minutes: int = 60

    def __post_init__(self):
        self.alert_types = [AlertType(t) for t in self.alert_types]
        self.action = CorrelationAction(self.action)
        if self.time_window_minutes <= 0:
            raise ValueError("correlation time window must be > 0")
        if self.minimum_occurrences < 1:
            raise ValueError("minimum_occurrences must be >= 1")
