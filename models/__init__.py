"""Data models."""
from models.enums import (
    Severity, AlertType, ChannelType, RuleCategory, ConditionType, Operator,
    Aggregation, ActionType, CorrelationAction, HealthStatus,
)
from models.alerts import Alert, ThrottleState, SuppressionState, HealthReport, alert_class_key
from models.monitoring import (
    ActiveHours, Schedule, MonitoringCondition, MonitoringAction, MonitoringRule,
    ConditionResult, MonitoringExecution, AlertCorrelationPattern,
)
