"""Enums for severities, alert types, channels, and rule building blocks."""
from enum import Enum


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    SYSTEM_ERROR = "system_error"
    API_FAILURE = "api_failure"
    DATABASE_ISSUE = "database_issue"
    QUEUE_ISSUE = "queue_issue"
    PERFORMANCE_DEGRADATION = "performance_degradation"
    RESOURCE_EXHAUSTION = "resource_exhaustion"
    AUTHENTICATION_FAILURE = "authentication_failure"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SCHEDULER_FAILURE = "scheduler_failure"
    CONTENT_PROCESSING_ERROR = "content_processing_error"


class ChannelType(str, Enum):
    EMAIL = "email"
    WEBHOOK = "webhook"
    LOG = "log"
    CONSOLE = "console"


class RuleCategory(str, Enum):
    HEALTH = "health"
    PERFORMANCE = "performance"
    BUSINESS = "business"
    SECURITY = "security"


class ConditionType(str, Enum):
    METRIC_THRESHOLD = "metric_threshold"
    HEALTH_STATUS = "health_status"
    LOG_PATTERN = "log_pattern"
    CUSTOM = "custom"


class Operator(str, Enum):
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


class Aggregation(str, Enum):
    AVG = "avg"
    SUM = "sum"
    COUNT = "count"
    MIN = "min"
    MAX = "max"


class ActionType(str, Enum):
    ALERT = "alert"
    RECOVERY = "recovery"
    LOG = "log"
    CUSTOM = "custom"


class CorrelationAction(str, Enum):
    ESCALATE = "escalate"
    SUPPRESS = "suppress"
    GROUP = "group"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"
