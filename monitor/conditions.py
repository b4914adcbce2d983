"""Condition evaluation against metrics, health, and log sources."""
import logging
import operator as op
from datetime import datetime, timedelta, timezone

from models.enums import ConditionType, Operator
from models.monitoring import ConditionResult, NUMERIC_OPERATORS, STRING_OPERATORS

logger = logging.getLogger("pmonitor.conditions")

NUMERIC_COMPARATORS = {
    Operator.GT: op.gt,
    Operator.GTE: op.ge,
    Operator.LT: op.lt,
    Operator.LTE: op.le,
    Operator.EQ: op.eq,
}

STRING_COMPARATORS = {
    Operator.EQ: lambda v, t: v == t,
    Operator.CONTAINS: lambda v, t: t in v,
    Operator.NOT_CONTAINS: lambda v, t: t not in v,
}


class UnsupportedOperator(ValueError):
    pass


def compare_numeric(value, operator, threshold) -> bool:
    if operator not in NUMERIC_OPERATORS:
        raise UnsupportedOperator(f"Operator {operator.value} is not valid for numeric values")
    return NUMERIC_COMPARATORS[operator](float(value), float(threshold))


def compare_text(value, operator, expected) -> bool:
    if operator not in STRING_OPERATORS:
        raise UnsupportedOperator(f"Operator {operator.value} is not valid for status values")
    value = value.value if hasattr(value, "value") else str(value)
    expected = expected.value if hasattr(expected, "value") else str(expected)
    return STRING_COMPARATORS[operator](value, expected)


class ConditionEvaluator:
    """Evaluates one MonitoringCondition at a time.

    Evaluation never raises: any failure comes back as a not-met result
    with an ``error`` detail.
    """

    def __init__(self, metrics=None, health=None, logs=None, predicates=None, clock=None):
        self.metrics = metrics
        self.health = health
        self.logs = logs
        self.predicates = dict(predicates or {})
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._handlers = {
            ConditionType.METRIC_THRESHOLD: self._evaluate_metric,
            ConditionType.HEALTH_STATUS: self._evaluate_health,
            ConditionType.LOG_PATTERN: self._evaluate_log,
            ConditionType.CUSTOM: self._evaluate_custom,
        }

    def register_predicate(self, name, predicate):
        """Custom predicate: predicate(condition) -> bool or (bool, value)."""
        self.predicates[name] = predicate

    def register_handler(self, condition_type, handler):
        self._handlers[ConditionType(condition_type)] = handler

    def evaluate(self, condition) -> ConditionResult:
        handler = self._handlers.get(condition.type)
        if handler is None:
            return ConditionResult(False, None, {"error": f"Unknown condition type: {condition.type}"})
        try:
            return handler(condition)
        except Exception as e:
            logger.warning(f"{condition.type.value} condition on {condition.metric!r} failed: {e}")
            return ConditionResult(False, None, {
                "type": condition.type.value,
                "target": condition.metric,
                "error": str(e),
            })

    def _window(self, condition):
        end = self._clock()
        return end - timedelta(minutes=condition.window_minutes), end

    def _evaluate_metric(self, condition):
        if self.metrics is None:
            raise RuntimeError("No metric aggregator configured")
        start, end = self._window(condition)
        raw = self.metrics.query([condition.metric], start, end, condition.aggregation)
        value = 0 if raw is None else raw
        details = {
            "metric": condition.metric,
            "operator": condition.operator.value,
            "threshold": condition.value,
            "aggregation": condition.aggregation.value,
            "window_minutes": condition.window_minutes,
        }
        if raw is None:
            details["no_data"] = True
        met = compare_numeric(value, condition.operator, condition.value)
        return ConditionResult(met, value, details)

    def _evaluate_health(self, condition):
        if self.health is None:
            raise RuntimeError("No health reporter configured")
        report = self.health.current_report()
        status = report.overall_status
        value = status.value if hasattr(status, "value") else str(status)
        met = compare_text(value, condition.operator, condition.value)
        return ConditionResult(met, value, {
            "overall_status": value,
            "summary": report.summary,
        })

    def _evaluate_log(self, condition):
        if self.logs is None:
            raise RuntimeError("No log searcher configured")
        start, end = self._window(condition)
        count = self.logs.search(condition.metric, start, end)
        met = compare_numeric(count, condition.operator, condition.value)
        return ConditionResult(met, count, {
            "pattern": condition.metric,
            "match_count": count,
            "threshold": condition.value,
            "window_minutes": condition.window_minutes,
        })

    def _evaluate_custom(self, condition):
        predicate = self.predicates.get(condition.metric)
        if predicate is None:
            return ConditionResult(False, None, {
                "message": f"No custom predicate registered for {condition.metric!r}",
            })
        outcome = predicate(condition)
        if isinstance(outcome, tuple):
            met, value = outcome
        else:
            met, value = outcome, None
        return ConditionResult(bool(met), value, {"predicate": condition.metric})
