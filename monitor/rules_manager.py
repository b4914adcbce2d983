"""Monitoring rule and correlation pattern loading."""
import logging
import yaml
from pathlib import Path

from models.monitoring import (
    ActiveHours, AlertCorrelationPattern, MonitoringAction, MonitoringCondition,
    MonitoringRule, Schedule,
)

logger = logging.getLogger("pmonitor.rules")

DEFAULT_RULES_PATH = Path(__file__).resolve().parent.parent / "config" / "monitoring_rules.yaml"


class RulesManager:
    def __init__(self, rules_path=DEFAULT_RULES_PATH):
        self.rules_path = Path(rules_path)
        self.rules = []
        self.correlations = []
        self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Monitoring rules file not found: {self.rules_path}")
            return
        with open(self.rules_path) as f:
            data = yaml.safe_load(f) or {}
        self.rules = self._parse_rules(data.get("rules", []))
        self.correlations = self._parse_correlations(data.get("correlations", []))
        logger.info(f"Loaded {len(self.rules)} rules, {len(self.correlations)} correlation patterns")

    def _parse_rules(self, raw_rules):
        rules = []
        seen = set()
        for r in raw_rules:
            try:
                rule = parse_rule(r)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid monitoring rule {r.get('id')!r}: {e}")
                continue
            if rule.id in seen:
                logger.warning(f"Duplicate monitoring rule id {rule.id!r}; keeping the first")
                continue
            seen.add(rule.id)
            rules.append(rule)
        return rules

    def _parse_correlations(self, raw_patterns):
        patterns = []
        for c in raw_patterns:
            try:
                patterns.append(AlertCorrelationPattern(
                    pattern=c["pattern"],
                    description=c.get("description", ""),
                    time_window_minutes=int(c["time_window_minutes"]),
                    minimum_occurrences=int(c["minimum_occurrences"]),
                    alert_types=c.get("alert_types", []),
                    action=c["action"],
                    suppress_minutes=int(c.get("suppress_minutes", 60)),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid correlation pattern {c.get('pattern')!r}: {e}")
        return patterns

    def get_enabled_rules(self):
        return [r for r in self.rules if r.enabled]

    def get_rule(self, rule_id):
        for r in self.rules:
            if r.id == rule_id:
                return r
        return None

    def get_all_rules(self):
        return self.rules

    def get_correlations(self):
        return self.correlations

    def set_enabled(self, rule_id, enabled) -> bool:
        """Flip a rule's enabled flag and write it back to the rules file."""
        rule = self.get_rule(rule_id)
        if rule is None:
            return False
        rule.enabled = enabled

        with open(self.rules_path) as f:
            data = yaml.safe_load(f) or {}
        for raw in data.get("rules", []):
            if raw.get("id") == rule_id:
                raw["enabled"] = enabled
        with open(self.rules_path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        logger.info(f"Rule {rule_id} {'enabled' if enabled else 'disabled'} in {self.rules_path}")
        return True


def parse_rule(raw: dict) -> MonitoringRule:
    """Build a MonitoringRule from its YAML/dict form. Raises ValueError when invalid."""
    sched = raw.get("schedule") or {}
    hours = sched.get("active_hours")
    schedule = Schedule(
        interval_seconds=float(sched["interval_seconds"]),
        max_executions=sched.get("max_executions"),
        active_hours=ActiveHours(int(hours["start"]), int(hours["end"])) if hours else None,
    )
    conditions = [
        MonitoringCondition(
            type=c["type"],
            operator=c["operator"],
            value=c.get("value"),
            metric=c.get("metric"),
            window_minutes=int(c.get("window_minutes", 5)),
            aggregation=c.get("aggregation", "avg"),
        )
        for c in raw.get("conditions", [])
    ]
    actions = [
        MonitoringAction(
            type=a["type"],
            severity=a.get("severity"),
            alert_type=a.get("alert_type"),
            recovery_action_id=a.get("recovery_action_id"),
            handler=a.get("handler"),
            metadata=a.get("metadata") or {},
        )
        for a in raw.get("actions", [])
    ]
    return MonitoringRule(
        id=raw["id"],
        name=raw.get("name", raw["id"]),
        description=raw.get("description", ""),
        category=raw.get("category", "health"),
        enabled=raw.get("enabled", True),
        conditions=conditions,
        actions=actions,
        schedule=schedule,
        metadata=raw.get("metadata") or {},
    )
