"""ProactiveMonitor - rule registry, scheduling, and per-tick execution."""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from models.monitoring import MonitoringExecution
from monitor.history import ExecutionHistory
from monitor.scheduler import PeriodicTask, RuleScheduler

logger = logging.getLogger("pmonitor.engine")

SKIPPED_OUTSIDE_ACTIVE_HOURS = "Outside active hours"


class RuleNotFoundError(KeyError):
    pass


class ProactiveMonitor:
    """Holds monitoring rules and runs each enabled one on its own timer.

    Lifecycle is only `start()` / `stop()`. The host process decides when to
    call them (signal handling belongs to the host, not here).
    """

    def __init__(self, evaluator, executor, history=None, correlator=None,
                 correlation_interval=60, now_fn=None, metric_sink=None,
                 max_condition_workers=8):
        self.evaluator = evaluator
        self.executor = executor
        self.history = history if history is not None else ExecutionHistory()
        self.correlator = correlator
        self.correlation_interval = correlation_interval
        self.metric_sink = metric_sink
        self.max_condition_workers = max_condition_workers
        self.scheduler = RuleScheduler()
        self._now = now_fn or datetime.now  # local time, for active hours
        self._rules = {}
        self._rule_locks = {}
        self._lock = threading.RLock()
        self._lifecycle = threading.Lock()
        self._running = False
        self._correlation_task = None

    # --- Lifecycle ---

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self):
        # Arming happens under the lifecycle lock so a concurrent stop() can
        # never return while timers are still being armed.
        with self._lifecycle:
            with self._lock:
                if self._running:
                    logger.warning("Monitoring already active")
                    return
                self._running = True
                rules = [r for r in self._rules.values() if r.enabled]

            for rule in rules:
                self.scheduler.arm(rule, self._scheduled_tick)

            if self.correlator is not None:
                self._correlation_task = PeriodicTask(
                    "alert-correlation", self.correlation_interval, self._correlation_tick,
                )
                self._correlation_task.start()

        logger.info(f"Proactive monitoring started ({len(rules)}/{len(self._rules)} rules active)")

    def stop(self):
        """Disarm every timer and wait for in-flight ticks. Safe to call repeatedly."""
        with self._lifecycle:
            with self._lock:
                if not self._running:
                    return
                self._running = False
                correlation_task, self._correlation_task = self._correlation_task, None

            self.scheduler.disarm_all()
            if correlation_task is not None:
                correlation_task.cancel(wait=True)
        logger.info("Proactive monitoring stopped")

    def armed_rule_ids(self):
        return self.scheduler.armed_ids()

    # --- Registry ---

    def register_rule(self, rule):
        """Add or replace a rule; re-arms it when the engine is running."""
        with self._lifecycle:
            with self._lock:
                self._rules[rule.id] = rule
                self._rule_locks.setdefault(rule.id, threading.Lock())
            if self._running and rule.enabled:
                self.scheduler.arm(rule, self._scheduled_tick)
            elif self._running:
                self.scheduler.disarm(rule.id)

        logger.info(
            f"Registered monitoring rule: {rule.name} ({rule.id}, {rule.category.value}, "
            f"{'enabled' if rule.enabled else 'disabled'}, "
            f"{len(rule.conditions)} conditions, {len(rule.actions)} actions)"
        )

    def remove_rule(self, rule_id) -> bool:
        with self._lifecycle:
            with self._lock:
                rule = self._rules.pop(rule_id, None)
            if rule is None:
                return False
            self.scheduler.disarm(rule_id)
        logger.info(f"Removed monitoring rule: {rule.name}")
        return True

    def set_rule_enabled(self, rule_id, enabled) -> bool:
        with self._lifecycle:
            with self._lock:
                rule = self._rules.get(rule_id)
                if rule is None:
                    return False
                rule.enabled = enabled
            if self._running:
                if enabled:
                    self.scheduler.arm(rule, self._scheduled_tick)
                else:
                    self.scheduler.disarm(rule_id)

        logger.info(f"Monitoring rule {'enabled' if enabled else 'disabled'}: {rule.name}")
        return True

    def get_rule(self, rule_id):
        with self._lock:
            return self._rules.get(rule_id)

    def get_rules(self):
        with self._lock:
            return list(self._rules.values())

    # --- Execution ---

    @staticmethod
    def is_within_active_hours(active_hours, hour) -> bool:
        if active_hours is None:
            return True
        return active_hours.contains(hour)

    def execute_rule(self, rule_id) -> MonitoringExecution:
        """Run one tick of a rule. Runs of the same rule never overlap."""
        rule = self.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Monitoring rule not found: {rule_id}")

        with self._rule_locks[rule_id]:
            execution = self._execute(rule)
            self.history.append(execution)
        return execution

    def _execute(self, rule):
        started = time.monotonic()
        executed_at = datetime.now(timezone.utc)
        details = {}
        conditions_met = False
        actions_executed = 0
        error = None

        try:
            if not self.is_within_active_hours(rule.schedule.active_hours, self._now().hour):
                details["skipped"] = SKIPPED_OUTSIDE_ACTIVE_HOURS
            else:
                logger.debug(f"Executing monitoring rule: {rule.name}")
                results = self._evaluate_conditions(rule)
                details["condition_results"] = [r.to_dict() for r in results]
                conditions_met = all(r.met for r in results)

                if conditions_met:
                    logger.info(f"Monitoring rule conditions met: {rule.name}")
                    actions_executed, error = self.executor.run_actions(rule, details)
                    self._record_trigger(rule, actions_executed)
        except Exception as e:
            error = str(e)
            logger.exception(f"Error executing monitoring rule: {rule.name}")

        return MonitoringExecution(
            rule_id=rule.id,
            executed_at=executed_at,
            conditions_met=conditions_met,
            actions_executed=actions_executed,
            duration_ms=(time.monotonic() - started) * 1000,
            error=error,
            details=details,
        )

    def _evaluate_conditions(self, rule):
        conditions = list(rule.conditions)
        if len(conditions) <= 1:
            return [self.evaluator.evaluate(c) for c in conditions]
        workers = min(len(conditions), self.max_condition_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"cond-{rule.id}") as pool:
            return list(pool.map(self.evaluator.evaluate, conditions))

    def _record_trigger(self, rule, actions_executed):
        if self.metric_sink is None:
            return
        try:
            self.metric_sink.record("monitoring_rule_triggered", 1)
        except Exception as e:
            logger.debug(f"Failed to record trigger metric for {rule.id}: {e}")

    def _scheduled_tick(self, rule_id):
        self.execute_rule(rule_id)

    def _correlation_tick(self):
        outcomes = self.correlator.scan()
        if outcomes:
            logger.info(f"Correlation pass produced {len(outcomes)} outcome(s)")

    # --- Introspection ---

    def get_statistics(self):
        stats = self.history.statistics()
        rules = self.get_rules()
        stats.update({
            "total_rules": len(rules),
            "active_rules": sum(1 for r in rules if r.enabled),
            "armed_rules": len(self.scheduler.armed_ids()),
        })
        return stats
