"""Independent periodic tasks: one thread and one `schedule.Scheduler` per task."""
import logging
import threading

import schedule

logger = logging.getLogger("pmonitor.scheduler")


class PeriodicTask:
    """Runs `func` every `interval_seconds` on a dedicated thread.

    Ticks of one task never overlap: the next run is scheduled after the
    previous one returns. An exception in `func` is logged and the task keeps
    running. With `max_runs`, the task disarms itself after that many
    completed ticks and calls `on_exhausted(task)`.
    """

    def __init__(self, name, interval_seconds, func, max_runs=None, on_exhausted=None):
        if interval_seconds <= 0:
            raise ValueError(f"interval must be > 0, got {interval_seconds!r}")
        self.name = name
        self.interval = interval_seconds
        self.func = func
        self.max_runs = max_runs
        self.on_exhausted = on_exhausted
        self.run_count = 0
        self._scheduler = schedule.Scheduler()
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def exhausted(self) -> bool:
        return self.max_runs is not None and self.run_count >= self.max_runs

    def start(self):
        if self._thread is not None:
            return
        self._scheduler.every(self.interval).seconds.do(self._tick)
        self._thread = threading.Thread(target=self._run_loop, name=f"task-{self.name}", daemon=True)
        self._thread.start()

    def cancel(self, wait=True, timeout=None):
        """Stop scheduling new ticks; optionally wait for an in-flight tick to finish."""
        self._stop_event.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._scheduler.clear()

    def _run_loop(self):
        while not self._stop_event.is_set():
            idle = self._scheduler.idle_seconds
            if idle is None:
                break
            if idle > 0 and self._stop_event.wait(idle):
                break
            self._scheduler.run_pending()

    def _tick(self):
        if self._stop_event.is_set():
            return schedule.CancelJob
        try:
            self.func()
        except Exception:
            logger.exception(f"Error in scheduled task {self.name}")
        self.run_count += 1

        if self.exhausted:
            self._stop_event.set()
            if self.on_exhausted is not None:
                try:
                    self.on_exhausted(self)
                except Exception:
                    logger.exception(f"on_exhausted callback failed for {self.name}")
            return schedule.CancelJob


class RuleScheduler:
    """Owns one PeriodicTask per armed rule, keyed by rule id."""

    def __init__(self):
        self._tasks = {}
        self._lock = threading.Lock()

    def arm(self, rule, tick):
        """(Re)arm `rule`; each tick calls tick(rule_id)."""
        self.disarm(rule.id)
        rule_id = rule.id
        task = PeriodicTask(
            name=rule_id,
            interval_seconds=rule.schedule.interval_seconds,
            func=lambda: tick(rule_id),
            max_runs=rule.schedule.max_executions,
            on_exhausted=self._on_exhausted,
        )
        with self._lock:
            self._tasks[rule_id] = task
        task.start()
        logger.debug(f"Armed rule {rule_id} every {rule.schedule.interval_seconds}s")
        return task

    def disarm(self, rule_id) -> bool:
        with self._lock:
            task = self._tasks.pop(rule_id, None)
        if task is None:
            return False
        task.cancel(wait=True)
        logger.debug(f"Disarmed rule {rule_id}")
        return True

    def disarm_all(self):
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            task.cancel(wait=False)
        for task in tasks:
            task.cancel(wait=True)

    def is_armed(self, rule_id) -> bool:
        with self._lock:
            return rule_id in self._tasks

    def armed_ids(self):
        with self._lock:
            return sorted(self._tasks)

    def get_task(self, rule_id):
        with self._lock:
            return self._tasks.get(rule_id)

    def _on_exhausted(self, task):
        with self._lock:
            if self._tasks.get(task.name) is task:
                del self._tasks[task.name]
        logger.info(f"Rule {task.name} reached max executions ({task.run_count}); timer disarmed")
