"""Per alert-class throttling and suppression."""
import logging
import threading
from datetime import datetime, timedelta, timezone

from models.alerts import SuppressionState, ThrottleState, alert_class_key

logger = logging.getLogger("pmonitor.alerts.governor")

DEFAULT_CAPS = {
    "critical": 3,
    "high": 5,
    "medium": 10,
    "low": 20,
}
DEFAULT_CAP = 10


class FrequencyGovernor:
    """Decides whether an alert of a given (type, severity) class may proceed.

    A class is allowed `cap` admissions per fixed throttle window. The
    admission that would exceed the cap installs a suppression for the class
    and every alert of that class is then dropped until it expires.

    Both maps live behind one lock so the counter increment and the cap check
    happen atomically for concurrent rule threads.
    """

    def __init__(self, window_minutes=15, suppression_minutes=60, caps=None, clock=None):
        self.window = timedelta(minutes=window_minutes)
        self.suppression = timedelta(minutes=suppression_minutes)
        self.caps = dict(DEFAULT_CAPS)
        if caps:
            self.caps.update({str(k).lower(): int(v) for k, v in caps.items()})
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._throttle: dict[str, ThrottleState] = {}
        self._suppressed: dict[str, SuppressionState] = {}
        self._lock = threading.Lock()

    def cap_for(self, severity) -> int:
        sev = severity.value if hasattr(severity, "value") else str(severity)
        return self.caps.get(sev, DEFAULT_CAP)

    def admit(self, alert_type, severity) -> bool:
        key = alert_class_key(alert_type, severity)
        now = self._clock()

        with self._lock:
            suppression = self._suppressed.get(key)
            if suppression is not None:
                if suppression.suppressed_until > now:
                    logger.info(
                        f"Alert suppressed: {key} until {suppression.suppressed_until.isoformat()}"
                    )
                    return False
                del self._suppressed[key]

            throttle = self._throttle.get(key)
            if throttle is None or now - throttle.window_start >= self.window:
                self._throttle[key] = ThrottleState(count=1, window_start=now)
                return True

            throttle.count += 1
            cap = self.cap_for(severity)
            if throttle.count > cap:
                until = now + self.suppression
                self._suppressed[key] = SuppressionState(suppressed_until=until)
                logger.warning(
                    f"Alert throttled and suppressed: {key} "
                    f"({throttle.count} > {cap} in window, suppressed until {until.isoformat()})"
                )
                return False
            return True

    def suppress(self, alert_type, severity, until):
        """Install (or extend) a suppression for one alert class."""
        key = alert_class_key(alert_type, severity)
        with self._lock:
            current = self._suppressed.get(key)
            if current is None or current.suppressed_until < until:
                self._suppressed[key] = SuppressionState(suppressed_until=until)
        logger.info(f"Suppression installed: {key} until {until.isoformat()}")

    def is_suppressed(self, alert_type, severity) -> bool:
        key = alert_class_key(alert_type, severity)
        with self._lock:
            state = self._suppressed.get(key)
            return state is not None and state.suppressed_until > self._clock()

    def reset(self):
        with self._lock:
            self._throttle.clear()
            self._suppressed.clear()

    def snapshot(self) -> dict:
        """Copy of current governor state, for introspection."""
        with self._lock:
            return {
                "throttle": {
                    k: {"count": v.count, "window_start": v.window_start.isoformat()}
                    for k, v in self._throttle.items()
                },
                "suppressed": {
                    k: v.suppressed_until.isoformat() for k, v in self._suppressed.items()
                },
            }
