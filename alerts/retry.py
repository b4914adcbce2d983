"""Bounded exponential-backoff redelivery for alerts that no channel accepted."""
import logging
import threading

logger = logging.getLogger("pmonitor.alerts.retry")


class RetryCoordinator:
    def __init__(self, redeliver, max_retries=3, base_delay=1.0, max_delay=300.0,
                 timer_factory=threading.Timer):
        self.redeliver = redeliver
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._timer_factory = timer_factory
        self._timers = set()
        self._lock = threading.Lock()

    def delay_for(self, retry_count) -> float:
        """Seconds to wait before the next attempt: min(base * 2^n, max)."""
        return min(self.base_delay * (2 ** retry_count), self.max_delay)

    def schedule(self, alert) -> bool:
        """Arm a redelivery for `alert`. Returns False once retries are exhausted."""
        if alert.retry_count >= self.max_retries:
            logger.error(
                f"Giving up on alert {alert.id} ({alert.alert_class}) after "
                f"{alert.retry_count} retries; left undelivered"
            )
            return False

        delay = self.delay_for(alert.retry_count)
        timer = None

        def _fire():
            with self._lock:
                self._timers.discard(timer)
            alert.retry_count += 1
            try:
                self.redeliver(alert)
            except Exception as e:
                logger.error(f"Retry {alert.retry_count} for alert {alert.id} failed: {e}")

        timer = self._timer_factory(delay, _fire)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()
        logger.info(
            f"Alert {alert.id} redelivery {alert.retry_count + 1}/{self.max_retries} "
            f"scheduled in {delay:.1f}s"
        )
        return True

    def pending_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def cancel_all(self):
        with self._lock:
            timers = list(self._timers)
            self._timers.clear()
        for t in timers:
            t.cancel()
