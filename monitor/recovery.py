"""Registry of named recovery actions invoked by monitoring rules."""
import gc
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger("pmonitor.recovery")


class RecoveryActionNotFound(KeyError):
    pass


@dataclass
class RecoveryAction:
    id: str
    func: Callable[[], object]
    name: str = ""
    description: str = ""
    attempts: int = 0
    successes: int = 0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None


class RecoveryRegistry:
    """Maps recovery action ids to callables. The engine treats ids as opaque."""

    def __init__(self):
        self._actions = {}
        self._lock = threading.Lock()

    def register(self, action_id, func, name="", description=""):
        with self._lock:
            self._actions[action_id] = RecoveryAction(
                id=action_id, func=func, name=name or action_id, description=description,
            )

    def execute(self, action_id) -> bool:
        """Run a recovery action. A falsy return or an exception counts as failure."""
        with self._lock:
            action = self._actions.get(action_id)
        if action is None:
            raise RecoveryActionNotFound(f"Recovery action not found: {action_id}")

        action.attempts += 1
        action.last_run = datetime.now(timezone.utc)
        try:
            result = action.func()
        except Exception as e:
            action.last_error = str(e)
            logger.error(f"Recovery action {action_id} raised: {e}")
            return False

        ok = result is None or bool(result)
        if ok:
            action.successes += 1
            action.last_error = None
            logger.info(f"Recovery action {action_id} succeeded")
        else:
            action.last_error = "reported failure"
            logger.warning(f"Recovery action {action_id} reported failure")
        return ok

    def list_actions(self):
        with self._lock:
            return list(self._actions.values())


def _force_garbage_collection():
    collected = gc.collect()
    logger.info(f"Forced garbage collection ({collected} objects collected)")


def register_builtin_actions(registry):
    """Recovery actions that need nothing from the host process."""
    registry.register(
        "force_garbage_collection", _force_garbage_collection,
        name="Force Garbage Collection",
        description="Runs a full garbage collection pass to free memory",
    )
    return registry
