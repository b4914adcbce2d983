"""Runs the actions of a rule whose conditions all held."""
import json
import logging

from models.enums import ActionType, AlertType, Severity

logger = logging.getLogger("pmonitor.actions")


class ActionError(Exception):
    """An individual monitoring action failed."""


class ActionExecutor:
    def __init__(self, dispatcher=None, recovery=None, custom_actions=None):
        self.dispatcher = dispatcher
        self.recovery = recovery
        self.custom_actions = dict(custom_actions or {})
        self._handlers = {
            ActionType.ALERT: self._alert,
            ActionType.RECOVERY: self._recovery,
            ActionType.LOG: self._log,
            ActionType.CUSTOM: self._custom,
        }

    def register_custom_action(self, name, func):
        """Custom handler: func(rule, action, execution_details)."""
        self.custom_actions[name] = func

    def run_actions(self, rule, details):
        """Execute rule.actions in order. Returns (executed_count, last_error)."""
        executed = 0
        last_error = None
        for action in rule.actions:
            try:
                self.execute(action, rule, details)
                executed += 1
            except Exception as e:
                logger.error(
                    f"Failed to execute monitoring action {action.label} for rule {rule.id}: {e}",
                    exc_info=not isinstance(e, ActionError),
                )
                last_error = f"{action.label}: {e}"
        return executed, last_error

    def execute(self, action, rule, details):
        handler = self._handlers.get(action.type)
        if handler is None:
            raise ActionError(f"Unknown action type: {action.type}")
        handler(action, rule, details)

    def _alert(self, action, rule, details):
        if self.dispatcher is None:
            raise ActionError("No alert dispatcher configured")
        title = f"Monitoring Alert: {rule.name}"
        conditions = json.dumps(details.get("condition_results", []), default=str)
        message = f'Monitoring rule "{rule.name}" triggered. Conditions: {conditions}'
        metadata = {"rule_id": rule.id, **action.metadata}
        alert_type = action.alert_type or AlertType.SYSTEM_ERROR

        if action.severity == Severity.CRITICAL:
            self.dispatcher.send_critical_alert(title, message, alert_type, metadata)
        else:
            self.dispatcher.send_warning_alert(title, message, alert_type, metadata)

    def _recovery(self, action, rule, details):
        if not action.recovery_action_id:
            return
        if self.recovery is None:
            raise ActionError("No recovery invoker configured")
        try:
            ok = self.recovery.execute(action.recovery_action_id)
        except KeyError as e:
            raise ActionError(str(e).strip("'\"")) from e
        if not ok:
            raise ActionError(f"Recovery action {action.recovery_action_id} failed")

    def _log(self, action, rule, details):
        logger.warning(f"Monitoring action triggered: {rule.name}", extra={
            "rule_id": rule.id,
            "execution_details": details,
            "action_metadata": action.metadata,
        })

    def _custom(self, action, rule, details):
        if action.custom_function is not None:
            action.custom_function()
            return
        if action.handler is None:
            return
        func = self.custom_actions.get(action.handler)
        if func is None:
            raise ActionError(f"No custom action registered for {action.handler!r}")
        func(rule, action, details)
