"""Alert delivery channels. Each one is its own failure domain."""
import logging
from typing import Protocol, runtime_checkable

import requests

from models.enums import ChannelType, Severity

logger = logging.getLogger("pmonitor.alerts.channels")
alert_logger = logging.getLogger("pmonitor.alerts.delivered")


class ChannelError(Exception):
    """Delivery through a channel failed."""
    def __init__(self, message, channel=None, status_code=None):
        super().__init__(message)
        self.channel = channel
        self.status_code = status_code


class ChannelConfigError(ChannelError):
    """Channel is missing an endpoint or credentials."""


@runtime_checkable
class AlertChannel(Protocol):
    def send(self, alert) -> bool: ...


class ConsoleChannel:
    """Print alerts to the terminal with rich formatting."""

    severity_styles = {
        "critical": "bold white on red",
        "high": "bold red",
        "medium": "bold yellow",
        "low": "bold blue",
    }

    def __init__(self, console=None):
        if console is None:
            from rich.console import Console
            console = Console(stderr=True)
        self.console = console

    def send(self, alert) -> bool:
        from rich.markup import escape
        sev = alert.severity.value
        style = self.severity_styles.get(sev, "")
        prefix = escape(f"[ALERT:{sev.upper()}]")
        self.console.print(
            f"[{style}]{prefix}[/] {escape(alert.title)}: {escape(alert.message)}",
            markup=True,
            highlight=False,
        )
        if alert.metadata:
            self.console.print(alert.metadata)
        return True


class LogChannel:
    """Write alerts to the structured log; critical at ERROR, everything else at WARNING."""

    def __init__(self, log=None):
        self.log = log or alert_logger

    def send(self, alert) -> bool:
        level = logging.ERROR if alert.severity == Severity.CRITICAL else logging.WARNING
        self.log.log(level, alert.message, extra={
            "alert_id": alert.id,
            "alert_type": alert.type.value,
            "severity": alert.severity.value,
            "title": alert.title,
            "alert_metadata": alert.metadata,
        })
        return True


class WebhookChannel:
    """POST alerts as JSON to a configured URL."""

    def __init__(self, url, timeout=10, source="proactive-monitor", environment="development",
                 session=None):
        self.url = url
        self.timeout = timeout
        self.source = source
        self.environment = environment
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "ProactiveMonitor-AlertService"})

    def build_payload(self, alert) -> dict:
        return {
            "alert": {
                "id": alert.id,
                "type": alert.type.value,
                "severity": alert.severity.value,
                "title": alert.title,
                "message": alert.message,
                "metadata": alert.metadata,
                "timestamp": alert.created_at.isoformat(),
            },
            "source": self.source,
            "environment": self.environment,
        }

    def send(self, alert) -> bool:
        if not self.url:
            raise ChannelConfigError("Webhook URL not configured", channel=ChannelType.WEBHOOK)

        try:
            resp = self.session.post(self.url, json=self.build_payload(alert), timeout=self.timeout)
        except requests.RequestException as e:
            raise ChannelError(f"Webhook request failed: {e}", channel=ChannelType.WEBHOOK) from e

        if not 200 <= resp.status_code < 300:
            raise ChannelError(
                f"Webhook failed with status {resp.status_code}",
                channel=ChannelType.WEBHOOK,
                status_code=resp.status_code,
            )
        return True


class EmailChannel:
    """Email every alert routed to this channel through the SMTP sender."""

    def __init__(self, config: dict, sender=None):
        if sender is None:
            from notifications.email_sender import EmailSender
            sender = EmailSender(config)
        self.sender = sender

    def send(self, alert) -> bool:
        if not self.sender.is_configured():
            missing = ", ".join(self.sender.missing_fields())
            raise ChannelConfigError(
                f"Email channel not configured (missing: {missing})", channel=ChannelType.EMAIL
            )
        return self.sender.send_alert(alert)


def build_channels(config: dict) -> dict:
    """Instantiate one channel per ChannelType from config."""
    webhook_cfg = config.get("webhook", {})
    environment = config.get("environment", "development")
    return {
        ChannelType.EMAIL: EmailChannel(config),
        ChannelType.WEBHOOK: WebhookChannel(
            webhook_cfg.get("url", ""),
            timeout=webhook_cfg.get("timeout", 10),
            source=webhook_cfg.get("source", "proactive-monitor"),
            environment=environment,
        ),
        ChannelType.LOG: LogChannel(),
        ChannelType.CONSOLE: ConsoleChannel(),
    }
