"""Tests for alert delivery channels."""
import logging
import pytest
import requests
from unittest.mock import MagicMock

from alerts.channels import (
    ChannelConfigError, ChannelError, ConsoleChannel, EmailChannel, LogChannel, WebhookChannel,
    build_channels,
)
from models.alerts import Alert
from models.enums import ChannelType


def _alert(severity="critical"):
    return Alert(id=7, type="database_issue", severity=severity, title="DB down",
                 message="Connection refused", metadata={"host": "db1"})


class TestWebhookChannel:
    def test_posts_payload(self):
        session = MagicMock()
        session.headers = {}
        session.post.return_value = MagicMock(status_code=200)
        channel = WebhookChannel("https://hooks.example.com/x", session=session, environment="prod")

        assert channel.send(_alert()) is True
        url = session.post.call_args[0][0]
        payload = session.post.call_args[1]["json"]
        assert url == "https://hooks.example.com/x"
        assert payload["alert"]["id"] == 7
        assert payload["alert"]["severity"] == "critical"
        assert payload["source"] == "proactive-monitor"
        assert payload["environment"] == "prod"

    def test_missing_url(self):
        channel = WebhookChannel("", session=MagicMock(headers={}))
        with pytest.raises(ChannelConfigError):
            channel.send(_alert())

    def test_non_2xx_raises(self):
        session = MagicMock(headers={})
        session.post.return_value = MagicMock(status_code=503)
        channel = WebhookChannel("https://hooks.example.com/x", session=session)
        with pytest.raises(ChannelError) as exc:
            channel.send(_alert())
        assert exc.value.status_code == 503

    def test_request_exception_wrapped(self):
        session = MagicMock(headers={})
        session.post.side_effect = requests.ConnectionError("refused")
        channel = WebhookChannel("https://hooks.example.com/x", session=session)
        with pytest.raises(ChannelError):
            channel.send(_alert())


class TestLogChannel:
    def test_critical_logs_error(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pmonitor.alerts.delivered"):
            LogChannel().send(_alert("critical"))
        assert caplog.records[-1].levelno == logging.ERROR
        assert caplog.records[-1].alert_id == 7

    def test_other_severities_log_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pmonitor.alerts.delivered"):
            LogChannel().send(_alert("low"))
        assert caplog.records[-1].levelno == logging.WARNING


class TestConsoleChannel:
    def test_prints(self):
        console = MagicMock()
        assert ConsoleChannel(console=console).send(_alert()) is True
        printed = console.print.call_args_list[0][0][0]
        assert "DB down" in printed


class TestEmailChannel:
    def test_unconfigured_raises(self):
        sender = MagicMock()
        sender.is_configured.return_value = False
        sender.missing_fields.return_value = ["smtp_host"]
        with pytest.raises(ChannelConfigError, match="smtp_host"):
            EmailChannel({}, sender=sender).send(_alert())

    def test_delegates_to_sender(self):
        sender = MagicMock()
        sender.is_configured.return_value = True
        sender.send_alert.return_value = True
        assert EmailChannel({}, sender=sender).send(_alert()) is True
        sender.send_alert.assert_called_once()


def test_build_channels_covers_every_type():
    channels = build_channels({"webhook": {"url": "https://x"}, "email": {}})
    assert set(channels) == set(ChannelType)
    assert channels[ChannelType.WEBHOOK].url == "https://x"
