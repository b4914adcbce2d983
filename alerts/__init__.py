"""Alert system module."""
from alerts.governor import FrequencyGovernor
from alerts.retry import RetryCoordinator
from alerts.channels import (
    ChannelError, ChannelConfigError, ConsoleChannel, LogChannel, WebhookChannel, EmailChannel,
    build_channels,
)
from alerts.dispatcher import AlertDispatcher
from alerts.correlator import AlertCorrelator, CorrelationOutcome
