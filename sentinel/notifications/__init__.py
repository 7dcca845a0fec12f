"""Down and recovery notifications."""

from .channels import AlertChannel, EmailChannel, WebhookChannel
from .dispatcher import AlertDispatcher, ChannelResult, DispatchReport

__all__ = ["AlertChannel", "AlertDispatcher", "ChannelResult", "DispatchReport", "EmailChannel", "WebhookChannel"]
