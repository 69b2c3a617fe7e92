"""
Notifications Package.

Notification dispatch and channels for the deployment monitor.
"""

from .base import (
    NotificationChannel,
    NotificationDispatcher,
    format_alert_message,
)
from .channels import (
    LogChannel,
    HttpChannel,
    WebhookChannel,
    SlackChannel,
    PagerDutyChannel,
    TelegramChannel,
    EmailChannel,
    create_channel,
)


__all__ = [
    "NotificationChannel",
    "NotificationDispatcher",
    "format_alert_message",
    "LogChannel",
    "HttpChannel",
    "WebhookChannel",
    "SlackChannel",
    "PagerDutyChannel",
    "TelegramChannel",
    "EmailChannel",
    "create_channel",
]
