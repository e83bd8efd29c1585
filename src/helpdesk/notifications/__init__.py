"""
Notifications Module
====================

Best-effort delivery of helpdesk notifications to log and Slack.
"""

from helpdesk.notifications.channels import (
    CircuitBreaker,
    CircuitState,
    LoggingNotificationChannel,
    NotificationChannel,
    NotificationPayload,
    SlackNotificationChannel,
)
from helpdesk.notifications.dispatcher import NotificationDispatcher

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "LoggingNotificationChannel",
    "NotificationChannel",
    "NotificationPayload",
    "SlackNotificationChannel",
    "NotificationDispatcher",
]
