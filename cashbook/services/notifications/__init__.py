"""Notification services package."""

from cashbook.services.notifications.dispatcher import (
    LoggingNotificationDispatcher,
    NotificationDispatcherInterface,
    NotificationError,
)

__all__ = [
    "LoggingNotificationDispatcher",
    "NotificationDispatcherInterface",
    "NotificationError",
]
