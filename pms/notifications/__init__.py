"""Notification store, live connection registry and dispatcher."""

from .dispatcher import (
    NOTIFICATION_CREATED_EVENT,
    NOTIFICATIONS_SNAPSHOT_EVENT,
    DeliveryReport,
    NotificationDispatcher,
)
from .models import Notification, NotificationType, build_notification
from .registry import ConnectionRegistry, NotificationChannel
from .repository import NotificationRepository
from .service import NotificationService

__all__ = [
    "NOTIFICATION_CREATED_EVENT",
    "NOTIFICATIONS_SNAPSHOT_EVENT",
    "ConnectionRegistry",
    "DeliveryReport",
    "Notification",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationRepository",
    "NotificationService",
    "NotificationType",
    "build_notification",
]
