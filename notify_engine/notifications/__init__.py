"""Notification admission, batching, quiet hours and delivery."""

from notify_engine.notifications.batcher import BatchAccumulator, create_grouped_notification
from notify_engine.notifications.models import (
    NotificationAction,
    NotificationCategory,
    NotificationItem,
    NotificationPriority,
    NotificationRequest,
    NotificationSetting,
    NotificationType,
    TransportRequest,
)
from notify_engine.notifications.preferences import (
    PRESETS,
    InMemoryPreferenceStore,
    NotificationPreferences,
    PreferenceStore,
    SqlitePreferenceStore,
)
from notify_engine.notifications.scheduler import NotificationScheduler
from notify_engine.notifications.store import InMemoryNotificationStore, NotificationStore
from notify_engine.notifications.transport import InMemoryTransport, NotificationTransport

__all__ = [
    "BatchAccumulator",
    "create_grouped_notification",
    "NotificationAction",
    "NotificationCategory",
    "NotificationItem",
    "NotificationPriority",
    "NotificationRequest",
    "NotificationSetting",
    "NotificationType",
    "TransportRequest",
    "PRESETS",
    "InMemoryPreferenceStore",
    "NotificationPreferences",
    "PreferenceStore",
    "SqlitePreferenceStore",
    "NotificationScheduler",
    "InMemoryNotificationStore",
    "NotificationStore",
    "InMemoryTransport",
    "NotificationTransport",
]
