"""
Tool: In-App Notification Store
Purpose: The notification list shown inside the app, with unread count

Usage:
    from notify_engine.notifications.store import InMemoryNotificationStore

    store = InMemoryNotificationStore(capacity=100)
    store.add_notification(item)
    badge = store.unread_count

The store belongs to the UI's execution context. The scheduler only touches
it from coroutines on the loop it is bound to, which serializes every
mutation; callers on other threads are handed over to that loop.
"""

from __future__ import annotations

from typing import Protocol

from notify_engine.notifications.models import NotificationItem


class NotificationStore(Protocol):
    """Capabilities the scheduler needs from the in-app store."""

    def add_notification(self, item: NotificationItem) -> None: ...

    @property
    def unread_count(self) -> int: ...


class InMemoryNotificationStore:
    """Newest-first bounded list of in-app notifications."""

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self.items: list[NotificationItem] = []

    @property
    def unread_count(self) -> int:
        return sum(1 for item in self.items if not item.is_read)

    def add_notification(self, item: NotificationItem) -> None:
        self.items.insert(0, item)
        del self.items[self.capacity:]

    def mark_as_read(self, notification_id: str) -> bool:
        for item in self.items:
            if item.id == notification_id:
                item.is_read = True
                return True
        return False

    def mark_all_as_read(self) -> None:
        for item in self.items:
            item.is_read = True

    def clear_all(self) -> None:
        self.items.clear()


__all__ = ["NotificationStore", "InMemoryNotificationStore"]
