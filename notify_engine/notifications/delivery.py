"""
Tool: Delivery Helpers
Purpose: The scheduler's own hourly delivery log and transport descriptor building

Usage:
    from notify_engine.notifications.delivery import DeliveryLog, build_transport_request

The delivery log is independent of the generic rate limiter: it counts every
delivery (all types together) over a rolling hour.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timedelta

from notify_engine.notifications.models import NotificationRequest, TransportRequest
from notify_engine.notifications.preferences import NotificationPreferences

DELIVERY_WINDOW = timedelta(hours=1)


class DeliveryLog:
    """Bounded, lock-protected log of delivery timestamps."""

    def __init__(self, max_entries: int = 1000, window: timedelta = DELIVERY_WINDOW):
        self.window = window
        self._entries: deque[datetime] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen

    def ensure_capacity(self, entries: int) -> None:
        """Grow the log so it can hold at least `entries` deliveries."""
        with self._lock:
            if entries > self._entries.maxlen:
                self._entries = deque(self._entries, maxlen=entries)

    def record(self, at: datetime) -> None:
        with self._lock:
            self._entries.append(at)

    def count_recent(self, now: datetime) -> int:
        """Deliveries inside the window ending at `now`; prunes older entries."""
        cutoff = now - self.window
        with self._lock:
            self._prune(cutoff)
            return len(self._entries)

    def is_over_quota(self, now: datetime, max_per_window: int) -> bool:
        # a log shorter than the quota could never reach it
        self.ensure_capacity(max_per_window)
        return self.count_recent(now) >= max_per_window

    def prune(self, now: datetime) -> int:
        """Drop entries older than the window. Returns how many were removed."""
        with self._lock:
            return self._prune(now - self.window)

    def _prune(self, cutoff: datetime) -> int:
        removed = 0
        # appended in time order, so the oldest entries sit on the left
        while self._entries and self._entries[0] < cutoff:
            self._entries.popleft()
            removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def build_transport_request(
    request: NotificationRequest,
    prefs: NotificationPreferences,
    unread_count: int,
    now: datetime,
) -> TransportRequest:
    """
    Translate a request into the transport's descriptor.

    - sound only if the type allows it and preferences allow it for the type
    - badge is the in-app unread count when badges are on
    - category identifier (for interactive actions) is the type value
    - thread identifier groups by group_id
    - a delivery date in the past, or none, fires immediately
    """
    trigger_at = None
    if request.delivery_date is not None and request.delivery_date > now:
        trigger_at = request.delivery_date

    return TransportRequest(
        identifier=request.id,
        title=request.title,
        body=request.body,
        sound=request.sound_enabled and prefs.should_play_sound(request.type),
        badge=unread_count if prefs.badge_enabled else None,
        category_identifier=request.type.value if request.actions else None,
        thread_identifier=request.group_id,
        trigger_at=trigger_at,
        user_info={
            "type": request.type.value,
            "priority": request.priority.value,
            "group_id": request.group_id,
        },
    )


__all__ = ["DELIVERY_WINDOW", "DeliveryLog", "build_transport_request"]
