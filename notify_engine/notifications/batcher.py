"""
Tool: Notification Batcher
Purpose: Accumulate same-type notifications and summarize them on flush

Usage:
    from notify_engine.notifications.batcher import (
        BatchAccumulator,
        create_grouped_notification,
    )

A pending batch for a type exists exactly as long as its flush timer is
armed: the first item arms the timer, the flush swaps the list out and
disarms it, and the next arrival starts a fresh batch.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from notify_engine.notifications.models import (
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    generate_id,
)

logger = logging.getLogger(__name__)

# Arms a single-shot flush timer for a type after the given delay in seconds.
# The int identifies the batch; hand it back to take() when the timer fires.
ArmTimer = Callable[[NotificationType, float, int], asyncio.TimerHandle]


@dataclass
class PendingBatch:
    """Items waiting for one type's flush timer."""

    items: list[NotificationRequest] = field(default_factory=list)
    timer: asyncio.TimerHandle | None = None
    generation: int = 0


class BatchAccumulator:
    """Per-type pending batches behind a single lock.

    The lock only guards the map; timers are armed through the supplied
    callback and flush delivery happens outside.
    """

    def __init__(self) -> None:
        self._batches: dict[NotificationType, PendingBatch] = {}
        self._lock = threading.Lock()
        self._generations = itertools.count(1)

    def add(self, request: NotificationRequest, delay_seconds: float, arm: ArmTimer) -> int:
        """
        Append a request to its type's batch, arming the flush timer if this
        is the first item.

        Returns:
            Batch size after the append
        """
        with self._lock:
            batch = self._batches.get(request.type)
            if batch is None:
                batch = PendingBatch(generation=next(self._generations))
                self._batches[request.type] = batch
            batch.items.append(request)
            if batch.timer is None:
                batch.timer = arm(request.type, delay_seconds, batch.generation)
            return len(batch.items)

    def take(self, ntype: NotificationType, generation: int | None = None) -> list[NotificationRequest]:
        """
        Swap out a type's batch and disarm its timer.

        With a generation, only the batch that generation was armed for is
        taken; a newer batch under the same type is left alone.
        """
        with self._lock:
            batch = self._batches.get(ntype)
            if batch is None:
                return []
            if generation is not None and batch.generation != generation:
                logger.debug(f"Ignoring stale flush of {ntype.value} batch {generation}")
                return []
            del self._batches[ntype]
        if batch.timer is not None:
            batch.timer.cancel()
        return batch.items

    def take_all(self) -> dict[NotificationType, list[NotificationRequest]]:
        with self._lock:
            batches, self._batches = self._batches, {}
        for batch in batches.values():
            if batch.timer is not None:
                batch.timer.cancel()
        return {ntype: batch.items for ntype, batch in batches.items()}

    def sizes(self) -> dict[str, int]:
        with self._lock:
            return {ntype.value: len(batch.items) for ntype, batch in self._batches.items()}

    def has_batch(self, ntype: NotificationType) -> bool:
        with self._lock:
            return ntype in self._batches


def create_grouped_notification(
    notifications: list[NotificationRequest],
    ntype: NotificationType,
    now: datetime,
) -> NotificationRequest:
    """
    Summarize a flushed batch as one notification.

    A single new-follower item is passed through unchanged; every other
    batch (singletons included) becomes a new medium-priority request with
    its own id, no metadata, and group id "<type>_batch_<epoch seconds>".
    """
    count = len(notifications)

    if ntype is NotificationType.NEW_FOLLOWER and count == 1:
        return notifications[0]

    if ntype is NotificationType.WORKOUT_KUDOS:
        title = f"{count} Workout Kudos"
        body = f"{count} people cheered your recent workouts!"
    elif ntype is NotificationType.NEW_FOLLOWER:
        title = f"{count} New Followers"
        body = f"{count} people started following you"
    elif ntype is NotificationType.WORKOUT_COMMENT:
        title = f"{count} New Comments"
        body = "Check out what people are saying about your workouts"
    else:
        title = f"{count} New Notifications"
        body = f"You have {count} new {ntype.display_name} notifications"

    return NotificationRequest(
        id=generate_id(),
        type=ntype,
        title=title,
        body=body,
        metadata=None,
        priority=NotificationPriority.MEDIUM,
        group_id=f"{ntype.value}_batch_{int(now.timestamp())}",
    )


__all__ = [
    "PendingBatch",
    "BatchAccumulator",
    "create_grouped_notification",
]
