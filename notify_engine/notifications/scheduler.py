"""
Tool: Notification Scheduler
Purpose: Admit, defer, batch or deliver notifications according to user preferences

Pipeline (in order, first match wins):
    1. Preference gate  - type disabled (or push off): dropped silently
    2. Quiet hours      - deferred to the end of the window, straight to the
                          transport, skipping the gates below
    3. Hourly quota     - non-immediate requests are batched once the last
                          hour's deliveries reach max_notifications_per_hour
    4. Batch preference - non-immediate requests of batched types are batched
    5. Deliver          - in-app store mirror, then push through the transport

Usage:
    from notify_engine.notifications.scheduler import NotificationScheduler

    scheduler = NotificationScheduler(transport, store, preference_store)
    await scheduler.start()
    await scheduler.schedule_notification(request)
    await scheduler.stop()

Batched notifications are delivered as one grouped notification when the
type's flush timer fires, bypassing the quota and quiet-hours checks.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Coroutine
from datetime import datetime, timedelta
from typing import Any, TypeVar

from notify_engine.errors import DeliveryFailed, ServiceUnavailable
from notify_engine.notifications.batcher import BatchAccumulator, create_grouped_notification
from notify_engine.notifications.delivery import DeliveryLog, build_transport_request
from notify_engine.notifications.models import (
    NotificationItem,
    NotificationRequest,
    NotificationType,
)
from notify_engine.notifications.preferences import NotificationPreferences, PreferenceStore
from notify_engine.notifications.quiet_hours import next_quiet_hours_end, should_defer
from notify_engine.notifications.store import NotificationStore
from notify_engine.notifications.transport import NotificationTransport

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL = timedelta(hours=1)

T = TypeVar("T")


class NotificationScheduler:
    """
    Notification admission and delivery.

    Args:
        transport: Platform transport that shows or schedules notifications
        store: In-app notification store; only touched from the scheduler's own loop
        preference_store: Loaded once at construction, saved on every update
        clock: Returns the current time. Injected for deterministic tests.
        cleanup_interval: Period of the delivery-log sweep started by start()
        delivery_log_max_entries: Upper bound on remembered deliveries
    """

    def __init__(
        self,
        transport: NotificationTransport,
        store: NotificationStore,
        preference_store: PreferenceStore,
        clock: Callable[[], datetime] = datetime.now,
        cleanup_interval: timedelta = DEFAULT_CLEANUP_INTERVAL,
        delivery_log_max_entries: int = 1000,
    ):
        self.transport = transport
        self.store = store
        self.preference_store = preference_store
        self._clock = clock
        self.cleanup_interval = cleanup_interval

        self._preferences = preference_store.load()
        self._preferences_lock = threading.Lock()

        self._delivery_log = DeliveryLog(max_entries=delivery_log_max_entries)
        self._delivery_log.ensure_capacity(self._preferences.max_notifications_per_hour)
        self._batches = BatchAccumulator()
        self._flush_tasks: set[asyncio.Task] = set()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._cleanup_task: asyncio.Task | None = None
        self._stopped = False

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    @property
    def preferences(self) -> NotificationPreferences:
        """Snapshot of the current preferences."""
        with self._preferences_lock:
            return self._preferences.copy()

    def update_preferences(self, preferences: NotificationPreferences) -> None:
        """
        Replace preferences and persist them.

        Takes effect for the next admission decision. Already-batched or
        deferred notifications are not re-evaluated.
        """
        snapshot = preferences.copy()
        with self._preferences_lock:
            self._preferences = snapshot
        self._delivery_log.ensure_capacity(snapshot.max_notifications_per_hour)
        self.preference_store.save(snapshot)
        logger.info("Notification preferences updated")

    def _current_preferences(self) -> NotificationPreferences:
        with self._preferences_lock:
            return self._preferences

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def schedule_notification(self, request: NotificationRequest) -> None:
        """
        Run a request through the admission pipeline.

        Drops, deferrals and batching return normally.

        Raises:
            ServiceUnavailable: the scheduler has been stopped
            DeliveryFailed: the transport rejected the request
        """
        self._ensure_available()
        await self._on_owner_loop(self._admit(request))

    async def _admit(self, request: NotificationRequest) -> None:
        prefs = self._current_preferences()
        now = self._clock()

        if not prefs.is_enabled(request.type):
            logger.debug(f"Notifications disabled for type {request.type.value}, dropping {request.id}")
            return

        if should_defer(prefs, request, now):
            deliver_at = next_quiet_hours_end(prefs, now)
            logger.info(f"Quiet hours: deferring {request.id} until {deliver_at.isoformat()}")
            await self._schedule_local(request.with_delivery_date(deliver_at), prefs)
            return

        if not request.is_immediate:
            if self._delivery_log.is_over_quota(now, prefs.max_notifications_per_hour):
                logger.info(
                    f"Hourly limit of {prefs.max_notifications_per_hour} reached, "
                    f"batching {request.id} ({request.type.value})"
                )
                self._add_to_batch(request, prefs)
                return

            if prefs.should_batch(request.type):
                logger.debug(f"Batching {request.id} ({request.type.value})")
                self._add_to_batch(request, prefs)
                return

        await self._deliver(request)

    # ------------------------------------------------------------------
    # Cancellation and inspection
    # ------------------------------------------------------------------

    async def cancel_notification(self, notification_id: str) -> None:
        """Remove a notification from the transport's pending and delivered sets."""
        await self._on_owner_loop(self.transport.remove_all([notification_id]))

    async def cancel_all_notifications(self) -> None:
        await self._on_owner_loop(self._remove_everything())

    async def _remove_everything(self) -> None:
        await self.transport.remove_all_pending()
        await self.transport.remove_all_delivered()

    async def get_pending_notifications(self) -> list[NotificationRequest]:
        """
        Notifications the transport still holds for later delivery.

        Translation from the transport descriptor is lossy: metadata and
        interactive actions are not carried.
        """
        pending = await self._on_owner_loop(self.transport.pending_requests())
        return [descriptor.to_notification_request() for descriptor in pending]

    def get_stats(self) -> dict[str, Any]:
        return {
            "delivered_last_hour": self._delivery_log.count_recent(self._clock()),
            "pending_batches": self._batches.sizes(),
            "flushes_in_flight": len(self._flush_tasks),
            "running": self.is_running,
        }

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    def _add_to_batch(self, request: NotificationRequest, prefs: NotificationPreferences) -> None:
        loop = self._bind_loop()
        delay = prefs.batching_window_minutes * 60

        def arm(ntype: NotificationType, seconds: float, generation: int) -> asyncio.TimerHandle:
            return loop.call_later(seconds, self._on_batch_timer, ntype, generation)

        size = self._batches.add(request, delay, arm)
        if size == 1:
            logger.debug(f"Flush for {request.type.value} armed in {delay}s")

    def _on_batch_timer(self, ntype: NotificationType, generation: int) -> None:
        if self._stopped:
            return
        task = asyncio.ensure_future(self._deliver_batch(ntype, generation))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def _deliver_batch(self, ntype: NotificationType, generation: int | None = None) -> bool:
        """
        Flush one type's batch. Failures are logged, never raised.

        A generation that no longer matches the pending batch means the batch
        it was armed for is already gone (flush_all), so nothing is flushed.
        """
        notifications = self._batches.take(ntype, generation)
        if not notifications:
            return False

        grouped = create_grouped_notification(notifications, ntype, self._clock())
        logger.info(f"Flushing {len(notifications)} batched {ntype.value} notification(s) as {grouped.id}")

        try:
            await self._deliver(grouped)
        except Exception as e:
            logger.error(f"Failed to deliver batched {ntype.value} notification: {e}")
            return False
        return True

    async def flush_all(self) -> int:
        """
        Deliver every pending batch now instead of waiting for its timer.

        Returns:
            Number of grouped notifications delivered
        """
        return await self._on_owner_loop(self._flush_batches())

    async def _flush_batches(self) -> int:
        batches = self._batches.take_all()
        delivered = 0
        now = self._clock()
        for ntype, notifications in batches.items():
            if not notifications:
                continue
            grouped = create_grouped_notification(notifications, ntype, now)
            try:
                await self._deliver(grouped)
                delivered += 1
            except Exception as e:
                logger.error(f"Failed to deliver batched {ntype.value} notification: {e}")
        return delivered

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver(self, request: NotificationRequest) -> None:
        self._delivery_log.record(self._clock())

        item = NotificationItem.from_request(request, timestamp=self._clock())
        self.store.add_notification(item)

        prefs = self._current_preferences()
        if prefs.push_notifications_enabled:
            await self._schedule_local(request, prefs)

    async def _schedule_local(self, request: NotificationRequest, prefs: NotificationPreferences) -> None:
        descriptor = build_transport_request(
            request,
            prefs,
            unread_count=self.store.unread_count,
            now=self._clock(),
        )
        try:
            await self.transport.add(descriptor)
        except Exception as e:
            logger.warning(f"Transport rejected {request.id}: {e}")
            raise DeliveryFailed(request.id, str(e)) from e

    # ------------------------------------------------------------------
    # Delivery log maintenance
    # ------------------------------------------------------------------

    def cleanup_delivery_log(self) -> int:
        """Drop delivery timestamps older than one hour."""
        removed = self._delivery_log.prune(self._clock())
        if removed:
            logger.debug(f"Delivery log cleanup removed {removed} entries")
        return removed

    async def _cleanup_loop(self) -> None:
        interval = self.cleanup_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                self.cleanup_delivery_log()
            except Exception:
                logger.exception("Delivery log cleanup failed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def start(self) -> None:
        """Bind to the running loop and start the hourly delivery-log sweep."""
        self._stopped = False
        self._loop = asyncio.get_running_loop()
        if self.is_running:
            return
        self._cleanup_task = asyncio.create_task(
            self._cleanup_loop(), name="delivery_log_cleanup"
        )
        logger.info("Notification scheduler started")

    async def stop(self) -> None:
        """
        Stop the scheduler.

        Cancels the cleanup task, every armed flush timer and any flush in
        flight. Pending batches are discarded; call flush_all() first to
        deliver them.
        """
        self._stopped = True
        await self._on_owner_loop(self._shutdown())

    async def _shutdown(self) -> None:
        discarded = self._batches.take_all()
        dropped = sum(len(items) for items in discarded.values())
        if dropped:
            logger.warning(f"Scheduler stopping with {dropped} batched notification(s) undelivered")

        tasks = list(self._flush_tasks)
        if self._cleanup_task is not None:
            tasks.append(self._cleanup_task)
            self._cleanup_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._flush_tasks.clear()

        logger.info("Notification scheduler stopped")

    def _ensure_available(self) -> None:
        if self._stopped:
            raise ServiceUnavailable("notification scheduler", "stopped")

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed() or not self._loop.is_running():
            self._loop = asyncio.get_running_loop()
        return self._loop

    async def _on_owner_loop(self, coro: Coroutine[Any, Any, T]) -> T:
        """
        Await `coro` on the loop the scheduler is bound to.

        Timers, flush tasks, the store and the transport belong to that loop.
        A caller on another thread's loop hands the work over and waits for
        the result there.
        """
        owner = self._loop
        current = asyncio.get_running_loop()
        if owner is None or owner is current or owner.is_closed() or not owner.is_running():
            return await coro
        future = asyncio.run_coroutine_threadsafe(coro, owner)
        return await asyncio.wrap_future(future)


__all__ = ["NotificationScheduler", "DEFAULT_CLEANUP_INTERVAL"]
