"""Tests for notify_engine/notifications/scheduler.py"""

import asyncio
import threading
from datetime import datetime, time

import pytest

from notify_engine.errors import DeliveryFailed, ServiceUnavailable
from notify_engine.notifications.models import (
    NotificationAction,
    NotificationPriority,
    NotificationRequest,
    NotificationSetting,
    NotificationType,
)
from notify_engine.notifications.preferences import (
    InMemoryPreferenceStore,
    NotificationPreferences,
)
from notify_engine.notifications.scheduler import NotificationScheduler
from notify_engine.notifications.store import InMemoryNotificationStore
from notify_engine.notifications.transport import TransportError


def make_request(ntype=NotificationType.WORKOUT_COMPLETED, **kwargs) -> NotificationRequest:
    kwargs.setdefault("title", "Workout Complete! 💪")
    kwargs.setdefault("body", "Nice work")
    return NotificationRequest.create(type=ntype, **kwargs)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


class ThreadRecordingStore(InMemoryNotificationStore):
    """In-app store that remembers which thread each write came from."""

    def __init__(self):
        super().__init__()
        self.writer_threads: set[int] = set()

    def add_notification(self, item) -> None:
        self.writer_threads.add(threading.get_ident())
        super().add_notification(item)


class TestPreferenceGate:
    @pytest.mark.asyncio
    async def test_disabled_type_dropped(self, make_scheduler, transport, store):
        prefs = NotificationPreferences.all_enabled()
        prefs.set_setting(NotificationType.WORKOUT_COMPLETED, NotificationSetting.DISABLED)
        scheduler = make_scheduler(prefs)

        await scheduler.schedule_notification(make_request())

        assert transport.added == []
        assert store.items == []

    @pytest.mark.asyncio
    async def test_push_disabled_drops_everything(self, make_scheduler, transport, store):
        scheduler = make_scheduler(push_notifications_enabled=False)

        await scheduler.schedule_notification(
            make_request(NotificationType.SECURITY_ALERT, title="Alert", body="New login")
        )

        assert transport.added == []
        assert store.items == []


class TestDelivery:
    @pytest.mark.asyncio
    async def test_delivers_to_store_and_transport(self, scheduler, transport, store):
        request = make_request(actions=[NotificationAction.VIEW], group_id="g1")

        await scheduler.schedule_notification(request)

        assert store.items[0].id == request.id
        descriptor = transport.delivered[request.id]
        assert descriptor.title == request.title
        assert descriptor.trigger_at is None
        assert descriptor.category_identifier == "workout_completed"
        assert descriptor.thread_identifier == "g1"
        assert descriptor.sound is True  # workout_completed plays sound

    @pytest.mark.asyncio
    async def test_badge_reflects_unread_count(self, scheduler, transport):
        first = make_request()
        second = make_request()

        await scheduler.schedule_notification(first)
        await scheduler.schedule_notification(second)

        assert transport.delivered[first.id].badge == 1
        assert transport.delivered[second.id].badge == 2

    @pytest.mark.asyncio
    async def test_no_badge_or_sound_when_disabled(self, make_scheduler, transport):
        scheduler = make_scheduler(badge_enabled=False, sound_enabled=False)
        request = make_request()

        await scheduler.schedule_notification(request)

        descriptor = transport.delivered[request.id]
        assert descriptor.badge is None
        assert descriptor.sound is False

    @pytest.mark.asyncio
    async def test_transport_failure_raises_delivery_failed(self, scheduler, transport, store):
        transport.fail_with = TransportError("platform refused")
        request = make_request()

        with pytest.raises(DeliveryFailed) as exc_info:
            await scheduler.schedule_notification(request)

        assert exc_info.value.notification_id == request.id
        # in-app copy is kept even though push failed
        assert store.items[0].id == request.id


class TestQuietHours:
    @pytest.mark.asyncio
    async def test_defers_until_window_end_next_day(
        self, make_scheduler, overnight_quiet_hours, clock, transport, store
    ):
        clock.set(datetime(2024, 6, 3, 23, 30))
        scheduler = make_scheduler(overnight_quiet_hours)
        request = make_request()

        await scheduler.schedule_notification(request)

        pending = transport.pending[request.id]
        assert pending.trigger_at == datetime(2024, 6, 4, 7, 0)
        # deferral goes straight to the transport
        assert store.items == []
        assert scheduler.get_stats()["delivered_last_hour"] == 0

    @pytest.mark.asyncio
    async def test_early_morning_defers_to_same_day(
        self, make_scheduler, overnight_quiet_hours, clock, transport
    ):
        clock.set(datetime(2024, 6, 4, 2, 0))
        scheduler = make_scheduler(overnight_quiet_hours)
        request = make_request()

        await scheduler.schedule_notification(request)

        assert transport.pending[request.id].trigger_at == datetime(2024, 6, 4, 7, 0)

    @pytest.mark.asyncio
    async def test_immediate_bypasses_quiet_hours(
        self, make_scheduler, overnight_quiet_hours, clock, transport
    ):
        clock.set(datetime(2024, 6, 3, 23, 30))
        scheduler = make_scheduler(overnight_quiet_hours)
        request = make_request(NotificationType.SECURITY_ALERT, title="Alert", body="New login")

        await scheduler.schedule_notification(request)

        assert request.id in transport.delivered

    @pytest.mark.asyncio
    async def test_immediate_deferred_when_not_ignored(
        self, make_scheduler, overnight_quiet_hours, clock, transport
    ):
        clock.set(datetime(2024, 6, 3, 23, 30))
        overnight_quiet_hours.quiet_hours_ignore_immediate = False
        scheduler = make_scheduler(overnight_quiet_hours)
        request = make_request(NotificationType.SECURITY_ALERT, title="Alert", body="New login")

        await scheduler.schedule_notification(request)

        assert request.id in transport.pending

    @pytest.mark.asyncio
    async def test_outside_window_delivers(self, make_scheduler, overnight_quiet_hours, transport):
        scheduler = make_scheduler(overnight_quiet_hours)  # clock at 12:00
        request = make_request()

        await scheduler.schedule_notification(request)

        assert request.id in transport.delivered

    @pytest.mark.asyncio
    async def test_missing_end_time_disables_window(self, make_scheduler, transport):
        prefs = NotificationPreferences.all_enabled()
        prefs.quiet_hours_enabled = True
        prefs.quiet_hours_start = time(11, 0)
        prefs.quiet_hours_end = None
        scheduler = make_scheduler(prefs)
        request = make_request()

        await scheduler.schedule_notification(request)

        # without an end time the window is never active
        assert request.id in transport.delivered


class TestRateGate:
    @pytest.mark.asyncio
    async def test_fourth_in_hour_is_batched(self, make_scheduler, transport):
        scheduler = make_scheduler(max_notifications_per_hour=3)

        for _ in range(4):
            await scheduler.schedule_notification(make_request())

        assert len(transport.added) == 3
        assert scheduler.get_stats()["pending_batches"] == {"workout_completed": 1}
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_immediate_bypasses_quota(self, make_scheduler, transport):
        scheduler = make_scheduler(max_notifications_per_hour=1)
        await scheduler.schedule_notification(make_request())

        alert = make_request(NotificationType.SECURITY_ALERT, title="Alert", body="New login")
        await scheduler.schedule_notification(alert)

        assert alert.id in transport.delivered

    @pytest.mark.asyncio
    async def test_quota_recovers_after_an_hour(self, make_scheduler, clock, transport):
        scheduler = make_scheduler(max_notifications_per_hour=1)
        await scheduler.schedule_notification(make_request())

        clock.advance(minutes=61)
        request = make_request()
        await scheduler.schedule_notification(request)

        assert request.id in transport.delivered

    @pytest.mark.asyncio
    async def test_quota_above_log_capacity_still_enforced(self, transport, store, clock):
        prefs = NotificationPreferences.all_enabled()
        prefs.max_notifications_per_hour = 5
        scheduler = NotificationScheduler(
            transport=transport,
            store=store,
            preference_store=InMemoryPreferenceStore(prefs),
            clock=clock,
            delivery_log_max_entries=3,
        )

        for _ in range(6):
            await scheduler.schedule_notification(make_request())

        assert len(transport.added) == 5
        assert scheduler.get_stats()["pending_batches"] == {"workout_completed": 1}
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_raised_quota_grows_delivery_log(self, transport, store, clock):
        prefs = NotificationPreferences.all_enabled()
        prefs.max_notifications_per_hour = 2
        scheduler = NotificationScheduler(
            transport=transport,
            store=store,
            preference_store=InMemoryPreferenceStore(prefs),
            clock=clock,
            delivery_log_max_entries=2,
        )
        prefs.max_notifications_per_hour = 4
        scheduler.update_preferences(prefs)

        for _ in range(5):
            await scheduler.schedule_notification(make_request())

        assert len(transport.added) == 4
        assert scheduler.get_stats()["delivered_last_hour"] == 4
        await scheduler.stop()


class TestBatching:
    @pytest.mark.asyncio
    async def test_batched_type_waits_for_flush(self, make_scheduler, transport):
        prefs = NotificationPreferences()  # kudos are batched by default
        scheduler = make_scheduler(prefs)

        await scheduler.schedule_notification(
            make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body="x")
        )

        assert transport.added == []
        assert scheduler.get_stats()["pending_batches"] == {"workout_kudos": 1}
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_flush_timer_delivers_grouped_notification(self, make_scheduler, transport, store):
        prefs = NotificationPreferences(batching_window_minutes=0)
        scheduler = make_scheduler(prefs)

        for _ in range(3):
            await scheduler.schedule_notification(
                make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body="x")
            )

        await wait_until(lambda: len(transport.added) == 1)

        grouped = transport.added[0]
        assert grouped.title == "3 Workout Kudos"
        assert grouped.body == "3 people cheered your recent workouts!"
        assert store.items[0].title == "3 Workout Kudos"
        assert scheduler.get_stats()["pending_batches"] == {}

    @pytest.mark.asyncio
    async def test_single_follower_passes_through(self, make_scheduler, transport):
        prefs = NotificationPreferences.balanced()
        prefs.quiet_hours_enabled = False
        scheduler = make_scheduler(prefs)
        request = make_request(NotificationType.NEW_FOLLOWER, title="New Follower! 👥", body="Sam followed you")

        await scheduler.schedule_notification(request)
        delivered = await scheduler.flush_all()

        assert delivered == 1
        assert transport.added[0].identifier == request.id
        assert transport.added[0].title == "New Follower! 👥"

    @pytest.mark.asyncio
    async def test_two_followers_grouped(self, make_scheduler, transport):
        prefs = NotificationPreferences.balanced()
        prefs.quiet_hours_enabled = False
        scheduler = make_scheduler(prefs)

        for name in ("Sam", "Alex"):
            await scheduler.schedule_notification(
                make_request(NotificationType.NEW_FOLLOWER, title="New Follower! 👥", body=f"{name} followed you")
            )
        await scheduler.flush_all()

        assert len(transport.added) == 1
        assert transport.added[0].title == "2 New Followers"
        assert transport.added[0].user_info["priority"] == NotificationPriority.MEDIUM.value

    @pytest.mark.asyncio
    async def test_flush_bypasses_quota(self, make_scheduler, transport):
        scheduler = make_scheduler(max_notifications_per_hour=1)
        await scheduler.schedule_notification(make_request())
        await scheduler.schedule_notification(make_request())
        await scheduler.schedule_notification(make_request())

        await scheduler.flush_all()

        assert len(transport.added) == 2
        assert transport.added[1].title == "2 New Notifications"

    @pytest.mark.asyncio
    async def test_flush_failure_is_swallowed(self, make_scheduler, transport):
        prefs = NotificationPreferences(batching_window_minutes=0)
        scheduler = make_scheduler(prefs)
        transport.fail_with = TransportError("offline")

        await scheduler.schedule_notification(
            make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body="x")
        )
        await wait_until(lambda: scheduler.get_stats()["pending_batches"] == {})
        await wait_until(lambda: scheduler.get_stats()["flushes_in_flight"] == 0)

        assert transport.added == []

    @pytest.mark.asyncio
    async def test_immediate_never_batched(self, make_scheduler, transport):
        prefs = NotificationPreferences()
        prefs.set_setting(NotificationType.FOLLOW_REQUEST, NotificationSetting.BATCHED)
        scheduler = make_scheduler(prefs)
        request = make_request(NotificationType.FOLLOW_REQUEST, title="Follow Request", body="x")

        await scheduler.schedule_notification(request)

        assert request.id in transport.delivered

    @pytest.mark.asyncio
    async def test_stale_flush_after_flush_all_leaves_new_batch(self, make_scheduler, transport):
        scheduler = make_scheduler(NotificationPreferences())
        await scheduler.schedule_notification(make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body="x"))
        await scheduler.flush_all()
        await scheduler.schedule_notification(make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body="y"))

        # the first batch's timer fired before flush_all() took it
        assert await scheduler._deliver_batch(NotificationType.WORKOUT_KUDOS, 1) is False

        assert len(transport.added) == 1
        assert scheduler.get_stats()["pending_batches"] == {"workout_kudos": 1}
        assert await scheduler._deliver_batch(NotificationType.WORKOUT_KUDOS, 2) is True
        await scheduler.stop()


class TestGateCombinations:
    @pytest.mark.asyncio
    async def test_immediate_passes_quiet_hours_quota_and_batching_together(
        self, make_scheduler, overnight_quiet_hours, clock, transport, store
    ):
        clock.set(datetime(2024, 6, 3, 21, 50))
        overnight_quiet_hours.max_notifications_per_hour = 1
        overnight_quiet_hours.set_setting(NotificationType.FOLLOW_REQUEST, NotificationSetting.BATCHED)
        scheduler = make_scheduler(overnight_quiet_hours)
        await scheduler.schedule_notification(make_request())

        clock.set(datetime(2024, 6, 3, 22, 10))
        assert overnight_quiet_hours.quiet_hours_ignore_immediate
        assert overnight_quiet_hours.is_in_quiet_hours(clock())
        assert scheduler.get_stats()["delivered_last_hour"] == 1
        request = make_request(NotificationType.FOLLOW_REQUEST, title="Follow Request", body="Sam wants to follow")

        await scheduler.schedule_notification(request)

        assert transport.delivered[request.id].trigger_at is None
        assert store.items[0].id == request.id
        assert scheduler.get_stats()["pending_batches"] == {}
        assert scheduler.get_stats()["delivered_last_hour"] == 2


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_removes_pending(self, make_scheduler, overnight_quiet_hours, clock, transport):
        clock.set(datetime(2024, 6, 3, 23, 30))
        scheduler = make_scheduler(overnight_quiet_hours)
        request = make_request()
        await scheduler.schedule_notification(request)

        await scheduler.cancel_notification(request.id)

        assert await scheduler.get_pending_notifications() == []

    @pytest.mark.asyncio
    async def test_cancel_unknown_id_is_noop(self, scheduler):
        await scheduler.cancel_notification("notif_missing")
        await scheduler.cancel_notification("notif_missing")

    @pytest.mark.asyncio
    async def test_cancel_all(self, make_scheduler, overnight_quiet_hours, clock, transport):
        clock.set(datetime(2024, 6, 3, 23, 30))
        scheduler = make_scheduler(overnight_quiet_hours)
        await scheduler.schedule_notification(make_request())
        await scheduler.schedule_notification(
            make_request(NotificationType.SECURITY_ALERT, title="Alert", body="x")
        )

        await scheduler.cancel_all_notifications()

        assert transport.pending == {}
        assert transport.delivered == {}

    @pytest.mark.asyncio
    async def test_pending_translation_is_lossy(self, make_scheduler, overnight_quiet_hours, clock):
        clock.set(datetime(2024, 6, 3, 23, 30))
        scheduler = make_scheduler(overnight_quiet_hours)
        request = make_request(metadata={"workout_id": "w1"}, actions=[NotificationAction.VIEW])
        await scheduler.schedule_notification(request)

        [pending] = await scheduler.get_pending_notifications()

        assert pending.id == request.id
        assert pending.type is NotificationType.WORKOUT_COMPLETED
        assert pending.priority is request.priority
        assert pending.delivery_date == datetime(2024, 6, 4, 7, 0)
        assert pending.metadata is None
        assert pending.actions == frozenset()


class TestPreferencesUpdate:
    @pytest.mark.asyncio
    async def test_update_persists_and_applies(self, transport, store, clock):
        preference_store = InMemoryPreferenceStore(NotificationPreferences.all_enabled())
        scheduler = NotificationScheduler(transport, store, preference_store, clock=clock)

        updated = scheduler.preferences
        updated.set_setting(NotificationType.WORKOUT_COMPLETED, NotificationSetting.DISABLED)
        scheduler.update_preferences(updated)

        await scheduler.schedule_notification(make_request())

        assert transport.added == []
        assert preference_store.save_count == 1
        assert preference_store.load().setting_for(NotificationType.WORKOUT_COMPLETED) is NotificationSetting.DISABLED

    def test_preferences_property_is_a_copy(self, scheduler):
        snapshot = scheduler.preferences
        snapshot.push_notifications_enabled = False
        assert scheduler.preferences.push_notifications_enabled is True

    @pytest.mark.asyncio
    async def test_update_does_not_touch_existing_batches(self, make_scheduler):
        scheduler = make_scheduler(NotificationPreferences())
        await scheduler.schedule_notification(
            make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body="x")
        )

        scheduler.update_preferences(NotificationPreferences.all_enabled())

        assert scheduler.get_stats()["pending_batches"] == {"workout_kudos": 1}
        await scheduler.stop()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_schedule_after_stop_raises(self, scheduler):
        await scheduler.start()
        await scheduler.stop()

        with pytest.raises(ServiceUnavailable):
            await scheduler.schedule_notification(make_request())

    @pytest.mark.asyncio
    async def test_stop_discards_pending_batches(self, make_scheduler, transport):
        scheduler = make_scheduler(NotificationPreferences())
        await scheduler.start()
        await scheduler.schedule_notification(
            make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body="x")
        )

        await scheduler.stop()

        assert scheduler.get_stats()["pending_batches"] == {}
        assert not scheduler.is_running
        assert transport.added == []

    @pytest.mark.asyncio
    async def test_cleanup_delivery_log(self, scheduler, clock):
        await scheduler.schedule_notification(make_request())
        await scheduler.schedule_notification(make_request())

        clock.advance(hours=2)

        assert scheduler.cleanup_delivery_log() == 2
        assert scheduler.get_stats()["delivered_last_hour"] == 0

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, scheduler):
        await scheduler.start()
        await scheduler.start()
        assert scheduler.is_running
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, scheduler, transport):
        await scheduler.start()
        await scheduler.stop()
        await scheduler.start()

        request = make_request()
        await scheduler.schedule_notification(request)

        assert request.id in transport.delivered
        await scheduler.stop()


class TestCrossThreadCallers:
    @pytest.mark.asyncio
    async def test_caller_loop_hands_work_to_owner_loop(self, transport, clock):
        owner = asyncio.new_event_loop()
        # debug mode makes call_later from a foreign thread raise
        owner.set_debug(True)
        owner_thread = threading.Thread(target=owner.run_forever, daemon=True)
        owner_thread.start()

        store = ThreadRecordingStore()
        scheduler = NotificationScheduler(
            transport=transport,
            store=store,
            preference_store=InMemoryPreferenceStore(NotificationPreferences(batching_window_minutes=0)),
            clock=clock,
        )
        try:
            await asyncio.wrap_future(asyncio.run_coroutine_threadsafe(scheduler.start(), owner))

            kudos = make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body="x")
            direct = make_request()
            await scheduler.schedule_notification(kudos)
            await scheduler.schedule_notification(direct)
            await wait_until(lambda: len(store.items) == 2, timeout=5.0)

            assert store.writer_threads == {owner_thread.ident}
            assert direct.id in transport.delivered
            assert {r.title for r in transport.added} == {"1 Workout Kudos", direct.title}

            await scheduler.stop()
            assert not scheduler.is_running
        finally:
            owner.call_soon_threadsafe(owner.stop)
            owner_thread.join(timeout=5)
            owner.close()

    @pytest.mark.asyncio
    async def test_flush_and_pending_from_caller_loop(self, transport, clock):
        owner = asyncio.new_event_loop()
        owner.set_debug(True)
        owner_thread = threading.Thread(target=owner.run_forever, daemon=True)
        owner_thread.start()

        store = ThreadRecordingStore()
        scheduler = NotificationScheduler(
            transport=transport,
            store=store,
            preference_store=InMemoryPreferenceStore(NotificationPreferences()),
            clock=clock,
        )
        try:
            await asyncio.wrap_future(asyncio.run_coroutine_threadsafe(scheduler.start(), owner))
            for body in ("a", "b"):
                await scheduler.schedule_notification(
                    make_request(NotificationType.WORKOUT_KUDOS, title="Kudos", body=body)
                )

            assert await scheduler.flush_all() == 1
            assert await scheduler.get_pending_notifications() == []
            assert store.writer_threads == {owner_thread.ident}
            assert transport.added[0].title == "2 Workout Kudos"

            await scheduler.stop()
        finally:
            owner.call_soon_threadsafe(owner.stop)
            owner_thread.join(timeout=5)
            owner.close()
