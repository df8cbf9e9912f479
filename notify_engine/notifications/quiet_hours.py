"""
Tool: Quiet Hours
Purpose: Decide whether delivery must wait and until when

Usage:
    from notify_engine.notifications.quiet_hours import (
        is_in_quiet_hours,
        should_defer,
        next_quiet_hours_end,
        get_send_schedule,
    )

Times are interpreted in the clock's own timezone (naive local by default).
"""

from __future__ import annotations

from datetime import datetime, timedelta

from notify_engine.notifications.models import NotificationPriority, NotificationRequest
from notify_engine.notifications.preferences import NotificationPreferences

# Deferral used when quiet hours are on but no end time is configured
FALLBACK_DEFERRAL = timedelta(hours=1)


def is_in_quiet_hours(prefs: NotificationPreferences, at: datetime) -> bool:
    return prefs.is_in_quiet_hours(at)


def should_defer(
    prefs: NotificationPreferences,
    request: NotificationRequest,
    now: datetime,
) -> bool:
    """
    Whether the quiet-hours gate applies to this request right now.

    The gate is active when quiet hours are enabled and the request is not an
    immediate one the user allows through.
    """
    if not prefs.quiet_hours_enabled:
        return False

    if request.priority is NotificationPriority.IMMEDIATE and prefs.quiet_hours_ignore_immediate:
        return False

    return prefs.is_in_quiet_hours(now)


def next_quiet_hours_end(prefs: NotificationPreferences, now: datetime) -> datetime:
    """
    The next instant quiet hours end.

    Takes today's end time-of-day; if that is not after `now`, rolls forward
    one day. E.g. window 22:00-07:00 at 23:30 gives 07:00 the next day, at
    02:00 gives 07:00 the same day.
    """
    end = prefs.quiet_hours_end
    if end is None:
        return now + FALLBACK_DEFERRAL

    quiet_end = now.replace(hour=end.hour, minute=end.minute, second=0, microsecond=0)
    if quiet_end <= now:
        quiet_end += timedelta(days=1)
    return quiet_end


def get_send_schedule(
    prefs: NotificationPreferences,
    start: datetime,
    hours_ahead: int = 24,
) -> list[dict]:
    """
    Hour-by-hour availability for non-immediate notifications.

    Args:
        prefs: Preferences holding the quiet-hours window
        start: First slot
        hours_ahead: How many hourly slots to list

    Returns:
        List of {"time": iso str, "can_send": bool, "quiet_hours": bool}
    """
    schedule = []
    for hour in range(hours_ahead):
        slot = start + timedelta(hours=hour)
        in_quiet = prefs.is_in_quiet_hours(slot)
        schedule.append({
            "time": slot.isoformat(),
            "can_send": not in_quiet,
            "quiet_hours": in_quiet,
        })
    return schedule


__all__ = [
    "FALLBACK_DEFERRAL",
    "is_in_quiet_hours",
    "should_defer",
    "next_quiet_hours_end",
    "get_send_schedule",
]
