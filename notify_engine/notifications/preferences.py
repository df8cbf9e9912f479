"""
Tool: Notification Preferences
Purpose: Per-type delivery settings, quiet hours and quotas, plus persistence

Usage:
    from notify_engine.notifications.preferences import (
        NotificationPreferences,
        SqlitePreferenceStore,
    )

    store = SqlitePreferenceStore(db_path)
    prefs = store.load()
    prefs.set_setting(NotificationType.WORKOUT_KUDOS, NotificationSetting.BATCHED)
    store.save(prefs)

Preferences are plain values; the scheduler swaps its snapshot atomically on
update and reads it fresh on every admission decision.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, time
from pathlib import Path
from typing import Any, Protocol

from notify_engine.notifications.models import NotificationSetting, NotificationType

logger = logging.getLogger(__name__)


def _default_type_settings() -> dict[NotificationType, NotificationSetting]:
    return {t: t.default_setting for t in NotificationType}


@dataclass
class NotificationPreferences:
    """User notification preferences."""

    # Master switches
    push_notifications_enabled: bool = True
    in_app_notifications_enabled: bool = True
    sound_enabled: bool = True
    badge_enabled: bool = True

    # Per-type settings
    type_settings: dict[NotificationType, NotificationSetting] = field(
        default_factory=_default_type_settings
    )

    # Display
    group_similar_notifications: bool = True
    show_previews_when_locked: bool = True

    # Quiet hours
    quiet_hours_enabled: bool = False
    quiet_hours_start: time | None = None
    quiet_hours_end: time | None = None
    quiet_hours_ignore_immediate: bool = True  # immediate priority still delivered

    # Rate limiting
    max_notifications_per_hour: int = 10
    max_notifications_per_day: int = 50
    batching_window_minutes: int = 15

    history_retention_days: int = 30

    def setting_for(self, ntype: NotificationType) -> NotificationSetting:
        return self.type_settings.get(ntype, ntype.default_setting)

    def set_setting(self, ntype: NotificationType, setting: NotificationSetting) -> None:
        self.type_settings[ntype] = setting

    def is_enabled(self, ntype: NotificationType) -> bool:
        if not self.push_notifications_enabled:
            return False
        return self.setting_for(ntype).is_enabled

    def should_play_sound(self, ntype: NotificationType) -> bool:
        return self.sound_enabled and ntype.sound_enabled and self.is_enabled(ntype)

    def should_batch(self, ntype: NotificationType) -> bool:
        return self.setting_for(ntype) in (
            NotificationSetting.BATCHED,
            NotificationSetting.DAILY,
            NotificationSetting.WEEKLY,
        )

    def is_in_quiet_hours(self, at: datetime | None = None) -> bool:
        """
        Whether `at` falls inside the quiet window.

        The window includes its start minute and excludes its end minute.
        Overnight windows (start > end, e.g. 22:00-08:00) wrap midnight.
        """
        if not self.quiet_hours_enabled:
            return False
        if self.quiet_hours_start is None or self.quiet_hours_end is None:
            return False

        at = at or datetime.now()
        current = at.hour * 60 + at.minute
        start = self.quiet_hours_start.hour * 60 + self.quiet_hours_start.minute
        end = self.quiet_hours_end.hour * 60 + self.quiet_hours_end.minute

        if start > end:
            return current >= start or current < end
        return start <= current < end

    def copy(self) -> "NotificationPreferences":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for storage."""
        return {
            "push_notifications_enabled": self.push_notifications_enabled,
            "in_app_notifications_enabled": self.in_app_notifications_enabled,
            "sound_enabled": self.sound_enabled,
            "badge_enabled": self.badge_enabled,
            "type_settings": {t.value: s.value for t, s in self.type_settings.items()},
            "group_similar_notifications": self.group_similar_notifications,
            "show_previews_when_locked": self.show_previews_when_locked,
            "quiet_hours_enabled": self.quiet_hours_enabled,
            "quiet_hours_start": self.quiet_hours_start.strftime("%H:%M") if self.quiet_hours_start else None,
            "quiet_hours_end": self.quiet_hours_end.strftime("%H:%M") if self.quiet_hours_end else None,
            "quiet_hours_ignore_immediate": self.quiet_hours_ignore_immediate,
            "max_notifications_per_hour": self.max_notifications_per_hour,
            "max_notifications_per_day": self.max_notifications_per_day,
            "batching_window_minutes": self.batching_window_minutes,
            "history_retention_days": self.history_retention_days,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NotificationPreferences":
        """Create from dict. Unknown keys and unknown notification types are ignored."""
        data = dict(data)
        prefs = cls()

        raw_settings = data.pop("type_settings", None) or {}
        for type_value, setting_value in raw_settings.items():
            try:
                prefs.type_settings[NotificationType(type_value)] = NotificationSetting(setting_value)
            except ValueError:
                logger.warning(f"Ignoring unknown notification setting {type_value}={setting_value}")

        for name in ("quiet_hours_start", "quiet_hours_end"):
            value = data.pop(name, None)
            if isinstance(value, str):
                value = time.fromisoformat(value)
            setattr(prefs, name, value)

        for key, value in data.items():
            if key in cls.__dataclass_fields__:
                setattr(prefs, key, value)

        return prefs

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    @classmethod
    def all_enabled(cls) -> "NotificationPreferences":
        prefs = cls()
        for ntype in NotificationType:
            prefs.set_setting(ntype, NotificationSetting.ENABLED)
        return prefs

    @classmethod
    def minimal(cls) -> "NotificationPreferences":
        """Only critical notifications; social activity as a daily summary."""
        prefs = cls(sound_enabled=False)
        critical = {
            NotificationType.WORKOUT_COMPLETED,
            NotificationType.LEVEL_UP,
            NotificationType.FOLLOW_REQUEST,
            NotificationType.SECURITY_ALERT,
        }
        summarized = {NotificationType.WORKOUT_KUDOS, NotificationType.NEW_FOLLOWER}
        for ntype in NotificationType:
            if ntype in critical:
                prefs.set_setting(ntype, NotificationSetting.ENABLED)
            elif ntype in summarized:
                prefs.set_setting(ntype, NotificationSetting.DAILY)
            else:
                prefs.set_setting(ntype, NotificationSetting.DISABLED)
        return prefs

    @classmethod
    def balanced(cls) -> "NotificationPreferences":
        """Batched social interactions and 22:00-08:00 quiet hours."""
        prefs = cls()
        prefs.set_setting(NotificationType.WORKOUT_KUDOS, NotificationSetting.BATCHED)
        prefs.set_setting(NotificationType.NEW_FOLLOWER, NotificationSetting.BATCHED)
        prefs.set_setting(NotificationType.LEADERBOARD_CHANGE, NotificationSetting.WEEKLY)
        prefs.quiet_hours_enabled = True
        prefs.quiet_hours_start = time(22, 0)
        prefs.quiet_hours_end = time(8, 0)
        return prefs


PRESETS = {
    "default": NotificationPreferences,
    "all_enabled": NotificationPreferences.all_enabled,
    "minimal": NotificationPreferences.minimal,
    "balanced": NotificationPreferences.balanced,
}


# =============================================================================
# Preference stores
# =============================================================================


class PreferenceStore(Protocol):
    """Persistence boundary for preferences."""

    def load(self) -> NotificationPreferences: ...

    def save(self, preferences: NotificationPreferences) -> None: ...


class InMemoryPreferenceStore:
    """Keeps a copy of the last saved preferences. Used in tests and demos."""

    def __init__(self, initial: NotificationPreferences | None = None):
        self._prefs = (initial or NotificationPreferences()).copy()
        self.save_count = 0

    def load(self) -> NotificationPreferences:
        return self._prefs.copy()

    def save(self, preferences: NotificationPreferences) -> None:
        self._prefs = preferences.copy()
        self.save_count += 1


class SqlitePreferenceStore:
    """
    Preferences persisted as a JSON document per profile key.

    Missing or unreadable rows load as defaults.
    """

    def __init__(self, db_path: Path | str, profile: str = "default"):
        self.db_path = Path(db_path)
        self.profile = profile
        self._lock = threading.Lock()

    def get_connection(self) -> sqlite3.Connection:
        """Get database connection, creating tables if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row

        conn.execute("""
            CREATE TABLE IF NOT EXISTS notification_preferences (
                profile TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()
        return conn

    def load(self) -> NotificationPreferences:
        with self._lock:
            conn = self.get_connection()
            try:
                row = conn.execute(
                    "SELECT data FROM notification_preferences WHERE profile = ?",
                    (self.profile,),
                ).fetchone()
            finally:
                conn.close()

        if not row:
            return NotificationPreferences()

        try:
            return NotificationPreferences.from_dict(json.loads(row["data"]))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Stored preferences for '{self.profile}' unreadable ({e}), using defaults")
            return NotificationPreferences()

    def save(self, preferences: NotificationPreferences) -> None:
        payload = json.dumps(preferences.to_dict())
        with self._lock:
            conn = self.get_connection()
            try:
                conn.execute(
                    """
                    INSERT INTO notification_preferences (profile, data, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(profile) DO UPDATE SET
                        data = excluded.data,
                        updated_at = excluded.updated_at
                    """,
                    (self.profile, payload, datetime.now().isoformat()),
                )
                conn.commit()
            finally:
                conn.close()


__all__ = [
    "NotificationPreferences",
    "PRESETS",
    "PreferenceStore",
    "InMemoryPreferenceStore",
    "SqlitePreferenceStore",
]
