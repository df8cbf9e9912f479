"""
Tool: Notification Models
Purpose: Data structures for notification scheduling and delivery

Usage:
    from notify_engine.notifications.models import (
        NotificationType,
        NotificationPriority,
        NotificationSetting,
        NotificationAction,
        NotificationRequest,
        NotificationItem,
        TransportRequest,
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class NotificationCategory(str, Enum):
    """Coarse grouping of notification types."""

    WORKOUT = "workout"
    SOCIAL = "social"
    SYSTEM = "system"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class NotificationPriority(int, Enum):
    """
    Notification priority levels.

    IMMEDIATE bypasses the hourly quota and batching, and quiet hours unless
    the user opted out of that.
    """

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    IMMEDIATE = 3


class NotificationSetting(str, Enum):
    """Per-type delivery preference."""

    DISABLED = "disabled"    # Never notify
    ENABLED = "enabled"      # Notify immediately
    BATCHED = "batched"      # Group notifications
    IMMEDIATE = "immediate"  # Always immediate, ignore batching
    DAILY = "daily"          # Once per day summary
    WEEKLY = "weekly"        # Once per week summary

    @property
    def is_enabled(self) -> bool:
        return self is not NotificationSetting.DISABLED

    @property
    def display_name(self) -> str:
        return _SETTING_NAMES[self]


_SETTING_NAMES = {
    NotificationSetting.DISABLED: "Off",
    NotificationSetting.ENABLED: "On",
    NotificationSetting.BATCHED: "Grouped",
    NotificationSetting.IMMEDIATE: "Instant",
    NotificationSetting.DAILY: "Daily Summary",
    NotificationSetting.WEEKLY: "Weekly Summary",
}


class NotificationAction(str, Enum):
    """Interactive actions attachable to a notification."""

    VIEW = "view"
    KUDOS = "kudos"
    REPLY = "reply"
    ACCEPT = "accept"
    DECLINE = "decline"
    DISMISS = "dismiss"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class _TypeInfo:
    category: NotificationCategory
    default_priority: NotificationPriority
    default_setting: NotificationSetting
    sound_enabled: bool
    display_name: str
    icon: str


class NotificationType(str, Enum):
    """All notification types the app emits."""

    # Workout notifications
    WORKOUT_COMPLETED = "workout_completed"
    XP_MILESTONE = "xp_milestone"
    LEVEL_UP = "level_up"
    STREAK_MAINTAINED = "streak_maintained"
    STREAK_AT_RISK = "streak_at_risk"
    UNLOCK_ACHIEVED = "unlock_achieved"

    # Social notifications
    NEW_FOLLOWER = "new_follower"
    FOLLOW_REQUEST = "follow_request"
    FOLLOW_ACCEPTED = "follow_accepted"
    WORKOUT_KUDOS = "workout_kudos"
    WORKOUT_COMMENT = "workout_comment"
    MENTIONED = "mentioned"
    CHALLENGE_INVITE = "challenge_invite"
    CHALLENGE_COMPLETED = "challenge_completed"
    LEADERBOARD_CHANGE = "leaderboard_change"

    # System notifications
    SECURITY_ALERT = "security_alert"
    PRIVACY_UPDATE = "privacy_update"
    FEATURE_ANNOUNCEMENT = "feature_announcement"
    MAINTENANCE_NOTICE = "maintenance_notice"

    @property
    def _info(self) -> _TypeInfo:
        return _TYPE_INFO[self]

    @property
    def category(self) -> NotificationCategory:
        return self._info.category

    @property
    def default_priority(self) -> NotificationPriority:
        return self._info.default_priority

    @property
    def default_setting(self) -> NotificationSetting:
        return self._info.default_setting

    @property
    def sound_enabled(self) -> bool:
        return self._info.sound_enabled

    @property
    def display_name(self) -> str:
        return self._info.display_name

    @property
    def icon(self) -> str:
        return self._info.icon


_W, _S, _Y = NotificationCategory.WORKOUT, NotificationCategory.SOCIAL, NotificationCategory.SYSTEM
_P = NotificationPriority
_D = NotificationSetting

_TYPE_INFO: dict[NotificationType, _TypeInfo] = {
    NotificationType.WORKOUT_COMPLETED: _TypeInfo(_W, _P.HIGH, _D.ENABLED, True, "Workout Completed", "🏃"),
    NotificationType.XP_MILESTONE: _TypeInfo(_W, _P.HIGH, _D.ENABLED, True, "XP Milestone", "🎉"),
    NotificationType.LEVEL_UP: _TypeInfo(_W, _P.HIGH, _D.ENABLED, True, "Level Up", "🎉"),
    NotificationType.STREAK_MAINTAINED: _TypeInfo(_W, _P.MEDIUM, _D.ENABLED, False, "Streak Maintained", "🔥"),
    NotificationType.STREAK_AT_RISK: _TypeInfo(_W, _P.LOW, _D.ENABLED, False, "Streak at Risk", "⚠️"),
    NotificationType.UNLOCK_ACHIEVED: _TypeInfo(_W, _P.MEDIUM, _D.ENABLED, False, "New Unlock", "🏆"),
    NotificationType.NEW_FOLLOWER: _TypeInfo(_S, _P.MEDIUM, _D.ENABLED, False, "New Follower", "👥"),
    NotificationType.FOLLOW_REQUEST: _TypeInfo(_S, _P.IMMEDIATE, _D.ENABLED, True, "Follow Request", "👥"),
    NotificationType.FOLLOW_ACCEPTED: _TypeInfo(_S, _P.HIGH, _D.ENABLED, False, "Follow Accepted", "👥"),
    NotificationType.WORKOUT_KUDOS: _TypeInfo(_S, _P.LOW, _D.BATCHED, False, "Workout Kudos", "❤️"),
    NotificationType.WORKOUT_COMMENT: _TypeInfo(_S, _P.MEDIUM, _D.IMMEDIATE, False, "Workout Comment", "💬"),
    NotificationType.MENTIONED: _TypeInfo(_S, _P.IMMEDIATE, _D.IMMEDIATE, True, "Mentioned", "@"),
    NotificationType.CHALLENGE_INVITE: _TypeInfo(_S, _P.HIGH, _D.IMMEDIATE, True, "Challenge Invite", "⚔️"),
    NotificationType.CHALLENGE_COMPLETED: _TypeInfo(_S, _P.LOW, _D.ENABLED, False, "Challenge Completed", "⚔️"),
    NotificationType.LEADERBOARD_CHANGE: _TypeInfo(_S, _P.LOW, _D.WEEKLY, False, "Leaderboard Update", "📊"),
    NotificationType.SECURITY_ALERT: _TypeInfo(_Y, _P.IMMEDIATE, _D.IMMEDIATE, True, "Security Alert", "🔐"),
    NotificationType.PRIVACY_UPDATE: _TypeInfo(_Y, _P.LOW, _D.ENABLED, False, "Privacy Update", "🔒"),
    NotificationType.FEATURE_ANNOUNCEMENT: _TypeInfo(_Y, _P.LOW, _D.ENABLED, False, "New Feature", "✨"),
    NotificationType.MAINTENANCE_NOTICE: _TypeInfo(_Y, _P.LOW, _D.ENABLED, False, "Maintenance", "🔧"),
}


def generate_id() -> str:
    """Generate a new notification ID."""
    return f"notif_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class NotificationRequest:
    """
    A notification awaiting an admission decision.

    Immutable. Deferral derives a new value with the same id; grouping
    synthesizes a new request with its own id.
    """

    id: str
    type: NotificationType
    title: str
    body: str
    metadata: dict[str, Any] | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    actions: frozenset[NotificationAction] = frozenset()
    group_id: str | None = None
    delivery_date: datetime | None = None

    @classmethod
    def create(
        cls,
        type: NotificationType,
        title: str,
        body: str,
        metadata: dict[str, Any] | None = None,
        priority: NotificationPriority | None = None,
        actions: frozenset[NotificationAction] | set[NotificationAction] | list[NotificationAction] = (),
        group_id: str | None = None,
        delivery_date: datetime | None = None,
    ) -> "NotificationRequest":
        """Build a request with a fresh id and the type's default priority."""
        return cls(
            id=generate_id(),
            type=type,
            title=title,
            body=body,
            metadata=metadata,
            priority=priority if priority is not None else type.default_priority,
            actions=frozenset(actions),
            group_id=group_id,
            delivery_date=delivery_date,
        )

    @property
    def sound_enabled(self) -> bool:
        return self.type.sound_enabled

    @property
    def is_immediate(self) -> bool:
        return self.priority is NotificationPriority.IMMEDIATE

    def with_delivery_date(self, delivery_date: datetime) -> "NotificationRequest":
        """Same notification (same id), delivered at a later instant."""
        return replace(self, delivery_date=delivery_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "body": self.body,
            "metadata": self.metadata,
            "priority": self.priority.value,
            "actions": sorted(a.value for a in self.actions),
            "group_id": self.group_id,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
        }


@dataclass
class NotificationItem:
    """
    In-app notification record, mirrored from every delivered request so the
    user sees it even when push is disabled or fails.
    """

    id: str
    type: NotificationType
    title: str
    body: str
    metadata: dict[str, Any] | None = None
    actions: frozenset[NotificationAction] = frozenset()
    group_id: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    is_read: bool = False

    @classmethod
    def from_request(cls, request: NotificationRequest, timestamp: datetime) -> "NotificationItem":
        return cls(
            id=request.id,
            type=request.type,
            title=request.title,
            body=request.body,
            metadata=request.metadata,
            actions=request.actions,
            group_id=request.group_id,
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class TransportRequest:
    """
    Descriptor handed to the platform transport.

    Only the fields the transport understands survive; metadata and
    interactive actions do not round-trip.
    """

    identifier: str
    title: str
    body: str
    sound: bool = False
    badge: int | None = None
    category_identifier: str | None = None
    thread_identifier: str | None = None
    trigger_at: datetime | None = None  # None = fire immediately
    user_info: dict[str, Any] = field(default_factory=dict)

    @property
    def fires_immediately(self) -> bool:
        return self.trigger_at is None

    def to_notification_request(self) -> NotificationRequest:
        """Best-effort translation back into the request shape."""
        info = self.user_info
        ntype = NotificationType(info.get("type", NotificationType.FEATURE_ANNOUNCEMENT.value))
        priority = info.get("priority")
        return NotificationRequest(
            id=self.identifier,
            type=ntype,
            title=self.title,
            body=self.body,
            priority=NotificationPriority(priority) if priority is not None else ntype.default_priority,
            group_id=self.thread_identifier,
            delivery_date=self.trigger_at,
        )


__all__ = [
    "NotificationCategory",
    "NotificationPriority",
    "NotificationSetting",
    "NotificationAction",
    "NotificationType",
    "NotificationRequest",
    "NotificationItem",
    "TransportRequest",
    "generate_id",
]
