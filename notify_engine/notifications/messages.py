"""
Tool: Notification Messages
Purpose: Message text and ready-made requests for common app events

Usage:
    from notify_engine.notifications.messages import MessageProvider

    messages = MessageProvider()
    request = messages.workout_completed_request(
        workout_type="Running", duration_minutes=32, calories=310, xp_earned=45,
    )
    await scheduler.schedule_notification(request)

The scheduler never consults this module; callers build requests with it.
Pass a seeded random.Random to make template choice deterministic.
"""

from __future__ import annotations

import random

from notify_engine.notifications.models import (
    NotificationAction,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
)

COMMENT_PREVIEW_LENGTH = 50


def truncate_preview(text: str, limit: int = COMMENT_PREVIEW_LENGTH) -> str:
    """Shorten text for a notification body, ending in '...' when cut."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class MessageProvider:
    """Varied, upbeat copy for workout and social notifications."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Message text
    # ------------------------------------------------------------------

    def workout_end_message(self, workout_type: str, duration: int, calories: int, xp_earned: int) -> str:
        messages = [
            f"Great {workout_type.lower()} session! {duration} minutes, {calories} calories burned, "
            f"and {xp_earned} XP earned! 💪",
            f"Crushed it! {xp_earned} XP added to your total. Keep pushing! 🔥",
            f"{workout_type} complete! You're {xp_earned} XP closer to your next level!",
            f"Another one in the books! {duration} minutes of pure dedication earned you {xp_earned} XP!",
            f"Workout warrior! {calories} calories torched and {xp_earned} XP collected! 🏆",
        ]
        return self._rng.choice(messages)

    def streak_message(self, streak: int, is_at_risk: bool) -> str:
        if is_at_risk:
            messages = [
                f"Your {streak}-day streak needs you! Don't let it slip away!",
                f"{streak} days of consistency on the line. You've got this!",
                f"Quick workout to save your {streak}-day streak? Future you will thank you!",
                f"Streak alert! Keep your {streak}-day run alive with a workout today!",
            ]
        else:
            messages = [
                f"{streak} days strong! You're unstoppable! 🔥",
                f"Streak game on point! {streak} days and counting!",
                f"{streak}-day streak achieved! Consistency is your superpower!",
                f"Day {streak} complete! You're building something special here!",
            ]
        return self._rng.choice(messages)

    def xp_milestone_message(self, level: int, title: str) -> str:
        messages = [
            f"Level {level} unlocked! You're now a {title}! 🎉",
            f"Congrats, {title}! Level {level} looks good on you!",
            f"Achievement unlocked: {title} (Level {level})! Keep climbing!",
            f"Welcome to Level {level}, {title}! The journey continues!",
        ]
        return self._rng.choice(messages)

    def follower_message(self, username: str, display_name: str, action: str) -> str:
        if action == "follow":
            return f"{display_name} (@{username}) is now following your fitness journey!"
        if action == "kudos":
            return f"{display_name} gave your workout a kudos!"
        if action == "comment":
            return f"{display_name} commented on your workout"
        if action == "mention":
            return f"{display_name} mentioned you"
        return f"{display_name} interacted with your content"

    # ------------------------------------------------------------------
    # Request builders
    # ------------------------------------------------------------------

    def workout_completed_request(
        self,
        workout_type: str,
        duration_minutes: int,
        calories: int,
        xp_earned: int,
        workout_id: str | None = None,
    ) -> NotificationRequest:
        return NotificationRequest.create(
            type=NotificationType.WORKOUT_COMPLETED,
            title="Workout Complete! 💪",
            body=self.workout_end_message(workout_type, duration_minutes, calories, xp_earned),
            metadata={
                "workout_id": workout_id,
                "workout_type": workout_type,
                "duration": duration_minutes,
                "calories": calories,
                "xp_earned": xp_earned,
            },
            actions=[NotificationAction.VIEW],
        )

    def streak_request(self, streak: int, is_at_risk: bool) -> NotificationRequest:
        if is_at_risk:
            return NotificationRequest.create(
                type=NotificationType.STREAK_AT_RISK,
                title="Streak at Risk! ⚠️",
                body=self.streak_message(streak, is_at_risk=True),
                priority=NotificationPriority.HIGH,
            )
        return NotificationRequest.create(
            type=NotificationType.STREAK_MAINTAINED,
            title="Streak Maintained! 🔥",
            body=self.streak_message(streak, is_at_risk=False),
            priority=NotificationPriority.MEDIUM,
        )

    def xp_milestone_request(self, level: int, title: str) -> NotificationRequest:
        return NotificationRequest.create(
            type=NotificationType.XP_MILESTONE,
            title=f"Level {level} Achieved! 🎉",
            body=self.xp_milestone_message(level, title),
            metadata={"level": level, "title": title},
        )

    def new_follower_request(self, user_id: str, username: str, display_name: str) -> NotificationRequest:
        return NotificationRequest.create(
            type=NotificationType.NEW_FOLLOWER,
            title="New Follower! 👥",
            body=self.follower_message(username, display_name, "follow"),
            metadata={
                "user_id": user_id,
                "username": username,
                "display_name": display_name,
                "relationship_type": "follower",
            },
            actions=[NotificationAction.VIEW],
        )

    def workout_kudos_request(self, user_id: str, display_name: str, workout_id: str) -> NotificationRequest:
        return NotificationRequest.create(
            type=NotificationType.WORKOUT_KUDOS,
            title="Workout Kudos! ❤️",
            body=f"{display_name} cheered your workout",
            metadata={"user_id": user_id, "display_name": display_name, "action_count": 1},
            actions=[NotificationAction.VIEW],
            group_id=f"kudos_{workout_id}",
        )

    def workout_comment_request(
        self,
        user_id: str,
        display_name: str,
        comment: str,
        workout_id: str,
    ) -> NotificationRequest:
        return NotificationRequest.create(
            type=NotificationType.WORKOUT_COMMENT,
            title=f"{display_name} commented",
            body=truncate_preview(comment),
            metadata={"user_id": user_id, "display_name": display_name, "workout_id": workout_id},
            priority=NotificationPriority.HIGH,
            actions=[NotificationAction.VIEW, NotificationAction.REPLY],
        )


__all__ = ["MessageProvider", "truncate_preview", "COMMENT_PREVIEW_LENGTH"]
