"""
Tool: Rate Limit Actions
Purpose: Enumerate rate-limited activities and their per-tier quotas

Usage:
    from notify_engine.ratelimit.actions import RateLimitAction, Tier

    limits = RateLimitAction.COMMENT.limits
    for tier, limit in limits.tiers():
        ...

Every action defines hourly and daily quotas; minutely and weekly quotas are
optional per action.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any


class Tier(Enum):
    """Quota windows, declared in ascending window size."""

    MINUTE = timedelta(minutes=1)
    HOUR = timedelta(hours=1)
    DAY = timedelta(days=1)
    WEEK = timedelta(weeks=1)

    @property
    def window(self) -> timedelta:
        return self.value

    @property
    def key(self) -> str:
        return {
            Tier.MINUTE: "minutely",
            Tier.HOUR: "hourly",
            Tier.DAY: "daily",
            Tier.WEEK: "weekly",
        }[self]


@dataclass(frozen=True)
class LimitSet:
    """Per-tier quotas for one action."""

    hourly: int
    daily: int
    minutely: int | None = None
    weekly: int | None = None

    def __post_init__(self) -> None:
        for name in ("hourly", "daily", "minutely", "weekly"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} limit must be >= 0, got {value}")

    def tiers(self) -> Iterator[tuple[Tier, int]]:
        """Yield (tier, limit) for configured tiers, smallest window first."""
        if self.minutely is not None:
            yield Tier.MINUTE, self.minutely
        yield Tier.HOUR, self.hourly
        yield Tier.DAY, self.daily
        if self.weekly is not None:
            yield Tier.WEEK, self.weekly

    def to_dict(self) -> dict[str, int | None]:
        return {
            "minutely": self.minutely,
            "hourly": self.hourly,
            "daily": self.daily,
            "weekly": self.weekly,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LimitSet":
        return cls(
            minutely=data.get("minutely"),
            hourly=int(data["hourly"]),
            daily=int(data["daily"]),
            weekly=data.get("weekly"),
        )


class RateLimitAction(str, Enum):
    """Rate-limited social activities."""

    FOLLOW = "follow"
    UNFOLLOW = "unfollow"
    SEARCH = "search"
    FEED_REFRESH = "feed_refresh"
    PROFILE_VIEW = "profile_view"
    WORKOUT_POST = "workout_post"
    FOLLOW_REQUEST = "follow_request"
    REPORT = "report"
    LIKE = "like"
    COMMENT = "comment"

    @property
    def limits(self) -> LimitSet:
        return DEFAULT_LIMITS[self]


DEFAULT_LIMITS: dict[RateLimitAction, LimitSet] = {
    RateLimitAction.FOLLOW: LimitSet(minutely=5, hourly=60, daily=500, weekly=1000),
    RateLimitAction.UNFOLLOW: LimitSet(minutely=3, hourly=30, daily=100, weekly=500),
    RateLimitAction.SEARCH: LimitSet(minutely=20, hourly=200, daily=1000),
    RateLimitAction.FEED_REFRESH: LimitSet(minutely=10, hourly=100, daily=1000),
    RateLimitAction.PROFILE_VIEW: LimitSet(minutely=30, hourly=500, daily=5000),
    RateLimitAction.WORKOUT_POST: LimitSet(minutely=1, hourly=10, daily=50),
    RateLimitAction.FOLLOW_REQUEST: LimitSet(minutely=2, hourly=20, daily=100),
    RateLimitAction.REPORT: LimitSet(minutely=1, hourly=5, daily=20),
    RateLimitAction.LIKE: LimitSet(minutely=60, hourly=600, daily=2000),
    RateLimitAction.COMMENT: LimitSet(minutely=10, hourly=100, daily=500),
}


def build_limit_table(
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[RateLimitAction, LimitSet]:
    """
    Merge per-action overrides (from config) onto the default table.

    Override keys are action values ("comment", "follow", ...); each override
    may set any subset of minutely/hourly/daily/weekly. Unknown actions raise
    ValueError.
    """
    table = dict(DEFAULT_LIMITS)
    for name, values in (overrides or {}).items():
        action = RateLimitAction(name)
        merged = {**table[action].to_dict(), **dict(values)}
        table[action] = LimitSet.from_dict(merged)
    return table


__all__ = [
    "Tier",
    "LimitSet",
    "RateLimitAction",
    "DEFAULT_LIMITS",
    "build_limit_table",
]
