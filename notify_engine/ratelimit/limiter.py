"""
Tool: Multi-Tier Rate Limiter
Purpose: Sliding-window quotas per subject and action, shared across features

Features:
- Minute / hour / day / week tiers, evaluated smallest window first
- Atomic check-and-record: an admitted call is recorded before the lock drops
- Rejections carry the instant the blocking tier frees a slot
- Bounded memory: records older than the retention horizon are swept and
  subjects with no remaining history are dropped

Usage:
    from notify_engine.ratelimit.limiter import RateLimiter

    limiter = RateLimiter()
    await limiter.start()          # hourly cleanup task

    try:
        limiter.check_limit(RateLimitAction.COMMENT, user_id)
    except RateLimitExceeded as e:
        print(f"try again at {e.reset_time}")

    await limiter.stop()

Dependencies:
    - threading (stdlib), via ReadWriteLock
    - asyncio (stdlib) for the periodic sweep
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from notify_engine.errors import InvalidSubject, RateLimitExceeded
from notify_engine.ratelimit.actions import (
    DEFAULT_LIMITS,
    LimitSet,
    RateLimitAction,
    Tier,
)
from notify_engine.ratelimit.locks import ReadWriteLock

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL = timedelta(hours=1)
DEFAULT_RETENTION = timedelta(days=7)


@dataclass(frozen=True)
class ActionRecord:
    """A single admitted action. Never mutated or reused."""

    subject_id: str
    action: RateLimitAction
    timestamp: datetime


@dataclass
class SubjectHistory:
    """Per-subject action log, appended in real time (timestamp order)."""

    actions: list[ActionRecord] = field(default_factory=list)
    last_cleanup: datetime = field(default_factory=datetime.now)

    def in_window(self, action: RateLimitAction, since: datetime) -> list[ActionRecord]:
        return [r for r in self.actions if r.action == action and r.timestamp > since]

    def prune(self, cutoff: datetime, now: datetime) -> int:
        before = len(self.actions)
        self.actions = [r for r in self.actions if r.timestamp >= cutoff]
        self.last_cleanup = now
        return before - len(self.actions)


class RateLimiter:
    """Thread-safe multi-tier sliding-window rate limiter.

    Args:
        limits: Per-action limit table. Defaults to DEFAULT_LIMITS.
        clock: Returns the current time. Injected for deterministic tests.
        cleanup_interval: Period of the background sweep, and the staleness
            after which a subject is lazily pruned on check_limit.
        retention: Records older than this are removed by cleanup.
    """

    def __init__(
        self,
        limits: Mapping[RateLimitAction, LimitSet] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        cleanup_interval: timedelta = DEFAULT_CLEANUP_INTERVAL,
        retention: timedelta = DEFAULT_RETENTION,
    ):
        self._limits = dict(limits or DEFAULT_LIMITS)
        self._clock = clock
        self.cleanup_interval = cleanup_interval
        self.retention = retention
        self._histories: dict[str, SubjectHistory] = {}
        self._lock = ReadWriteLock()
        self._cleanup_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def limits_for(self, action: RateLimitAction) -> LimitSet:
        return self._limits.get(action, action.limits)

    def check_limit(self, action: RateLimitAction, subject_id: str) -> bool:
        """Admit and record an action, or raise RateLimitExceeded.

        The check and the record happen under one exclusive lock hold. A
        rejected call leaves the history untouched.

        Raises:
            InvalidSubject: subject_id is empty or not a string.
            RateLimitExceeded: some tier is at its limit; reset_time comes from
                the smallest violated window.
        """
        subject_id = _validate_subject(subject_id)
        limits = self.limits_for(action)

        with self._lock.write():
            now = self._clock()
            self._cleanup_if_needed(subject_id, now)

            history = self._histories.get(subject_id)
            blocked = _first_violation(history.actions if history else [], action, limits, now)
            if blocked is not None:
                tier, reset_time = blocked
                logger.info(
                    f"Rate limit hit: subject={subject_id} action={action.value} "
                    f"tier={tier.key} reset_at={reset_time.isoformat()}"
                )
                raise RateLimitExceeded(action.value, reset_time, now=now)

            if history is None:
                history = SubjectHistory(last_cleanup=now)
                self._histories[subject_id] = history

            history.actions.append(ActionRecord(subject_id, action, now))
            return True

    def record_action(self, action: RateLimitAction, subject_id: str) -> None:
        """Append a record without checking quotas."""
        subject_id = _validate_subject(subject_id)
        with self._lock.write():
            now = self._clock()
            history = self._histories.get(subject_id)
            if history is None:
                history = SubjectHistory(last_cleanup=now)
                self._histories[subject_id] = history
            history.actions.append(ActionRecord(subject_id, action, now))

    def reset_limits(self, subject_id: str) -> None:
        """Forget every recorded action for a subject."""
        subject_id = _validate_subject(subject_id)
        with self._lock.write():
            self._histories.pop(subject_id, None)
        logger.info(f"Rate limits reset for subject={subject_id}")

    def get_remaining_actions(self, action: RateLimitAction, subject_id: str) -> int:
        """Most restrictive (limit - used) across configured tiers, floored at 0."""
        subject_id = _validate_subject(subject_id)
        limits = self.limits_for(action)

        with self._lock.read():
            now = self._clock()
            history = self._histories.get(subject_id)
            remaining = []
            for tier, limit in limits.tiers():
                used = len(history.in_window(action, now - tier.window)) if history else 0
                remaining.append(limit - used)

        return max(0, min(remaining))

    def get_reset_time(self, action: RateLimitAction, subject_id: str) -> datetime | None:
        """When the first violated tier (smallest window) frees a slot.

        Returns None when no tier is currently at its limit.
        """
        subject_id = _validate_subject(subject_id)
        limits = self.limits_for(action)

        with self._lock.read():
            history = self._histories.get(subject_id)
            blocked = _first_violation(history.actions if history else [], action, limits, self._clock())

        return blocked[1] if blocked else None

    def cleanup(self) -> dict[str, int]:
        """Sweep every subject, dropping records past retention.

        Returns:
            {"records_removed": int, "subjects_removed": int}
        """
        removed_records = 0
        removed_subjects = 0

        with self._lock.write():
            now = self._clock()
            cutoff = now - self.retention
            for subject_id in list(self._histories):
                history = self._histories[subject_id]
                removed_records += history.prune(cutoff, now)
                if not history.actions:
                    del self._histories[subject_id]
                    removed_subjects += 1

        if removed_records or removed_subjects:
            logger.debug(
                f"Rate limiter cleanup removed {removed_records} records, "
                f"{removed_subjects} subjects"
            )
        return {"records_removed": removed_records, "subjects_removed": removed_subjects}

    def get_stats(self) -> dict[str, Any]:
        """Current footprint of the limiter."""
        with self._lock.read():
            return {
                "subjects_tracked": len(self._histories),
                "records_held": sum(len(h.actions) for h in self._histories.values()),
                "cleanup_running": self.is_running,
            }

    def has_history(self, subject_id: str) -> bool:
        with self._lock.read():
            return subject_id in self._histories

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def start(self) -> None:
        """Start the periodic cleanup task on the running event loop."""
        if self.is_running:
            return
        self._cleanup_task = asyncio.create_task(
            self._cleanup_loop(), name="ratelimit_cleanup"
        )
        logger.info(
            f"Rate limiter cleanup started "
            f"(interval={self.cleanup_interval.total_seconds():.0f}s)"
        )

    async def stop(self) -> None:
        """Cancel the cleanup task and wait for it to finish."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Rate limiter cleanup stopped")

    async def _cleanup_loop(self) -> None:
        interval = self.cleanup_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                self.cleanup()
            except Exception:
                logger.exception("Rate limiter cleanup failed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cleanup_if_needed(self, subject_id: str, now: datetime) -> None:
        """Lazy per-subject prune. Must hold the write lock."""
        history = self._histories.get(subject_id)
        if history is None:
            return
        if now - history.last_cleanup > self.cleanup_interval:
            history.prune(now - self.retention, now)
            if not history.actions:
                del self._histories[subject_id]


def _first_violation(
    records: list[ActionRecord],
    action: RateLimitAction,
    limits: LimitSet,
    now: datetime,
) -> tuple[Tier, datetime] | None:
    """First tier (ascending window) at or over its limit, with its reset time."""
    for tier, limit in limits.tiers():
        since = now - tier.window
        recent = [r for r in records if r.action == action and r.timestamp > since]
        if len(recent) >= limit:
            # limit == 0 blocks with no records to age out
            reset_time = recent[0].timestamp + tier.window if recent else now + tier.window
            return tier, reset_time
    return None


def _validate_subject(subject_id: Any) -> str:
    if not isinstance(subject_id, str) or not subject_id.strip():
        raise InvalidSubject(subject_id)
    return subject_id


__all__ = [
    "ActionRecord",
    "SubjectHistory",
    "RateLimiter",
    "DEFAULT_CLEANUP_INTERVAL",
    "DEFAULT_RETENTION",
]
