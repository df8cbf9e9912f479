"""
Tool: Workout Comments
Purpose: Rate-limited comment posting with owner and reply notifications

Usage:
    from notify_engine.social.comments import CommentService, InMemoryCommentRepository

    service = CommentService(limiter, InMemoryCommentRepository(), scheduler=scheduler)
    try:
        comment = await service.post_comment(
            user_id="alice",
            workout_id="w-1",
            workout_owner_id="bob",
            content="Great pace!",
            display_name="Alice",
        )
    except CommentError as e:
        print(e.reason, e.reset_time)

Posting order: validate length, consume a comment slot from the rate limiter,
moderate, save, then notify. check_limit admits and records in one step, so
the slot is taken even when a later step fails.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from notify_engine.errors import NotifyEngineError, RateLimitExceeded
from notify_engine.notifications.messages import MessageProvider, truncate_preview
from notify_engine.notifications.models import (
    NotificationAction,
    NotificationRequest,
    NotificationType,
)
from notify_engine.ratelimit.actions import RateLimitAction
from notify_engine.ratelimit.limiter import RateLimiter

if TYPE_CHECKING:
    from notify_engine.notifications.scheduler import NotificationScheduler

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 500

# Placeholder list; real moderation is out of scope
BLOCKED_WORDS: frozenset[str] = frozenset({"spamlink", "buyfollowers"})


class CommentErrorReason(str, Enum):
    INVALID_CONTENT = "invalid_content"
    RATE_LIMITED = "rate_limited"
    CONTENT_MODERATED = "content_moderated"
    NOT_FOUND = "not_found"
    NOT_AUTHORIZED = "not_authorized"
    SAVE_FAILED = "save_failed"


_REASON_MESSAGES = {
    CommentErrorReason.INVALID_CONTENT: f"Comment must be between 1 and {MAX_COMMENT_LENGTH} characters",
    CommentErrorReason.RATE_LIMITED: "You're commenting too quickly. Please wait a moment.",
    CommentErrorReason.CONTENT_MODERATED: "Your comment contains inappropriate content",
    CommentErrorReason.NOT_FOUND: "Comment not found",
    CommentErrorReason.NOT_AUTHORIZED: "You can only edit or delete your own comments",
    CommentErrorReason.SAVE_FAILED: "Failed to save comment. Please try again.",
}


class CommentError(NotifyEngineError):
    """Comment operation rejected. `reset_time` is set when rate limited."""

    def __init__(self, reason: CommentErrorReason, reset_time: datetime | None = None):
        self.reason = reason
        self.reset_time = reset_time
        self.retryable = reason in (CommentErrorReason.RATE_LIMITED, CommentErrorReason.SAVE_FAILED)
        super().__init__(_REASON_MESSAGES[reason])


@dataclass
class Comment:
    """A comment on a workout, optionally replying to another comment."""

    id: str
    workout_id: str
    user_id: str
    workout_owner_id: str
    content: str
    created_at: datetime = field(default_factory=datetime.now)
    modified_at: datetime = field(default_factory=datetime.now)
    parent_comment_id: str | None = None
    is_edited: bool = False
    like_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workout_id": self.workout_id,
            "user_id": self.user_id,
            "workout_owner_id": self.workout_owner_id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "modified_at": self.modified_at.isoformat(),
            "parent_comment_id": self.parent_comment_id,
            "is_edited": self.is_edited,
            "like_count": self.like_count,
        }


def is_valid_comment(content: str) -> bool:
    """1 to 500 characters once surrounding whitespace is stripped."""
    trimmed = content.strip()
    return 0 < len(trimmed) <= MAX_COMMENT_LENGTH


class CommentRepository(Protocol):
    async def save(self, comment: Comment) -> Comment: ...

    async def get(self, comment_id: str) -> Comment | None: ...

    async def list_for_workout(self, workout_id: str, limit: int = 50) -> list[Comment]: ...


class InMemoryCommentRepository:
    """Dict-backed repository. Set `fail_saves` to simulate storage errors."""

    def __init__(self) -> None:
        self.comments: dict[str, Comment] = {}
        self.fail_saves = False

    async def save(self, comment: Comment) -> Comment:
        if self.fail_saves:
            raise OSError("comment storage unavailable")
        self.comments[comment.id] = comment
        return comment

    async def get(self, comment_id: str) -> Comment | None:
        return self.comments.get(comment_id)

    async def list_for_workout(self, workout_id: str, limit: int = 50) -> list[Comment]:
        matching = [c for c in self.comments.values() if c.workout_id == workout_id]
        matching.sort(key=lambda c: c.created_at, reverse=True)
        return matching[:limit]


class CommentService:
    """Posts comments through the shared rate limiter."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        repository: CommentRepository,
        scheduler: NotificationScheduler | None = None,
        messages: MessageProvider | None = None,
        blocked_words: frozenset[str] = BLOCKED_WORDS,
    ):
        self.rate_limiter = rate_limiter
        self.repository = repository
        self.scheduler = scheduler
        self.messages = messages or MessageProvider()
        self.blocked_words = blocked_words

    async def post_comment(
        self,
        user_id: str,
        workout_id: str,
        workout_owner_id: str,
        content: str,
        parent_comment_id: str | None = None,
        display_name: str | None = None,
    ) -> Comment:
        """
        Post a comment and notify the workout owner.

        Raises:
            CommentError: invalid content, rate limited (with reset_time),
                moderated, or the repository failed to save
            InvalidSubject: user_id is empty
        """
        if not is_valid_comment(content):
            raise CommentError(CommentErrorReason.INVALID_CONTENT)

        try:
            self.rate_limiter.check_limit(RateLimitAction.COMMENT, user_id)
        except RateLimitExceeded as e:
            logger.info(f"Comment from {user_id} rate limited until {e.reset_time.isoformat()}")
            raise CommentError(CommentErrorReason.RATE_LIMITED, reset_time=e.reset_time) from e

        self._moderate(content)

        comment = Comment(
            id=str(uuid.uuid4()),
            workout_id=workout_id,
            user_id=user_id,
            workout_owner_id=workout_owner_id,
            content=content,
            parent_comment_id=parent_comment_id,
        )
        try:
            saved = await self.repository.save(comment)
        except Exception as e:
            logger.error(f"Failed to save comment on workout {workout_id}: {e}")
            raise CommentError(CommentErrorReason.SAVE_FAILED) from e

        author = display_name or user_id
        if user_id != workout_owner_id:
            await self._notify(
                self.messages.workout_comment_request(user_id, author, saved.content, workout_id)
            )
        if parent_comment_id:
            await self._notify_reply(saved, parent_comment_id, author)

        return saved

    async def update_comment(self, user_id: str, comment_id: str, new_content: str) -> Comment:
        """Edit a comment's text. Only its author may edit it."""
        if not is_valid_comment(new_content):
            raise CommentError(CommentErrorReason.INVALID_CONTENT)
        self._moderate(new_content)

        existing = await self.repository.get(comment_id)
        if existing is None:
            raise CommentError(CommentErrorReason.NOT_FOUND)
        if existing.user_id != user_id:
            raise CommentError(CommentErrorReason.NOT_AUTHORIZED)

        existing.content = new_content
        existing.modified_at = datetime.now()
        existing.is_edited = True
        try:
            return await self.repository.save(existing)
        except Exception as e:
            logger.error(f"Failed to update comment {comment_id}: {e}")
            raise CommentError(CommentErrorReason.SAVE_FAILED) from e

    async def fetch_comments(self, workout_id: str, limit: int = 50) -> list[Comment]:
        return await self.repository.list_for_workout(workout_id, limit=limit)

    def _moderate(self, content: str) -> None:
        lowered = content.lower()
        for word in self.blocked_words:
            if word in lowered:
                raise CommentError(CommentErrorReason.CONTENT_MODERATED)

    async def _notify_reply(self, reply: Comment, parent_comment_id: str, author: str) -> None:
        parent = await self.repository.get(parent_comment_id)
        # no notification for self-replies
        if parent is None or parent.user_id == reply.user_id:
            return
        await self._notify(
            NotificationRequest.create(
                type=NotificationType.WORKOUT_COMMENT,
                title="New Reply to Your Comment",
                body=f"{author} replied: {truncate_preview(reply.content)}",
                metadata={"user_id": reply.user_id, "parent_comment_id": parent_comment_id},
                actions=[NotificationAction.VIEW, NotificationAction.REPLY],
            )
        )

    async def _notify(self, request: NotificationRequest) -> None:
        if self.scheduler is None:
            return
        try:
            await self.scheduler.schedule_notification(request)
        except NotifyEngineError as e:
            logger.warning(f"Failed to schedule comment notification: {e}")


__all__ = [
    "MAX_COMMENT_LENGTH",
    "BLOCKED_WORDS",
    "CommentErrorReason",
    "CommentError",
    "Comment",
    "is_valid_comment",
    "CommentRepository",
    "InMemoryCommentRepository",
    "CommentService",
]
