"""Social features that consume the shared rate limiter."""

from notify_engine.social.comments import (
    Comment,
    CommentError,
    CommentErrorReason,
    CommentRepository,
    CommentService,
    InMemoryCommentRepository,
)

__all__ = [
    "Comment",
    "CommentError",
    "CommentErrorReason",
    "CommentRepository",
    "CommentService",
    "InMemoryCommentRepository",
]
