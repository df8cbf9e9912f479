"""
Error taxonomy for the notification engine.

Policy outcomes (disabled type, quiet-hours deferral, batching) are silent
successes and never raise. Only the cases below are errors:

    RateLimitExceeded  - recoverable, carries the instant a slot frees up
    InvalidSubject     - malformed subject identifier, caller bug
    ServiceUnavailable - internal dependency not ready, retry after backoff
    DeliveryFailed     - transport rejected a schedule request
"""

from __future__ import annotations

from datetime import datetime


class NotifyEngineError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False


def _format_wait(seconds: float) -> str:
    """Abbreviated single-unit duration, e.g. '45s', '12m', '3h', '2d'."""
    seconds = max(0, int(round(seconds)))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


class RateLimitExceeded(NotifyEngineError):
    """Raised when a subject has exhausted a tier quota for an action."""

    retryable = True

    def __init__(self, action: str, reset_time: datetime, now: datetime | None = None):
        self.action = action
        self.reset_time = reset_time
        now = now or datetime.now(reset_time.tzinfo)
        wait = _format_wait((reset_time - now).total_seconds())
        super().__init__(f"Rate limit exceeded for {action}. Try again in {wait}.")

    def retry_after_seconds(self, now: datetime) -> float:
        return max(0.0, (self.reset_time - now).total_seconds())


class InvalidSubject(NotifyEngineError):
    """Raised for an empty or malformed subject identifier."""

    def __init__(self, subject_id: object = None):
        self.subject_id = subject_id
        super().__init__("Invalid user ID")


class ServiceUnavailable(NotifyEngineError):
    """Raised when a component is used before start or after stop."""

    retryable = True

    def __init__(self, service: str = "notification engine", detail: str | None = None):
        self.service = service
        message = f"{service} is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DeliveryFailed(NotifyEngineError):
    """Raised when the transport rejects a notification."""

    def __init__(self, notification_id: str, reason: str):
        self.notification_id = notification_id
        self.reason = reason
        super().__init__(f"Failed to deliver notification {notification_id}: {reason}")


__all__ = [
    "NotifyEngineError",
    "RateLimitExceeded",
    "InvalidSubject",
    "ServiceUnavailable",
    "DeliveryFailed",
]
