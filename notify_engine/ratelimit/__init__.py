"""Multi-tier sliding-window rate limiting shared across features."""

from notify_engine.ratelimit.actions import (
    DEFAULT_LIMITS,
    LimitSet,
    RateLimitAction,
    Tier,
    build_limit_table,
)
from notify_engine.ratelimit.limiter import ActionRecord, RateLimiter, SubjectHistory

__all__ = [
    "DEFAULT_LIMITS",
    "LimitSet",
    "RateLimitAction",
    "Tier",
    "build_limit_table",
    "ActionRecord",
    "RateLimiter",
    "SubjectHistory",
]
