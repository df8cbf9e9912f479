"""
Explicit wiring of the engine's components.

Every collaborator is constructed here and passed in; nothing is a process
global, so tests can build as many isolated contexts as they need.

Usage:
    from notify_engine.context import EngineContext

    ctx = EngineContext.from_config()
    await ctx.start()
    ...
    await ctx.stop()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from notify_engine.config import EngineConfig, load_engine_config
from notify_engine.notifications.preferences import PreferenceStore, SqlitePreferenceStore
from notify_engine.notifications.scheduler import NotificationScheduler
from notify_engine.notifications.store import InMemoryNotificationStore, NotificationStore
from notify_engine.notifications.transport import InMemoryTransport, NotificationTransport
from notify_engine.ratelimit.actions import build_limit_table
from notify_engine.ratelimit.limiter import RateLimiter
from notify_engine.social.comments import CommentRepository, CommentService, InMemoryCommentRepository

logger = logging.getLogger(__name__)


@dataclass
class EngineContext:
    config: EngineConfig
    rate_limiter: RateLimiter
    scheduler: NotificationScheduler
    comments: CommentService

    @classmethod
    def from_config(
        cls,
        config: EngineConfig | None = None,
        transport: NotificationTransport | None = None,
        store: NotificationStore | None = None,
        preference_store: PreferenceStore | None = None,
        comment_repository: CommentRepository | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "EngineContext":
        """
        Build a context from configuration.

        Collaborators not supplied fall back to the in-memory transport, store
        and comment repository, and to SQLite-backed preferences at the
        configured path.
        """
        config = config or load_engine_config()

        rate_limiter = RateLimiter(
            limits=build_limit_table(config.rate_limiter.limit_overrides()),
            clock=clock,
            cleanup_interval=config.rate_limiter.cleanup_interval,
            retention=config.rate_limiter.retention,
        )

        if preference_store is None:
            preference_store = SqlitePreferenceStore(
                config.storage.preferences_path,
                profile=config.storage.profile,
            )

        scheduler = NotificationScheduler(
            transport=transport or InMemoryTransport(),
            store=store or InMemoryNotificationStore(capacity=config.scheduler.in_app_store_capacity),
            preference_store=preference_store,
            clock=clock,
            cleanup_interval=config.scheduler.cleanup_interval,
            delivery_log_max_entries=config.scheduler.delivery_log_max_entries,
        )

        comments = CommentService(
            rate_limiter=rate_limiter,
            repository=comment_repository or InMemoryCommentRepository(),
            scheduler=scheduler,
        )

        return cls(
            config=config,
            rate_limiter=rate_limiter,
            scheduler=scheduler,
            comments=comments,
        )

    async def start(self) -> None:
        await self.rate_limiter.start()
        await self.scheduler.start()
        logger.info("Notification engine started")

    async def stop(self, flush: bool = False) -> None:
        """Stop background work. With flush=True pending batches are delivered first."""
        if flush:
            delivered = await self.scheduler.flush_all()
            if delivered:
                logger.info(f"Flushed {delivered} grouped notification(s) before shutdown")
        await self.scheduler.stop()
        await self.rate_limiter.stop()
        logger.info("Notification engine stopped")


__all__ = ["EngineContext"]
