"""Shared test fixtures for notify-engine tests.

This module provides common fixtures used across all test modules:
- A controllable clock for time-window logic
- In-memory collaborators (transport, in-app store, preference store)
- Database isolation with temporary files

Usage:
    def test_something(clock, limiter):
        clock.advance(minutes=5)
        ...
"""

import logging
import os
import tempfile
from collections.abc import Callable, Generator
from datetime import datetime, time, timedelta
from pathlib import Path

import pytest
import structlog

from notify_engine.notifications.preferences import (
    InMemoryPreferenceStore,
    NotificationPreferences,
)
from notify_engine.notifications.scheduler import NotificationScheduler
from notify_engine.notifications.store import InMemoryNotificationStore
from notify_engine.notifications.transport import InMemoryTransport
from notify_engine.ratelimit.limiter import RateLimiter


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"


# ─────────────────────────────────────────────────────────────────────────────
# Clock
# ─────────────────────────────────────────────────────────────────────────────


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, when: datetime) -> datetime:
        self.now = when
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting Monday 2024-06-03 12:00 (outside any default quiet hours)."""
    return FakeClock(datetime(2024, 6, 3, 12, 0, 0))


# ─────────────────────────────────────────────────────────────────────────────
# Rate Limiter Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(clock=clock)


@pytest.fixture
def mock_user_id() -> str:
    """Standard test user ID."""
    return "test_user_123"


# ─────────────────────────────────────────────────────────────────────────────
# Scheduler Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def preferences() -> NotificationPreferences:
    """Default preferences with every type enabled for immediate delivery."""
    return NotificationPreferences.all_enabled()


@pytest.fixture
def preference_store(preferences: NotificationPreferences) -> InMemoryPreferenceStore:
    return InMemoryPreferenceStore(preferences)


@pytest.fixture
def make_scheduler(
    transport: InMemoryTransport,
    store: InMemoryNotificationStore,
    clock: FakeClock,
) -> Callable[..., NotificationScheduler]:
    """Factory building a scheduler over the shared collaborators.

    Usage:
        scheduler = make_scheduler(max_notifications_per_hour=3)
    """

    def _make(prefs: NotificationPreferences | None = None, **overrides) -> NotificationScheduler:
        prefs = prefs or NotificationPreferences.all_enabled()
        for name, value in overrides.items():
            setattr(prefs, name, value)
        return NotificationScheduler(
            transport=transport,
            store=store,
            preference_store=InMemoryPreferenceStore(prefs),
            clock=clock,
        )

    return _make


@pytest.fixture
def scheduler(make_scheduler) -> NotificationScheduler:
    return make_scheduler()


@pytest.fixture
def overnight_quiet_hours() -> NotificationPreferences:
    """All types enabled, quiet hours 22:00-07:00."""
    prefs = NotificationPreferences.all_enabled()
    prefs.quiet_hours_enabled = True
    prefs.quiet_hours_start = time(22, 0)
    prefs.quiet_hours_end = time(7, 0)
    return prefs


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.

    Yields:
        Path to the temporary database file
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        os.unlink(db_path)


# ─────────────────────────────────────────────────────────────────────────────
# Async Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def anyio_backend() -> str:
    """Backend for async tests."""
    return "asyncio"


# ─────────────────────────────────────────────────────────────────────────────
# Logging Isolation
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def restore_logging() -> Generator[None, None, None]:
    """Undo setup_logging() side effects on the root logger and structlog."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level

    yield

    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
