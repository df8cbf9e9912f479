"""Notification admission and delivery engine.

Decides, per notification-worthy event, whether to deliver now, defer until
quiet hours end, fold the event into a per-type batch, or reject a subject's
action because an activity quota is exhausted.

Components:
    ratelimit/:      Multi-tier sliding-window rate limiter shared across features
    notifications/:  Scheduler pipeline, batching, quiet hours, preferences
    social/:         Rate-limited social features (comment posting)
    config.py:       YAML + pydantic configuration (args/notify_engine.yaml)
    context.py:      Explicit wiring of limiter, scheduler and collaborators

Usage:
    from notify_engine.context import EngineContext

    ctx = EngineContext.from_config()
    await ctx.start()
    await ctx.scheduler.schedule_notification(request)
"""

from pathlib import Path


__version__ = "0.4.0"

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
ARGS_DIR = PROJECT_ROOT / "args"
DATA_DIR = PROJECT_ROOT / "data"
CONFIG_PATH = ARGS_DIR / "notify_engine.yaml"

__all__ = [
    "__version__",
    "PROJECT_ROOT",
    "ARGS_DIR",
    "DATA_DIR",
    "CONFIG_PATH",
]
