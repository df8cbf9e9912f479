from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from notify_engine import ARGS_DIR, DATA_DIR, PROJECT_ROOT
from notify_engine.ratelimit.actions import LimitSet, RateLimitAction, build_limit_table

logger = logging.getLogger(__name__)


# =============================================================================
# EngineConfig (args/notify_engine.yaml)
# =============================================================================

class LimitOverrideConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    minutely: Optional[int] = Field(default=None, ge=0)
    hourly: Optional[int] = Field(default=None, ge=0)
    daily: Optional[int] = Field(default=None, ge=0)
    weekly: Optional[int] = Field(default=None, ge=0)


class RateLimiterConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    cleanup_interval_seconds: int = Field(default=3600, ge=1)
    retention_days: int = Field(default=7, ge=1)
    limits: dict[str, LimitOverrideConfig] = Field(default_factory=dict)

    @field_validator("limits")
    @classmethod
    def _known_actions(cls, value: dict[str, LimitOverrideConfig]) -> dict[str, LimitOverrideConfig]:
        known = {a.value for a in RateLimitAction}
        unknown = sorted(set(value) - known)
        if unknown:
            raise ValueError(f"Unknown rate limit actions: {unknown}")
        return value

    @property
    def cleanup_interval(self) -> timedelta:
        return timedelta(seconds=self.cleanup_interval_seconds)

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    def limit_overrides(self) -> dict[str, dict[str, Any]]:
        """Overrides with only the fields actually set, for build_limit_table."""
        return {name: o.model_dump(exclude_none=True) for name, o in self.limits.items()}


class SchedulerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    cleanup_interval_seconds: int = Field(default=3600, ge=1)
    delivery_log_max_entries: int = Field(default=1000, ge=1)
    in_app_store_capacity: int = Field(default=100, ge=1)

    @property
    def cleanup_interval(self) -> timedelta:
        return timedelta(seconds=self.cleanup_interval_seconds)


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    preferences_db: str = Field(default=str(DATA_DIR / "notify_preferences.db"))
    profile: str = Field(default="default")

    @property
    def preferences_path(self) -> Path:
        path = Path(self.preferences_db)
        return path if path.is_absolute() else PROJECT_ROOT / path


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    level: str = Field(default="INFO")
    json_output: bool = Field(default=False, alias="json")


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    rate_limiter: RateLimiterConfig = Field(default_factory=RateLimiterConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Loader
# =============================================================================

_CONFIG_MAP: dict[str, type[BaseModel]] = {
    "notify_engine": EngineConfig,
}


def load_and_validate(
    config_name: str,
    model_class: type[BaseModel] | None = None,
    args_dir: Path | None = None,
) -> BaseModel:
    if model_class is None:
        model_class = _CONFIG_MAP.get(config_name)
        if model_class is None:
            raise ValueError(f"Unknown config: {config_name}. Available: {list(_CONFIG_MAP.keys())}")

    yaml_path = (args_dir or ARGS_DIR) / f"{config_name}.yaml"

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return model_class.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {config_name}: {e}, using defaults")
        return model_class()


def load_engine_config(args_dir: Path | None = None) -> EngineConfig:
    return load_and_validate("notify_engine", EngineConfig, args_dir=args_dir)


def describe_limits(config: EngineConfig) -> dict[str, dict[str, int | None]]:
    """Effective limit table after overrides, keyed by action value."""
    table: dict[RateLimitAction, LimitSet] = build_limit_table(config.rate_limiter.limit_overrides())
    return {action.value: limits.to_dict() for action, limits in table.items()}


__all__ = [
    "LimitOverrideConfig",
    "RateLimiterConfig",
    "SchedulerConfig",
    "StorageConfig",
    "LoggingConfig",
    "EngineConfig",
    "load_and_validate",
    "load_engine_config",
    "describe_limits",
]
