"""Pydantic models for config validation.

Call ``Config.validated()`` to obtain a typed, validated ``AlmanacConfig``
instance.  Dict-based ``Config.get`` access keeps working unchanged.
Env-var overrides arrive as strings; pydantic coerces them to the field types.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PathsConfig(BaseModel):
    """File-system paths used by the application."""

    data_dir: Path
    log_dir: Path | None = None

    @field_validator("data_dir", "log_dir", mode="before")
    @classmethod
    def _expand_user(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v


class AnalyticsSettings(BaseModel):
    """Tunable constants for the incremental updater and the reconciliation job."""

    model_config = ConfigDict(frozen=True)

    half_life_days: float = Field(default=14.0, gt=0)
    max_tracked_ids: int = Field(default=100, ge=1)
    stale_entity_days: float = Field(default=90.0, gt=0)
    activity_lookback_hours: float = Field(default=24.0, gt=0)
    min_decay_interval_hours: float = Field(default=1.0, ge=0)
    recency_write_threshold: float = Field(default=0.01, ge=0)
    mood_sum_tolerance: float = Field(default=0.001, ge=0)
    trend_threshold_ratio: float = Field(default=0.05, ge=0)
    min_correlation_samples: int = Field(default=3, ge=2)
    user_timeout_seconds: float = Field(default=60.0, gt=0)
    max_concurrent_users: int = Field(default=4, ge=1)
    transaction_max_attempts: int = Field(default=5, ge=1)


class StoreConfig(BaseModel):
    """Aggregate store backend selection."""

    backend: Literal["memory", "local"] = "memory"
    path: Path = Path("~/.almanac-data/aggregates")
    root: str = "users"

    @field_validator("path", mode="before")
    @classmethod
    def _expand_user(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("root")
    @classmethod
    def _clean_root(cls, v: str) -> str:
        root = v.strip("/")
        if not root:
            raise ValueError("store root cannot be empty")
        return root


class SchedulerConfig(BaseModel):
    """Cron settings for the periodic reconciliation sweep."""

    enabled: bool = False
    timezone: str = "UTC"
    cron: dict[str, Any] = {"minute": 0}


class LoggingConfig(BaseModel):
    """Loguru sink settings."""

    level: str = "WARNING"
    file: str | None = None


class AlmanacConfig(BaseModel):
    """Root configuration model.

    Uses ``extra="allow"`` so deployments can bolt on custom sections
    without touching this schema.
    """

    model_config = ConfigDict(extra="allow")

    paths: PathsConfig = PathsConfig(data_dir=Path("~/.almanac-data"))
    store: StoreConfig = StoreConfig()
    analytics: AnalyticsSettings = AnalyticsSettings()
    scheduler: SchedulerConfig = SchedulerConfig()
    logging: LoggingConfig = LoggingConfig()
