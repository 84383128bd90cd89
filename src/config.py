"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into strongly-typed Pydantic models.
- Validating values and providing actionable error messages.
"""

import os
from typing import TypeVar

import dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

_T = TypeVar("_T", int, float)


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


def _get_env_str(name: str, default: str) -> str:
    """Read a string env var with a default (blank counts as unset)."""
    raw = os.getenv(name, "").strip()
    return raw or default


def _get_env_list(name: str) -> tuple[str, ...]:
    """Read a comma-separated env var into a tuple of non-empty items."""
    raw = os.getenv(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


class ObservabilityConfig(BaseModel):
    """Configuration for request capture, log rotation and snapshots."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Capture requests at all")
    log_file_prefix: str = Field(
        default="observability/logs/observability",
        description="Base path of the rotating files ({prefix}_{index}.log)",
    )
    max_entries_per_file: int = Field(default=100, description="Rotation threshold")
    ignore_paths: tuple[str, ...] = Field(
        default=(),
        description="Request path prefixes excluded from capture (literal prefix match)",
    )
    snapshots_dir: str = Field(default="observability/snapshots", description="Snapshot artifact directory")

    # Query and export tuning.
    slow_threshold_ms: int = Field(default=500, description="Default slow-request threshold (exclusive)")
    logs_per_page: int = Field(default=50, description="Default page size for log history")
    slow_per_page: int = Field(default=20, description="Default page size for slow requests")
    export_limit: int = Field(default=1000, description="Max log entries in an export/snapshot")
    slow_export_limit: int = Field(default=100, description="Max slow entries in an export/snapshot")

    # Write path tuning.
    coalesce_window_ms: int = Field(default=0, description="Duplicate-signal coalescing window (0 = off)")
    max_queue_size: int = Field(default=10000, description="Recorder queue bound")

    @field_validator(
        "max_entries_per_file",
        "logs_per_page",
        "slow_per_page",
        "export_limit",
        "slow_export_limit",
        "max_queue_size",
    )
    def validate_positive(cls, v: int) -> int:
        """Validate sizes and limits are positive."""
        if v <= 0:
            raise ValueError(f"must be > 0. Got: {v}")
        return v

    @field_validator("slow_threshold_ms", "coalesce_window_ms")
    def validate_non_negative(cls, v: int) -> int:
        """Validate durations are not negative."""
        if v < 0:
            raise ValueError(f"must be >= 0. Got: {v}")
        return v

    @field_validator("log_file_prefix", "snapshots_dir")
    def validate_path(cls, v: str) -> str:
        """Validate paths are not blank."""
        if not v.strip():
            raise ValueError("path must not be empty")
        return v


class Config(BaseModel):
    """Top-level application configuration."""

    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Request observability configuration"
    )


def load_config() -> Config:
    """Load application configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when a value cannot be parsed
      or is out of range.
    """
    # Load variables from `.env` into the process environment (without overriding
    # already-set env vars).
    dotenv.load_dotenv()

    defaults = ObservabilityConfig()
    observability = ObservabilityConfig(
        enabled=_get_env_bool("OBSERVABILITY_ENABLED", defaults.enabled),
        log_file_prefix=_get_env_str("OBSERVABILITY_LOG_FILE_PREFIX", defaults.log_file_prefix),
        max_entries_per_file=_get_env_number(
            "OBSERVABILITY_MAX_ENTRIES_PER_FILE", defaults.max_entries_per_file, int
        ),
        ignore_paths=_get_env_list("OBSERVABILITY_IGNORE_PATHS"),
        snapshots_dir=_get_env_str("OBSERVABILITY_SNAPSHOTS_DIR", defaults.snapshots_dir),
        slow_threshold_ms=_get_env_number("OBSERVABILITY_SLOW_THRESHOLD_MS", defaults.slow_threshold_ms, int),
        logs_per_page=_get_env_number("OBSERVABILITY_LOGS_PER_PAGE", defaults.logs_per_page, int),
        slow_per_page=_get_env_number("OBSERVABILITY_SLOW_PER_PAGE", defaults.slow_per_page, int),
        export_limit=_get_env_number("OBSERVABILITY_EXPORT_LIMIT", defaults.export_limit, int),
        slow_export_limit=_get_env_number("OBSERVABILITY_SLOW_EXPORT_LIMIT", defaults.slow_export_limit, int),
        coalesce_window_ms=_get_env_number("OBSERVABILITY_COALESCE_WINDOW_MS", defaults.coalesce_window_ms, int),
        max_queue_size=_get_env_number("OBSERVABILITY_MAX_QUEUE_SIZE", defaults.max_queue_size, int),
    )
    return Config(observability=observability)
