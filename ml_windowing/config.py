"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local env overrides (gitignored)
  4. Environment variables        — ``ML_WINDOWING_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

Every value the windowing core needs is materialized into the frozen
``WindowingConfig`` before any user is processed. Invalid combinations
(non-positive durations, inverted snapshot or lookahead bounds) fail here,
at load time, never halfway through a run.

Durations may be written in TOML as integer seconds (``window_duration =
2592000``) or as ISO-8601 strings (``window_duration = "P30D"``).
"""

from __future__ import annotations

import os
import tomllib
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ml_windowing.utils.time_utils import coerce_instant

# ── Sub-config models ─────────────────────────────────────────────────────────


class WindowingConfig(BaseModel):
    """Time parameters of the lookback-window walk.

    Attributes:
        placement: ``"sliding"`` (candidate starts advance by
            ``slide_duration``) or ``"fixed"`` (one candidate anchored at the
            snapshot start).
        snapshot_start_date: First effective date considered; also the lower
            bound of the positive-label collection range.
        snapshot_end_date: Last effective date considered (inclusive).
        lookback_gap: Offset between a window's end and its effective date.
        window_duration: Span of every window.
        slide_duration: Step between candidate starts (sliding only).
        min_lookahead: Exclusive lower bound of the label search, relative to
            the effective date.
        max_lookahead: Inclusive upper bound of the label search.
        stop_on_first_positive_label: End a user's walk once the label found
            on the first window precedes the next lookahead start.
    """

    model_config = ConfigDict(frozen=True)

    placement: Literal["sliding", "fixed"] = "sliding"
    snapshot_start_date: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)
    snapshot_end_date: datetime = datetime(2024, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)
    lookback_gap: timedelta = timedelta(days=1)
    window_duration: timedelta = timedelta(days=30)
    slide_duration: Optional[timedelta] = timedelta(days=7)
    min_lookahead: timedelta = timedelta(0)
    max_lookahead: timedelta = timedelta(days=30)
    stop_on_first_positive_label: bool = False

    @field_validator("snapshot_start_date", mode="before")
    @classmethod
    def parse_start_date(cls, v: Any) -> Any:
        return coerce_instant(v)

    @field_validator("snapshot_end_date", mode="before")
    @classmethod
    def parse_end_date(cls, v: Any) -> Any:
        return coerce_instant(v, end_of_range=True)

    @model_validator(mode="after")
    def validate_time_parameters(self) -> "WindowingConfig":
        if self.snapshot_start_date >= self.snapshot_end_date:
            raise ValueError(
                f"snapshot_start_date ({self.snapshot_start_date}) must be before "
                f"snapshot_end_date ({self.snapshot_end_date})."
            )
        if self.window_duration <= timedelta(0):
            raise ValueError(f"window_duration must be positive, got {self.window_duration}.")
        if self.placement == "sliding":
            if self.slide_duration is None:
                raise ValueError("slide_duration is required for sliding placement.")
            if self.slide_duration <= timedelta(0):
                raise ValueError(f"slide_duration must be positive, got {self.slide_duration}.")
        if self.min_lookahead > self.max_lookahead:
            raise ValueError(
                f"min_lookahead ({self.min_lookahead}) must not exceed "
                f"max_lookahead ({self.max_lookahead})."
            )
        return self


class DataConfig(BaseModel):
    """Filesystem locations for session input and window output."""

    model_config = ConfigDict(frozen=True)

    sessions_path: str = "data/sessions/sessions.jsonl"
    output_dir: str = "data/windows"
    output_format: Literal["jsonl", "parquet"] = "jsonl"
    runs_dir: str = "data/runs"


class RunnerConfig(BaseModel):
    """How the per-user map is executed."""

    model_config = ConfigDict(frozen=True)

    backend: Literal["serial", "ray"] = "serial"
    batch_size: int = 500        # users per Ray task
    num_cpus: Optional[int] = None

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"batch_size must be >= 1, got {v}.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/windowing.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration.

    Constructed by ``load_config()``; ``AppConfig()`` gives the built-in
    defaults, which is what the tests use.
    """

    model_config = ConfigDict(frozen=True)

    windowing: WindowingConfig = WindowingConfig()
    data: DataConfig = DataConfig()
    runner: RunnerConfig = RunnerConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        pydantic.ValidationError: If merged values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Pass --config or create config/default.toml first."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply ML_WINDOWING_* env vars to the raw config dict.

    Supported overrides:
      ML_WINDOWING_SNAPSHOT_START_DATE → raw["windowing"]["snapshot_start_date"]
      ML_WINDOWING_SNAPSHOT_END_DATE   → raw["windowing"]["snapshot_end_date"]
      ML_WINDOWING_BACKEND             → raw["runner"]["backend"]
      ML_WINDOWING_LOG_LEVEL           → raw["logging"]["level"]
      ML_WINDOWING_DEBUG               → raw["debug"]
    """
    if start := os.environ.get("ML_WINDOWING_SNAPSHOT_START_DATE"):
        raw.setdefault("windowing", {})["snapshot_start_date"] = start

    if end := os.environ.get("ML_WINDOWING_SNAPSHOT_END_DATE"):
        raw.setdefault("windowing", {})["snapshot_end_date"] = end

    if backend := os.environ.get("ML_WINDOWING_BACKEND"):
        raw.setdefault("runner", {})["backend"] = backend

    if log_level := os.environ.get("ML_WINDOWING_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("ML_WINDOWING_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    return AppConfig(
        windowing=WindowingConfig(**raw.get("windowing", {})),
        data=DataConfig(**raw.get("data", {})),
        runner=RunnerConfig(**raw.get("runner", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", False),
    )
