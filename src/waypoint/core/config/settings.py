"""Waypoint centralized configuration.

All fields can be set via ``WAYPOINT_*`` environment variables (e.g.
``WAYPOINT_DATA_DIR=/var/lib/waypoint``) or a ``.env`` file in the working
directory. Paths left unset are derived from ``data_dir``.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CheckpointBackend(str, Enum):
    """Durable storage used for run checkpoints."""

    FILE = "file"
    SQLITE = "sqlite"


class WaypointSettings(BaseSettings):
    """Waypoint configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WAYPOINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Paths ────────────────────────────────────────────────────
    data_dir: Path = Field(default=Path("~/.waypoint"))
    runs_dir: Path | None = Field(default=None, description="JSON checkpoint directory")
    database_path: Path | None = Field(default=None, description="SQLite file for schedules")
    legacy_schedule_paths: list[Path] = Field(
        default=[Path("data/sessions.db"), Path("dist/data/sessions.db")],
        description="Older schedule databases imported once at startup",
    )

    # ── Runs ─────────────────────────────────────────────────────
    checkpoint_backend: CheckpointBackend = Field(default=CheckpointBackend.FILE)

    # ── Scheduler ────────────────────────────────────────────────
    scheduler_interval_seconds: float = Field(default=30.0, gt=0)

    # ── Idempotency ──────────────────────────────────────────────
    idempotency_ttl_seconds: float | None = Field(default=86400.0)

    # ── Agent defaults ───────────────────────────────────────────
    agent_max_turns: int = Field(default=15, ge=1)
    agent_permission_mode: str = Field(default="acceptEdits")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="auto, json or console")

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in {"auto", "json", "console"}:
            raise ValueError(f"Unknown log format: {value}")
        return value

    # ── Derived properties ───────────────────────────────────────

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir.expanduser()

    @property
    def resolved_runs_dir(self) -> Path:
        if self.runs_dir is not None:
            return self.runs_dir.expanduser()
        return self.resolved_data_dir / "runs"

    @property
    def resolved_database_path(self) -> Path:
        if self.database_path is not None:
            return self.database_path.expanduser()
        return self.resolved_data_dir / "waypoint.db"

    @property
    def json_logs(self) -> bool | None:
        """Map ``log_format`` onto ``configure_logging(json_format=...)``."""
        if self.log_format == "auto":
            return None
        return self.log_format == "json"


_settings_cache: dict[str, WaypointSettings] = {}


def get_settings(*, _force_reload: bool = False) -> WaypointSettings:
    """Load, validate, and cache a :class:`WaypointSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = WaypointSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
