"""Centralized configuration.

Quick start::

    from waypoint.core.config import get_settings

    settings = get_settings()
    print(settings.resolved_runs_dir)

Guardrails:
    ❌ Parsing env vars ad-hoc in each module
    ✅ ``get_settings().scheduler_interval_seconds`` from the cached singleton
"""

from .settings import (
    CheckpointBackend,
    WaypointSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "CheckpointBackend",
    "WaypointSettings",
    "clear_settings_cache",
    "get_settings",
]
