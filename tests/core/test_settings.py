"""Tests for waypoint.core.config.

Covers:
- Defaults and derived paths
- Environment variable override
- Validation of log settings
- Settings cache
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from waypoint.core.config import (
    CheckpointBackend,
    WaypointSettings,
    clear_settings_cache,
    get_settings,
)


class TestDefaults:
    def test_defaults(self):
        s = WaypointSettings(_env_file=None)
        assert s.data_dir == Path("~/.waypoint")
        assert s.checkpoint_backend is CheckpointBackend.FILE
        assert s.scheduler_interval_seconds == 30.0
        assert s.idempotency_ttl_seconds == 86400.0
        assert s.agent_max_turns == 15
        assert s.agent_permission_mode == "acceptEdits"
        assert s.log_level == "INFO"

    def test_derived_paths(self, tmp_path):
        s = WaypointSettings(_env_file=None, data_dir=tmp_path)
        assert s.resolved_runs_dir == tmp_path / "runs"
        assert s.resolved_database_path == tmp_path / "waypoint.db"

    def test_explicit_paths_win(self, tmp_path):
        s = WaypointSettings(
            _env_file=None,
            data_dir=tmp_path,
            runs_dir=tmp_path / "elsewhere",
            database_path=tmp_path / "db" / "w.db",
        )
        assert s.resolved_runs_dir == tmp_path / "elsewhere"
        assert s.resolved_database_path == tmp_path / "db" / "w.db"

    def test_home_is_expanded(self):
        s = WaypointSettings(_env_file=None)
        assert s.resolved_data_dir == Path.home() / ".waypoint"


class TestEnvOverride:
    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WAYPOINT_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("WAYPOINT_CHECKPOINT_BACKEND", "sqlite")
        monkeypatch.setenv("WAYPOINT_SCHEDULER_INTERVAL_SECONDS", "5")
        s = WaypointSettings(_env_file=None)
        assert s.data_dir == tmp_path
        assert s.checkpoint_backend is CheckpointBackend.SQLITE
        assert s.scheduler_interval_seconds == 5.0


class TestValidation:
    def test_log_level_normalized(self):
        assert WaypointSettings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError):
            WaypointSettings(_env_file=None, log_level="chatty")

    def test_unknown_log_format(self):
        with pytest.raises(ValidationError):
            WaypointSettings(_env_file=None, log_format="xml")

    @pytest.mark.parametrize(("fmt", "expected"), [("auto", None), ("json", True), ("console", False)])
    def test_json_logs(self, fmt, expected):
        assert WaypointSettings(_env_file=None, log_format=fmt).json_logs is expected

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            WaypointSettings(_env_file=None, scheduler_interval_seconds=0)


class TestCache:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_force_reload(self):
        first = get_settings()
        assert get_settings(_force_reload=True) is not first

    def test_clear(self, monkeypatch):
        first = get_settings()
        clear_settings_cache()
        monkeypatch.setenv("WAYPOINT_AGENT_MAX_TURNS", "3")
        second = get_settings()
        assert second is not first
        assert second.agent_max_turns == 3
