"""Tests for run records and the status state machine."""

from datetime import timedelta

import pytest

from waypoint.core.errors import InvalidTransitionError
from waypoint.core.timestamps import utc_now
from waypoint.runs.models import (
    RUN_VALID_TRANSITIONS,
    Run,
    RunStatus,
    ToolCallRecord,
    validate_run_transition,
)


class TestRunStatus:
    def test_terminal(self):
        assert RunStatus.RUNNING.is_terminal is False
        assert RunStatus.COMPLETED.is_terminal is True
        assert RunStatus.FAILED.is_terminal is True

    def test_terminal_states_have_no_exits(self):
        assert RUN_VALID_TRANSITIONS[RunStatus.COMPLETED] == frozenset()
        assert RUN_VALID_TRANSITIONS[RunStatus.FAILED] == frozenset()


class TestValidateTransition:
    @pytest.mark.parametrize("target", [RunStatus.COMPLETED, RunStatus.FAILED])
    def test_running_can_finish(self, target):
        validate_run_transition(RunStatus.RUNNING, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RunStatus.COMPLETED, RunStatus.FAILED),
            (RunStatus.FAILED, RunStatus.COMPLETED),
            (RunStatus.COMPLETED, RunStatus.RUNNING),
            (RunStatus.RUNNING, RunStatus.RUNNING),
        ],
    )
    def test_illegal(self, current, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_run_transition(current, target, run_id="run_1")
        assert exc_info.value.context.run_id == "run_1"


class TestRun:
    def test_phase_and_duration(self):
        started = utc_now()
        run = Run(id="run_1", agent_name="a", checkpoint={"phase": "collecting"}, started_at=started)
        assert run.phase == "collecting"
        assert run.duration_seconds is None

        run.ended_at = started + timedelta(seconds=2)
        assert run.duration_seconds == 2.0

    def test_phase_missing(self):
        assert Run(id="run_1", agent_name="a").phase is None

    def test_dict_round_trip(self):
        run = Run(
            id="run_1",
            agent_name="research-agent",
            status=RunStatus.COMPLETED,
            input={"topic": "rust"},
            input_digest="abcd",
            checkpoint={"phase": "completed"},
            result={"ok": True},
            session_id="sess-1",
            tool_calls=[ToolCallRecord(tool="WebSearch", input={"q": "rust"}, output="3 hits")],
            ended_at=utc_now(),
        )
        restored = Run.from_dict(run.to_dict())
        assert restored == run

    def test_from_dict_defaults(self):
        run = Run.from_dict({"id": "run_1", "agent_name": "a"})
        assert run.status is RunStatus.RUNNING
        assert run.checkpoint == {}
        assert run.tool_calls == []
        assert run.started_at is not None
