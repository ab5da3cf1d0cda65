"""Tests for the session status state machine."""

import pytest

from orchestrator import StateMachine
from pipeline.errors import InvalidTransitionError
from schemas.checkpoint import Checkpoint, CheckpointStatus
from schemas.session import Session, SessionStatus


def _machine(status: SessionStatus = SessionStatus.CREATED) -> StateMachine:
    return StateMachine(Session(feature_name="Billing export", status=status))


class TestTransitions:
    def test_happy_path(self):
        """created -> pre-flight -> testing -> completed."""
        machine = _machine()
        for status in (SessionStatus.PRE_FLIGHT, SessionStatus.TESTING, SessionStatus.COMPLETED):
            machine.transition(status)
        assert machine.is_completed()

    def test_invalid_transition(self):
        """Skipping pre-flight is refused and leaves the status alone."""
        machine = _machine()

        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.transition(SessionStatus.TESTING)

        assert exc_info.value.from_status == "created"
        assert exc_info.value.to_status == "testing"
        assert machine.status == SessionStatus.CREATED

    def test_blocked_only_returns_to_testing(self):
        """A blocked session cannot pause or complete."""
        machine = _machine(SessionStatus.BLOCKED)

        assert machine.is_blocked()
        assert machine.get_valid_next_statuses() == [SessionStatus.TESTING]
        assert not machine.can_transition(SessionStatus.PAUSED)
        assert not machine.can_transition(SessionStatus.COMPLETED)

    def test_paused_resumes_to_testing(self):
        """Paused goes back to testing only."""
        machine = _machine(SessionStatus.PAUSED)
        assert machine.get_valid_next_statuses() == [SessionStatus.TESTING]

    def test_transition_touches_session(self):
        """Status changes update the session timestamp."""
        machine = _machine()
        before = machine.session.updated_at

        machine.transition(SessionStatus.PRE_FLIGHT)

        assert machine.session.updated_at >= before


class TestRestart:
    @pytest.mark.parametrize(
        "status",
        [
            SessionStatus.TESTING,
            SessionStatus.PAUSED,
            SessionStatus.BLOCKED,
            SessionStatus.COMPLETED,
        ],
    )
    def test_restartable(self, status):
        """Restart returns to testing from any status past pre-flight."""
        machine = _machine(status)
        machine.restart()
        assert machine.status == SessionStatus.TESTING

    @pytest.mark.parametrize("status", [SessionStatus.CREATED, SessionStatus.PRE_FLIGHT])
    def test_not_restartable(self, status):
        """There is nothing to restart before testing."""
        with pytest.raises(InvalidTransitionError):
            _machine(status).restart()


def test_progress_summary():
    """Progress counts resolved plan checkpoints."""
    machine = _machine(SessionStatus.TESTING)
    machine.session.plan = [
        Checkpoint(index=i, action=f"a{i}", expected_result="ok") for i in range(1, 5)
    ]
    machine.session.plan[0].status = CheckpointStatus.PASSED
    machine.session.plan[1].status = CheckpointStatus.SKIPPED
    machine.session.current_checkpoint_index = 2

    summary = machine.get_progress_summary()

    assert summary["progress"] == "2/4"
    assert summary["progress_percent"] == 50
    assert summary["current_checkpoint"] == 3
    assert list(summary["checkpoints"].values()) == ["passed", "skipped", "pending", "pending"]


def test_progress_summary_empty_plan():
    """An empty plan reports zero progress."""
    summary = _machine(SessionStatus.PRE_FLIGHT).get_progress_summary()
    assert summary["progress"] == "0/0"
    assert summary["progress_percent"] == 0
