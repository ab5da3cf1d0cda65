"""Session status state machine."""

from dataclasses import dataclass
from typing import Any

from pipeline.errors import InvalidTransitionError
from schemas.checkpoint import CheckpointStatus
from schemas.session import Session, SessionStatus


@dataclass(frozen=True)
class Transition:
    """Defines a valid status transition."""

    from_status: SessionStatus
    to_status: SessionStatus


class StateMachine:
    """Status transitions for a test session.

    Holds only the transition table and the status bookkeeping; the
    TestRunner decides when each transition fires.
    """

    TRANSITIONS: list[Transition] = [
        # Happy path
        Transition(SessionStatus.CREATED, SessionStatus.PRE_FLIGHT),
        Transition(SessionStatus.PRE_FLIGHT, SessionStatus.TESTING),
        Transition(SessionStatus.TESTING, SessionStatus.COMPLETED),
        # Pre-flight approved with no steps
        Transition(SessionStatus.PRE_FLIGHT, SessionStatus.COMPLETED),
        # Blocker gating
        Transition(SessionStatus.TESTING, SessionStatus.BLOCKED),
        Transition(SessionStatus.BLOCKED, SessionStatus.TESTING),
        # Pause / resume
        Transition(SessionStatus.TESTING, SessionStatus.PAUSED),
        Transition(SessionStatus.PAUSED, SessionStatus.TESTING),
    ]

    # Statuses restart() may leave; restart bypasses the table
    RESTARTABLE = {
        SessionStatus.TESTING,
        SessionStatus.PAUSED,
        SessionStatus.BLOCKED,
        SessionStatus.COMPLETED,
    }

    def __init__(self, session: Session) -> None:
        self.session = session

        # Build transition map for quick lookup
        self._transition_map: dict[SessionStatus, list[SessionStatus]] = {}
        for t in self.TRANSITIONS:
            self._transition_map.setdefault(t.from_status, []).append(t.to_status)

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    def can_transition(self, to_status: SessionStatus) -> bool:
        return to_status in self._transition_map.get(self.session.status, [])

    def transition(self, to_status: SessionStatus) -> None:
        """Move the session to a new status.

        Raises:
            InvalidTransitionError: If the table has no such transition
        """
        if not self.can_transition(to_status):
            raise InvalidTransitionError(self.session.status.value, to_status.value)
        self.session.status = to_status
        self.session.touch()

    def restart(self) -> None:
        """Return to testing from any restartable status."""
        if self.session.status not in self.RESTARTABLE:
            raise InvalidTransitionError(self.session.status.value, SessionStatus.TESTING.value)
        self.session.status = SessionStatus.TESTING
        self.session.touch()

    def get_valid_next_statuses(self) -> list[SessionStatus]:
        return list(self._transition_map.get(self.session.status, []))

    def is_completed(self) -> bool:
        return self.session.status == SessionStatus.COMPLETED

    def is_blocked(self) -> bool:
        return self.session.status == SessionStatus.BLOCKED

    def get_progress_summary(self) -> dict[str, Any]:
        """Get a summary of checkpoint progress.

        Returns:
            Progress summary dict
        """
        plan = self.session.plan
        resolved = sum(1 for c in plan if c.status != CheckpointStatus.PENDING)
        total = len(plan)

        return {
            "session_id": self.session.id,
            "status": self.session.status.value,
            "current_checkpoint": min(self.session.current_checkpoint_index + 1, total),
            "progress": f"{resolved}/{total}",
            "progress_percent": round(resolved / total * 100) if total > 0 else 0,
            "checkpoints": {c.id: c.status.value for c in plan},
        }
