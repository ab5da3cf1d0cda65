"""Exceptions raised by the session engine.

StateError and NotFoundError are raised synchronously and surfaced to the
caller for display. Feedback validation problems are reported through
FeedbackCollector.validate_feedback; FeedbackValidationError only wraps that
result when the runner is handed feedback it cannot record.
"""

from typing import Any


class EngineError(Exception):
    """Base class for all engine errors."""

    pass


class StateError(EngineError):
    """Operation is not allowed in the current state."""

    pass


class NoActiveSessionError(StateError):
    def __init__(self, message: str = "No active session. Call start_session first.") -> None:
        super().__init__(message)


class NoActiveCheckpointError(StateError):
    def __init__(self, message: str = "No current checkpoint") -> None:
        super().__init__(message)


class NoActivePreFlightError(StateError):
    def __init__(self, message: str = "No active pre-flight. Call start_pre_flight first.") -> None:
        super().__init__(message)


class SessionBlockedError(StateError):
    def __init__(self, message: str = "Session is blocked. Resolve blockers first.") -> None:
        super().__init__(message)


class SessionPausedError(StateError):
    def __init__(self, message: str = "Session is paused. Resume testing first.") -> None:
        super().__init__(message)


class NotBlockedError(StateError):
    def __init__(self, message: str = "Session is not blocked") -> None:
        super().__init__(message)


class IncompletePreFlightError(StateError):
    def __init__(
        self,
        message: str = (
            "Cannot approve incomplete pre-flight. "
            "Answer all required questions and resolve ambiguities."
        ),
    ) -> None:
        super().__init__(message)


class CheckpointAlreadyResolvedError(StateError):
    """Checkpoint is no longer pending and must be retested first."""

    def __init__(self, checkpoint_id: str, status: str) -> None:
        self.checkpoint_id = checkpoint_id
        self.status = status
        super().__init__(
            f"Checkpoint {checkpoint_id} is already {status}. "
            "Call retest_checkpoint or restart_session to test it again."
        )


class InvalidTransitionError(StateError):
    """Requested status change is not in the transition table."""

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid transition: {from_status} -> {to_status}")


class FeedbackStateError(StateError):
    """Feedback item has already been closed."""

    pass


class NotFoundError(EngineError):
    """Unknown question, ambiguity, feedback or session id."""

    def __init__(self, kind: str, item_id: str) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} not found: {item_id}")


class InvalidUpdateError(EngineError):
    """Session update names a field callers may not set, or a bad value."""

    pass


class InvalidAnswerError(EngineError):
    """Answer shape does not match the question type."""

    pass


class FeedbackValidationError(EngineError):
    """Feedback is missing required fields."""

    def __init__(self, errors: list[Any]) -> None:
        self.errors = errors
        details = "; ".join(getattr(e, "message", str(e)) for e in errors)
        super().__init__(f"Invalid feedback: {details}")


class PersistenceError(EngineError):
    """The session store could not be read or written."""

    pass


class StaleSessionError(PersistenceError):
    """Stored session was changed by another writer since it was loaded."""

    def __init__(self, session_id: str, expected_version: int, stored_version: int) -> None:
        self.session_id = session_id
        self.expected_version = expected_version
        self.stored_version = stored_version
        super().__init__(
            f"Session {session_id} was modified elsewhere "
            f"(expected version {expected_version}, found {stored_version}). "
            "Reload it before saving."
        )
