"""Test runner orchestrating a checkpoint session."""

import logging
from datetime import datetime
from typing import Any

from feedback.collector import FeedbackCollector
from pipeline.errors import (
    CheckpointAlreadyResolvedError,
    FeedbackValidationError,
    IncompletePreFlightError,
    InvalidTransitionError,
    NoActiveCheckpointError,
    NoActiveSessionError,
    NotBlockedError,
    SessionBlockedError,
    SessionPausedError,
)
from schemas.checkpoint import Checkpoint, CheckpointStatus, ScreenshotPair
from schemas.feedback import Feedback, FeedbackInput, FeedbackPriority
from schemas.preflight import PreFlight
from schemas.session import (
    Blocker,
    RestartResult,
    RunnerState,
    RunSummary,
    SavePoint,
    Session,
    SessionMetadata,
    SessionStatus,
)

from .checkpoints import CheckpointManager
from .events import EventBus, Listener, RunnerEvent
from .state_machine import StateMachine

logger = logging.getLogger(__name__)

IDLE = "idle"


class TestRunner:
    """Drives one session through pre-flight, checkpoints and completion.

    The runner owns the live Session and mutates it only through the
    operations below. Every transition emits an event on the bus before the
    call returns.
    """

    __test__ = False

    def __init__(
        self,
        feedback_collector: FeedbackCollector | None = None,
        checkpoint_manager: CheckpointManager | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            feedback_collector: Collector bound to the live session's feedback
            checkpoint_manager: Builds and tracks the checkpoint plan
            event_bus: Bus used to notify subscribers of transitions
        """
        self.feedback = feedback_collector or FeedbackCollector()
        self.checkpoints = checkpoint_manager or CheckpointManager()
        self.events = event_bus or EventBus()
        self.session: Session | None = None
        self._machine: StateMachine | None = None

    # Subscription

    def on(self, event: RunnerEvent | str, callback: Listener) -> None:
        self.events.on(event, callback)

    def off(self, event: RunnerEvent | str, callback: Listener) -> None:
        self.events.off(event, callback)

    # Internal helpers

    @property
    def status(self) -> str:
        return self.session.status.value if self.session else IDLE

    def _bind(self, session: Session) -> None:
        self.session = session
        self._machine = StateMachine(session)
        self.feedback.load(session.feedback)
        self.checkpoints.load(session.plan)

    def _require_session(self) -> Session:
        if self.session is None or self._machine is None:
            raise NoActiveSessionError()
        return self.session

    def _require_pending_checkpoint(self) -> Checkpoint:
        session = self._require_session()
        if session.status == SessionStatus.BLOCKED:
            raise SessionBlockedError()
        if session.status == SessionStatus.PAUSED:
            raise SessionPausedError()

        checkpoint = session.get_current_checkpoint()
        if session.status != SessionStatus.TESTING or checkpoint is None:
            raise NoActiveCheckpointError()
        if not checkpoint.is_pending:
            raise CheckpointAlreadyResolvedError(checkpoint.id, checkpoint.status.value)
        return checkpoint

    def _checkpoint_ready(self) -> None:
        checkpoint = self.session.get_current_checkpoint()
        checkpoint.timing.started_at = datetime.now()
        logger.info(
            "Checkpoint %d/%d ready: %s",
            checkpoint.index,
            len(self.session.plan),
            checkpoint.action,
        )
        self.events.emit(RunnerEvent.CHECKPOINT_READY, checkpoint)

    def _resolve(
        self,
        checkpoint: Checkpoint,
        status: CheckpointStatus,
        notes: str | None = None,
        screenshot: str | ScreenshotPair | None = None,
    ) -> Checkpoint:
        """Apply a resolution and append its snapshot to the session."""
        checkpoint.status = status
        if notes:
            checkpoint.notes = notes
        if screenshot is not None:
            self._attach_screenshot(checkpoint, screenshot)
        checkpoint.timing.completed_at = datetime.now()

        snapshot = checkpoint.model_copy(deep=True)
        self.session.checkpoints.append(snapshot)
        self.session.touch()
        return snapshot

    def _attach_screenshot(self, checkpoint: Checkpoint, screenshot: str | ScreenshotPair) -> None:
        if isinstance(screenshot, ScreenshotPair):
            checkpoint.screenshot = screenshot.model_copy()
        else:
            checkpoint.screenshot.after = screenshot
        for ref in (checkpoint.screenshot.before, checkpoint.screenshot.after):
            if ref and ref not in self.session.screenshots:
                self.session.screenshots.append(ref)

    def _advance(self) -> None:
        self.session.current_checkpoint_index += 1
        if self.session.current_checkpoint_index >= len(self.session.plan):
            self._complete_session()
        else:
            self._checkpoint_ready()

    def _complete_session(self) -> None:
        session = self.session
        counts = {status: 0 for status in CheckpointStatus}
        for checkpoint in session.plan:
            counts[checkpoint.status] += 1
        blockers = sum(1 for f in session.feedback if f.priority == FeedbackPriority.BLOCKER)

        session.summary = RunSummary(
            total_checkpoints=len(session.plan),
            passed=counts[CheckpointStatus.PASSED],
            failed=counts[CheckpointStatus.FAILED],
            skipped=counts[CheckpointStatus.SKIPPED],
            blockers=blockers,
            nice_to_have=len(session.feedback) - blockers,
        )
        session.completed_at = datetime.now()
        self._machine.transition(SessionStatus.COMPLETED)
        logger.info(
            "Session %s completed: %d passed, %d failed, %d skipped",
            session.id,
            session.summary.passed,
            session.summary.failed,
            session.summary.skipped,
        )
        self.events.emit(RunnerEvent.SESSION_COMPLETED, session.summary)

    def _sync_checkpoint_feedback(self, item: Feedback) -> None:
        """Point the live checkpoint at the updated feedback record."""
        checkpoint = self.session.get_checkpoint(item.checkpoint_id) if item.checkpoint_id else None
        if checkpoint and checkpoint.feedback and checkpoint.feedback.id == item.id:
            checkpoint.feedback = item

    # Session lifecycle

    def start_session(
        self,
        feature_name: str,
        options: dict[str, Any] | None = None,
        metadata: SessionMetadata | None = None,
    ) -> Session:
        """Create a new session and enter pre-flight.

        Args:
            feature_name: Feature under test
            options: Free-form run options stored with the session
            metadata: Environment, assignee and tracking metadata

        Returns:
            The new session, now in pre-flight
        """
        if self.session and self.session.status != SessionStatus.COMPLETED:
            logger.warning("Replacing active session %s", self.session.id)

        session = Session(
            feature_name=feature_name,
            options=dict(options or {}),
            metadata=metadata or SessionMetadata(),
        )
        self._bind(session)
        self._machine.transition(SessionStatus.PRE_FLIGHT)

        logger.info("Session %s started for '%s'", session.id, feature_name)
        self.events.emit(RunnerEvent.SESSION_STARTED, session)
        return session

    def resume_session(self, session: Session) -> Session:
        """Rebind the runner to a persisted session in its saved state."""
        self._bind(session)
        logger.info("Resumed session %s (%s)", session.id, session.status.value)
        return session

    def complete_pre_flight(self, pre_flight: PreFlight | dict[str, Any]) -> list[Checkpoint]:
        """Turn an approved pre-flight into the checkpoint plan and start testing.

        Raises:
            IncompletePreFlightError: Pre-flight has not been approved
            InvalidTransitionError: Session is not in pre-flight
        """
        session = self._require_session()
        if not self._machine.can_transition(SessionStatus.TESTING):
            raise InvalidTransitionError(session.status.value, SessionStatus.TESTING.value)

        if not isinstance(pre_flight, PreFlight):
            pre_flight = PreFlight.model_validate(pre_flight)
        if not pre_flight.approved:
            raise IncompletePreFlightError("Pre-flight must be approved before testing")

        pre_flight.completed_at = datetime.now()
        session.pre_flight = pre_flight
        session.plan = self.checkpoints.generate_from_steps(pre_flight.steps)
        session.current_checkpoint_index = 0

        if not session.plan:
            logger.info("Pre-flight %s approved with no steps", pre_flight.id)
            self.events.emit(RunnerEvent.PRE_FLIGHT_COMPLETED, session.plan)
            self._complete_session()
            return session.plan

        self._machine.transition(SessionStatus.TESTING)
        logger.info("Testing started with %d checkpoint(s)", len(session.plan))
        self.events.emit(RunnerEvent.PRE_FLIGHT_COMPLETED, session.plan)
        self._checkpoint_ready()
        return session.plan

    # Checkpoint decisions

    def approve_checkpoint(
        self,
        notes: str | None = None,
        screenshot: str | ScreenshotPair | None = None,
    ) -> Checkpoint:
        """Mark the current checkpoint passed and move on.

        Returns:
            The snapshot appended to the session
        """
        checkpoint = self._require_pending_checkpoint()
        snapshot = self._resolve(checkpoint, CheckpointStatus.PASSED, notes, screenshot)

        logger.info("Checkpoint %d approved", checkpoint.index)
        self.events.emit(RunnerEvent.CHECKPOINT_APPROVED, snapshot)
        self._advance()
        return snapshot

    def reject_checkpoint(self, feedback: FeedbackInput) -> Feedback:
        """Mark the current checkpoint failed with structured feedback.

        A blocker halts the session until resolve_blockers is called; a
        nice-to-have is logged and testing moves on.

        Raises:
            FeedbackValidationError: Feedback is missing or has bad fields
        """
        checkpoint = self._require_pending_checkpoint()

        result = self.feedback.validate_feedback(feedback)
        if not result.valid:
            raise FeedbackValidationError(result.errors)

        item = self.feedback.create_feedback(
            {**feedback, "checkpoint_id": checkpoint.id, "checkpoint_index": checkpoint.index}
        )
        checkpoint.feedback = item
        snapshot = self._resolve(checkpoint, CheckpointStatus.FAILED, screenshot=item.screenshot)

        logger.info("Checkpoint %d rejected (%s)", checkpoint.index, item.priority.value)
        self.events.emit(RunnerEvent.CHECKPOINT_REJECTED, {"checkpoint": snapshot, "feedback": item})

        if item.is_blocker:
            self.session.blockers.append(Blocker(checkpoint_id=checkpoint.id, feedback=item))
            self._machine.transition(SessionStatus.BLOCKED)
            logger.info("Session %s blocked at checkpoint %d", self.session.id, checkpoint.index)
            self.events.emit(RunnerEvent.SESSION_BLOCKED, list(self.session.blockers))
        else:
            self._advance()
        return item

    def skip_checkpoint(self, reason: str | None = None) -> Checkpoint:
        """Mark the current checkpoint skipped and move on."""
        checkpoint = self._require_pending_checkpoint()
        snapshot = self._resolve(checkpoint, CheckpointStatus.SKIPPED, notes=reason)

        logger.info("Checkpoint %d skipped", checkpoint.index)
        self.events.emit(RunnerEvent.CHECKPOINT_SKIPPED, snapshot)
        self._advance()
        return snapshot

    def resolve_blockers(self, resolution: str | None = None) -> list[Blocker]:
        """Clear blockers and return to testing at the same checkpoint.

        The failed checkpoint is not retried or skipped automatically; call
        retest_checkpoint to test it again.

        Args:
            resolution: When given, blocker feedback is marked resolved with it

        Raises:
            NotBlockedError: Session is not blocked
        """
        session = self._require_session()
        if session.status != SessionStatus.BLOCKED:
            raise NotBlockedError()

        resolved = list(session.blockers)
        if resolution:
            for blocker in resolved:
                item = self.feedback.get_feedback(blocker.feedback.id)
                if item.is_open:
                    self.feedback.resolve_feedback(item.id, resolution)
                    self._sync_checkpoint_feedback(item)

        session.blockers.clear()
        self._machine.transition(SessionStatus.TESTING)

        logger.info("Blockers resolved for session %s", session.id)
        self.events.emit(RunnerEvent.BLOCKERS_RESOLVED, resolved)
        self.events.emit(RunnerEvent.CHECKPOINT_READY, session.get_current_checkpoint())
        return resolved

    def retest_checkpoint(self) -> Checkpoint:
        """Return the current resolved checkpoint to pending, keeping its id."""
        session = self._require_session()
        if session.status == SessionStatus.BLOCKED:
            raise SessionBlockedError()
        if session.status == SessionStatus.PAUSED:
            raise SessionPausedError()

        checkpoint = session.get_current_checkpoint()
        if session.status != SessionStatus.TESTING or checkpoint is None:
            raise NoActiveCheckpointError()

        if not checkpoint.is_pending:
            checkpoint.reset()
            session.touch()
            logger.info("Checkpoint %d reset for retest", checkpoint.index)
        self._checkpoint_ready()
        return checkpoint

    def restart_session(self, reset_data: bool = False) -> RestartResult:
        """Start the checkpoint walk over from the first checkpoint.

        Results recorded so far are returned and removed from the session.
        Save points are kept.

        Args:
            reset_data: Also clear screenshots and notes
        """
        session = self._require_session()
        result = RestartResult(
            reset_data=reset_data,
            previous_results=list(session.checkpoints),
            previous_feedback=list(session.feedback),
        )
        self._machine.restart()

        for checkpoint in session.plan:
            checkpoint.reset()
        session.blockers.clear()
        session.current_checkpoint_index = 0
        session.checkpoints.clear()
        session.feedback.clear()
        session.summary = None
        session.completed_at = None
        if reset_data:
            session.screenshots.clear()
            session.notes.clear()

        logger.info("Session %s restarted (reset_data=%s)", session.id, reset_data)
        self.events.emit(RunnerEvent.SESSION_RESTARTED, result)
        if session.plan:
            self._checkpoint_ready()
        else:
            self._complete_session()
        return result

    def save_session(self, notes: str = "") -> SavePoint:
        """Record a save point of the current progress."""
        session = self._require_session()
        save_point = SavePoint.capture(session, notes)
        session.save_points.append(save_point)
        session.touch()

        logger.info("Save point %s recorded for session %s", save_point.id, session.id)
        self.events.emit(RunnerEvent.SESSION_SAVED, save_point)
        return save_point

    def pause_session(self, notes: str = "") -> SavePoint:
        """Pause testing and record a save point to resume from."""
        session = self._require_session()
        if session.status == SessionStatus.BLOCKED:
            raise SessionBlockedError()
        self._machine.transition(SessionStatus.PAUSED)

        save_point = SavePoint.capture(session, notes)
        session.save_points.append(save_point)

        logger.info("Session %s paused", session.id)
        self.events.emit(RunnerEvent.SESSION_PAUSED, save_point)
        return save_point

    def resume_testing(self) -> Checkpoint | None:
        """Continue a paused session at the checkpoint it stopped on."""
        session = self._require_session()
        if session.status != SessionStatus.PAUSED:
            raise InvalidTransitionError(session.status.value, SessionStatus.TESTING.value)
        self._machine.transition(SessionStatus.TESTING)

        logger.info("Session %s resumed", session.id)
        self.events.emit(RunnerEvent.SESSION_RESUMED, session)
        if session.get_current_checkpoint() is None:
            self._complete_session()
            return None
        self._checkpoint_ready()
        return session.get_current_checkpoint()

    # Queries

    def get_current_checkpoint(self) -> Checkpoint | None:
        if self.session is None or self.session.status in (
            SessionStatus.CREATED,
            SessionStatus.PRE_FLIGHT,
            SessionStatus.COMPLETED,
        ):
            return None
        return self.session.get_current_checkpoint()

    def get_state(self) -> RunnerState:
        """Snapshot of the runner that shares nothing with the live session."""
        if self.session is None:
            return RunnerState()
        current = self.get_current_checkpoint()
        return RunnerState(
            status=self.status,
            session=self.session.model_copy(deep=True),
            current_checkpoint=current.model_copy(deep=True) if current else None,
            blockers=[b.model_copy(deep=True) for b in self.session.blockers],
        )

    def get_session_summary(self) -> dict[str, Any]:
        """Progress counts for the live session."""
        self._require_session()
        summary = self._machine.get_progress_summary()
        summary.update(self.checkpoints.get_statistics().model_dump())
        summary["feedback"] = self.feedback.get_summary().model_dump()
        summary["blockers"] = len(self.session.blockers)
        summary["save_points"] = len(self.session.save_points)
        return summary

    def resolve_feedback(self, feedback_id: str, resolution: str) -> Feedback:
        self._require_session()
        item = self.feedback.resolve_feedback(feedback_id, resolution)
        self._sync_checkpoint_feedback(item)
        self.session.touch()
        return item

    def mark_wont_fix(self, feedback_id: str, reason: str) -> Feedback:
        self._require_session()
        item = self.feedback.mark_wont_fix(feedback_id, reason)
        self._sync_checkpoint_feedback(item)
        self.session.touch()
        return item
