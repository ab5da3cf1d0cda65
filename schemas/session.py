"""Test session state schema.

The session is the central state object of a testing run. It is mutated in
memory by the TestRunner and persisted as a whole by the SessionManager.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .checkpoint import Checkpoint
from .common import new_id
from .feedback import Feedback
from .preflight import PreFlight


class SessionStatus(str, Enum):
    """Overall session status."""

    CREATED = "created"
    PRE_FLIGHT = "pre-flight"
    TESTING = "testing"
    PAUSED = "paused"  # Operator stepped away, resume later
    BLOCKED = "blocked"  # Waiting on blocker resolution, not a failure
    COMPLETED = "completed"


ACTIVE_STATUSES = (
    SessionStatus.PRE_FLIGHT,
    SessionStatus.TESTING,
    SessionStatus.PAUSED,
    SessionStatus.BLOCKED,
)


class Blocker(BaseModel):
    """A blocker-priority rejection that halts progress."""

    checkpoint_id: str
    feedback: Feedback


class SessionMetadata(BaseModel):
    github_issue: str | None = None
    assigned_to: str | None = None
    environment: str = "dev"
    version: str = "1.0.0"


class SavePointSnapshot(BaseModel):
    """Independent copies of the progress records at save time."""

    checkpoints: list[Checkpoint] = Field(default_factory=list)
    feedback: list[Feedback] = Field(default_factory=list)
    blockers: list[Blocker] = Field(default_factory=list)


class SavePoint(BaseModel):
    """Point-in-time snapshot of session progress."""

    id: str = Field(default_factory=new_id)
    saved_at: datetime = Field(default_factory=datetime.now)
    notes: str = ""
    status: SessionStatus
    checkpoint_progress: int = Field(0, description="Resolved checkpoints at save time")
    current_checkpoint_index: int = 0
    snapshot: SavePointSnapshot = Field(default_factory=SavePointSnapshot)

    @classmethod
    def capture(cls, session: "Session", notes: str = "") -> "SavePoint":
        """Build a save point whose snapshot shares nothing with the session."""
        return cls(
            notes=notes,
            status=session.status,
            checkpoint_progress=len(session.checkpoints),
            current_checkpoint_index=session.current_checkpoint_index,
            snapshot=SavePointSnapshot(
                checkpoints=[c.model_copy(deep=True) for c in session.checkpoints],
                feedback=[f.model_copy(deep=True) for f in session.feedback],
                blockers=[b.model_copy(deep=True) for b in session.blockers],
            ),
        )


class RunSummary(BaseModel):
    """Counts computed when a session completes."""

    total_checkpoints: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    blockers: int = Field(0, description="Blocker feedback items")
    nice_to_have: int = Field(0, description="Nice-to-have feedback items")


class NextStepPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class NextStep(BaseModel):
    priority: NextStepPriority
    action: str
    details: list[str] = Field(default_factory=list)


class HandoffPackage(BaseModel):
    feature_name: str
    original_request: str | None = None
    pre_flight: PreFlight | None = None
    checkpoints: list[Checkpoint] = Field(default_factory=list)
    feedback: list[Feedback] = Field(default_factory=list)
    screenshots: list[str] = Field(default_factory=list)
    status: SessionStatus
    recommended_next_steps: list[NextStep] = Field(default_factory=list)


class Handoff(BaseModel):
    """Bundle summarizing a session for another operator."""

    id: str = Field(default_factory=new_id)
    session_id: str
    prepared_at: datetime = Field(default_factory=datetime.now)
    prepared_by: str = "unknown"
    notes: str = ""
    package: HandoffPackage


class Session(BaseModel):
    """Complete test session.

    `checkpoints` holds one immutable snapshot per resolution, in order.
    `plan` holds the live checkpoint records the runner walks through, so a
    persisted session can be resumed in another process.
    """

    # Identity
    id: str = Field(default_factory=new_id)
    feature_name: str = Field(..., description="Feature under test")

    # Status
    status: SessionStatus = SessionStatus.CREATED

    # Timing
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None

    # Pre-flight and live run state
    pre_flight: PreFlight | None = None
    plan: list[Checkpoint] = Field(default_factory=list)
    current_checkpoint_index: int = Field(0, ge=0)
    blockers: list[Blocker] = Field(default_factory=list)

    # Results
    checkpoints: list[Checkpoint] = Field(default_factory=list)
    feedback: list[Feedback] = Field(default_factory=list)
    screenshots: list[str] = Field(default_factory=list)
    save_points: list[SavePoint] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    metadata: SessionMetadata = Field(default_factory=SessionMetadata)
    options: dict[str, Any] = Field(default_factory=dict)
    handoff: Handoff | None = None
    summary: RunSummary | None = None

    # Persistence bookkeeping
    version: int = Field(0, description="Optimistic concurrency counter")
    imported_at: datetime | None = None
    imported_from: str | None = None

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def get_current_checkpoint(self) -> Checkpoint | None:
        if 0 <= self.current_checkpoint_index < len(self.plan):
            return self.plan[self.current_checkpoint_index]
        return None

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        return next((c for c in self.plan if c.id == checkpoint_id), None)

    def get_feedback(self, feedback_id: str) -> Feedback | None:
        return next((f for f in self.feedback if f.id == feedback_id), None)


class SessionProgress(BaseModel):
    checkpoints_completed: int = 0
    total_checkpoints: int = 0
    feedback_items: int = 0
    save_points: int = 0


class SessionOverview(BaseModel):
    """Read-only projection used to list and resume sessions."""

    id: str
    feature_name: str
    status: SessionStatus
    created_at: datetime
    updated_at: datetime
    progress: SessionProgress
    blockers: int = 0
    last_save_point: SavePoint | None = None
    last_notes: str | None = None


class SessionExport(BaseModel):
    exported_at: datetime = Field(default_factory=datetime.now)
    session: Session


class SessionCollection(BaseModel):
    """The persisted document: every session under one store key."""

    saved_at: datetime = Field(default_factory=datetime.now)
    sessions: list[Session] = Field(default_factory=list)


class RestartResult(BaseModel):
    """Results captured from the live session before a restart."""

    reset_data: bool = False
    previous_results: list[Checkpoint] = Field(default_factory=list)
    previous_feedback: list[Feedback] = Field(default_factory=list)


class RunnerState(BaseModel):
    """Detached snapshot of the runner for display or inspection."""

    status: str = Field("idle", description="'idle' or the session status")
    session: Session | None = None
    current_checkpoint: Checkpoint | None = None
    blockers: list[Blocker] = Field(default_factory=list)
