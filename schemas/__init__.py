"""Schemas module for test session state.

Provides Pydantic models for:
- Pre-flight interviews (questions, answers, ambiguities, test steps)
- Checkpoints
- Feedback
- Sessions, save points and hand-offs
"""

from .checkpoint import (
    Checkpoint,
    CheckpointStatistics,
    CheckpointStatus,
    CheckpointTiming,
    DetectedField,
    ScreenshotPair,
)
from .feedback import (
    Feedback,
    FeedbackCategory,
    FeedbackExport,
    FeedbackInput,
    FeedbackPriority,
    FeedbackStatus,
    FeedbackSummary,
    FieldError,
    IssueReference,
    ValidationResult,
)
from .preflight import (
    Ambiguity,
    AmbiguityResolution,
    AmbiguityStatus,
    Answer,
    AnswerRecord,
    PreFlight,
    PreFlightStatus,
    PreFlightSummary,
    Question,
    QuestionCategory,
    QuestionType,
    TestStep,
    WorkflowStep,
)
from .session import (
    Blocker,
    Handoff,
    HandoffPackage,
    NextStep,
    NextStepPriority,
    RestartResult,
    RunnerState,
    RunSummary,
    SavePoint,
    SavePointSnapshot,
    Session,
    SessionCollection,
    SessionExport,
    SessionMetadata,
    SessionOverview,
    SessionProgress,
    SessionStatus,
)

__all__ = [
    # Checkpoint
    "Checkpoint",
    "CheckpointStatistics",
    "CheckpointStatus",
    "CheckpointTiming",
    "DetectedField",
    "ScreenshotPair",
    # Feedback
    "Feedback",
    "FeedbackCategory",
    "FeedbackExport",
    "FeedbackInput",
    "FeedbackPriority",
    "FeedbackStatus",
    "FeedbackSummary",
    "FieldError",
    "IssueReference",
    "ValidationResult",
    # Pre-flight
    "Ambiguity",
    "AmbiguityResolution",
    "AmbiguityStatus",
    "Answer",
    "AnswerRecord",
    "PreFlight",
    "PreFlightStatus",
    "PreFlightSummary",
    "Question",
    "QuestionCategory",
    "QuestionType",
    "TestStep",
    "WorkflowStep",
    # Session
    "Blocker",
    "Handoff",
    "HandoffPackage",
    "NextStep",
    "NextStepPriority",
    "RestartResult",
    "RunnerState",
    "RunSummary",
    "SavePoint",
    "SavePointSnapshot",
    "Session",
    "SessionCollection",
    "SessionExport",
    "SessionMetadata",
    "SessionOverview",
    "SessionProgress",
    "SessionStatus",
]
