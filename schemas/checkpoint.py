"""Checkpoint schema.

A checkpoint is one testable assertion presented to the operator for a
pass/fail judgement.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .common import new_id
from .feedback import Feedback


class CheckpointStatus(str, Enum):
    """Checkpoint resolution status."""

    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class DetectedField(BaseModel):
    """A form control or button detected on the page under test."""

    name: str | None = None
    type: str = Field("text", description="Input type, tag name, or 'button'")
    label: str | None = None
    required: bool = False
    value: str | None = None
    action: str | None = Field(None, description="'click' or 'navigate' for buttons")


class ScreenshotPair(BaseModel):
    """Opaque screenshot references taken around a checkpoint."""

    before: str | None = None
    after: str | None = None


class CheckpointTiming(BaseModel):
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class Checkpoint(BaseModel):
    """One verification step of a test session."""

    id: str = Field(default_factory=new_id)
    index: int = Field(1, ge=1, description="1-based position in the plan")
    action: str = Field(..., description="What the operator does")
    expected_result: str = Field(..., description="What should happen")
    element: str | None = Field(None, description="Locator hint for the element")
    fields: list[DetectedField] = Field(default_factory=list)
    status: CheckpointStatus = CheckpointStatus.PENDING
    feedback: Feedback | None = None
    screenshot: ScreenshotPair = Field(default_factory=ScreenshotPair)
    timing: CheckpointTiming = Field(default_factory=CheckpointTiming)
    notes: str | None = None
    category: str = "general"
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return self.status == CheckpointStatus.PENDING

    def reset(self) -> None:
        """Return the checkpoint to pending, keeping its identity."""
        self.status = CheckpointStatus.PENDING
        self.feedback = None
        self.screenshot = ScreenshotPair()
        self.timing = CheckpointTiming()
        self.notes = None


class CheckpointStatistics(BaseModel):
    total: int = 0
    pending: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
