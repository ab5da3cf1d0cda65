"""Feedback schema.

Structured rejection feedback recorded against a checkpoint.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .common import new_id


class FeedbackPriority(str, Enum):
    """How strongly a problem gates further testing."""

    BLOCKER = "blocker"  # Cannot proceed until fixed
    NICE_TO_HAVE = "nice-to-have"  # Log for later, continue testing


class FeedbackCategory(str, Enum):
    """Area of the product the feedback concerns."""

    UI = "ui"
    LOGIC = "logic"
    DATA = "data"
    WORKFLOW = "workflow"
    PERFORMANCE = "performance"
    ACCESSIBILITY = "accessibility"
    OTHER = "other"


class FeedbackStatus(str, Enum):
    """Lifecycle of a feedback item."""

    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    WONT_FIX = "wont-fix"


OPEN_STATUSES = (FeedbackStatus.OPEN, FeedbackStatus.IN_PROGRESS)


class IssueReference(BaseModel):
    """Tracking reference attached by an issue tracker after the fact."""

    tracker: str = Field(..., description="Tracker name (e.g. 'github')")
    id: str = Field(..., description="Issue identifier in the tracker")
    url: str | None = Field(None, description="Link to the issue")
    created_at: datetime = Field(default_factory=datetime.now)


class Feedback(BaseModel):
    """One rejection recorded by the operator."""

    id: str = Field(default_factory=new_id)
    checkpoint_id: str | None = Field(None, description="Checkpoint the feedback is about")
    checkpoint_index: int | None = Field(None, description="1-based checkpoint position")
    field: str | None = Field(None, description="Form field or element at fault")
    field_path: str | None = Field(None, description="Locator path for the field")
    issue: str = Field(..., description="What is wrong")
    expected: str = Field(..., description="What should happen instead")
    priority: FeedbackPriority = FeedbackPriority.NICE_TO_HAVE
    category: FeedbackCategory = FeedbackCategory.OTHER
    screenshot: str | None = Field(None, description="Opaque screenshot reference")
    status: FeedbackStatus = FeedbackStatus.OPEN
    resolution: str | None = None
    external_issue: IssueReference | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    resolved_at: datetime | None = None

    @property
    def is_blocker(self) -> bool:
        return self.priority == FeedbackPriority.BLOCKER

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class FieldError(BaseModel):
    """A single validation problem."""

    field: str
    message: str


class ValidationResult(BaseModel):
    """Outcome of validating feedback input."""

    valid: bool
    errors: list[FieldError] = Field(default_factory=list)


class FeedbackSummary(BaseModel):
    """Aggregate counts over collected feedback."""

    total: int = 0
    blockers: int = 0
    nice_to_have: int = 0
    open: int = 0
    in_progress: int = 0
    resolved: int = 0
    wont_fix: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)


class FeedbackExport(BaseModel):
    """Feedback bundle for hand-off to other tools."""

    exported_at: datetime = Field(default_factory=datetime.now)
    summary: FeedbackSummary
    items: list[Feedback] = Field(default_factory=list)


FeedbackInput = dict[str, Any]
