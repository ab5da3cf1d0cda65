"""Pre-flight interview schema.

The pre-flight is the clarification interview that precedes checkpoint
generation. Its only hand-off artifact is the ordered list of test steps
produced on approval.
"""

from datetime import datetime
from enum import Enum
from typing import Union

from pydantic import BaseModel, Field

from .common import new_id


class QuestionCategory(str, Enum):
    SCOPE = "scope"
    USERS = "users"
    WORKFLOW = "workflow"
    DATA = "data"
    VALIDATION = "validation"
    INTEGRATION = "integration"


class QuestionType(str, Enum):
    """Answer shape expected by a question.

    text -> str, multi-select -> list[str] drawn from options,
    steps -> list[WorkflowStep], list -> list[str].
    """

    TEXT = "text"
    MULTI_SELECT = "multi-select"
    STEPS = "steps"
    LIST = "list"


class PreFlightStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    APPROVED = "approved"


class AmbiguityStatus(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"


class WorkflowStep(BaseModel):
    """One user step given as the answer to the workflow question."""

    action: str = Field(..., min_length=1, description="What the user does")
    expected: str | None = Field(None, description="What should happen")
    element: str | None = Field(None, description="Locator hint")


Answer = Union[str, list[WorkflowStep], list[str]]


class Question(BaseModel):
    """A clarifying question in the pre-flight interview."""

    id: str = Field(default_factory=new_id)
    category: QuestionCategory
    text: str
    type: QuestionType = QuestionType.TEXT
    options: list[str] = Field(default_factory=list)
    required: bool = False
    answered: bool = False
    answer: Answer | None = None
    answered_at: datetime | None = None


class AnswerRecord(BaseModel):
    """Timestamped record of an answered question."""

    question_id: str
    category: QuestionCategory
    question: str
    answer: Answer
    answered_at: datetime = Field(default_factory=datetime.now)


class Ambiguity(BaseModel):
    """An open point that must be settled before approval."""

    id: str = Field(default_factory=new_id)
    description: str
    options: list[str] = Field(default_factory=list)
    status: AmbiguityStatus = AmbiguityStatus.UNRESOLVED
    resolution: str | None = None
    flagged_at: datetime = Field(default_factory=datetime.now)
    resolved_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status == AmbiguityStatus.RESOLVED


class AmbiguityResolution(BaseModel):
    issue: str
    resolution: str | None = None


class PreFlightSummary(BaseModel):
    """Answers grouped by category, built on approval."""

    feature_request: str
    generated_at: datetime = Field(default_factory=datetime.now)
    scope: Answer | None = None
    users: Answer | None = None
    workflow: Answer | None = None
    data: Answer | None = None
    validation: Answer | None = None
    integration: Answer | None = None
    ambiguity_resolutions: list[AmbiguityResolution] = Field(default_factory=list)


class TestStep(BaseModel):
    """An approved step, converted 1:1 into a checkpoint."""

    __test__ = False  # not a pytest test class

    index: int = Field(1, ge=1)
    action: str
    expected_result: str
    element: str | None = None


class PreFlight(BaseModel):
    """Complete pre-flight record."""

    id: str = Field(default_factory=new_id)
    feature_request: str = ""
    status: PreFlightStatus = PreFlightStatus.IN_PROGRESS
    started_at: datetime = Field(default_factory=datetime.now)
    questions: list[Question] = Field(default_factory=list)
    answers: list[AnswerRecord] = Field(default_factory=list)
    ambiguities: list[Ambiguity] = Field(default_factory=list)
    summary: PreFlightSummary | None = None
    steps: list[TestStep] = Field(default_factory=list)
    approved: bool = False
    approved_at: datetime | None = None
    completed_at: datetime | None = Field(
        None, description="When the runner consumed this pre-flight"
    )

    def is_complete(self) -> bool:
        """All required questions answered and all ambiguities resolved."""
        required_answered = all(q.answered for q in self.questions if q.required)
        ambiguities_resolved = all(a.is_resolved for a in self.ambiguities)
        return required_answered and ambiguities_resolved
