"""Pre-flight interview management.

The pre-flight runs before any checkpoint exists. It asks a fixed set of
clarifying questions, tracks ambiguities the operator flags, and on approval
turns the workflow answer into the ordered test steps the runner consumes.
"""

import logging
import re
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from pipeline.config import PreFlightConfig
from pipeline.errors import (
    IncompletePreFlightError,
    InvalidAnswerError,
    NoActivePreFlightError,
    NotFoundError,
)
from schemas.preflight import (
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

from .questions import build_questions

logger = logging.getLogger(__name__)

_TEXT = TypeAdapter(str)
_STRINGS = TypeAdapter(list[str])
_STEPS = TypeAdapter(list[WorkflowStep])


class PreFlightManager:
    """Manages the collaborative pre-flight process."""

    def __init__(self, config: PreFlightConfig | None = None) -> None:
        """Initialize pre-flight manager.

        Args:
            config: Question options and quick-mode patterns
        """
        self.config = config or PreFlightConfig()
        self.current: PreFlight | None = None
        self._quick_mode_patterns = [
            re.compile(p, re.IGNORECASE) for p in self.config.all_quick_mode_patterns()
        ]

    def _require_active(self) -> PreFlight:
        if self.current is None:
            raise NoActivePreFlightError()
        return self.current

    def start_pre_flight(self, feature_request: str) -> PreFlight:
        """Start a new pre-flight and make it the active one."""
        self.current = PreFlight(
            feature_request=feature_request,
            questions=build_questions(self.config.user_roles),
        )
        logger.info("Pre-flight %s started", self.current.id)
        return self.current

    def is_quick_mode_eligible(self, change_description: str) -> bool:
        """Whether the change looks low-risk enough to skip the full interview.

        Informational only; nothing in the engine enforces it.
        """
        return any(p.search(change_description) for p in self._quick_mode_patterns)

    def get_question(self, question_id: str) -> Question:
        pre_flight = self._require_active()
        question = next((q for q in pre_flight.questions if q.id == question_id), None)
        if question is None:
            raise NotFoundError("Question", question_id)
        return question

    def get_question_by_category(self, category: QuestionCategory | str) -> Question:
        pre_flight = self._require_active()
        category = QuestionCategory(category)
        question = next((q for q in pre_flight.questions if q.category == category), None)
        if question is None:
            raise NotFoundError("Question", category.value)
        return question

    def answer_question(self, question_id: str, answer: Any) -> Question:
        """Record an answer after checking it matches the question type.

        Raises:
            NotFoundError: Unknown question id
            InvalidAnswerError: Answer shape does not fit the question type
        """
        question = self.get_question(question_id)
        value = self._validate_answer(question, answer)

        question.answered = True
        question.answer = value
        question.answered_at = datetime.now()

        pre_flight = self._require_active()
        # Re-answering replaces the earlier record
        pre_flight.answers = [a for a in pre_flight.answers if a.question_id != question.id]
        pre_flight.answers.append(
            AnswerRecord(
                question_id=question.id,
                category=question.category,
                question=question.text,
                answer=value,
                answered_at=question.answered_at,
            )
        )
        logger.debug("Question %s (%s) answered", question.id, question.category.value)
        return question

    def _validate_answer(self, question: Question, answer: Any) -> Answer:
        try:
            if question.type == QuestionType.TEXT:
                value = _TEXT.validate_python(answer, strict=True)
                if not value.strip():
                    raise InvalidAnswerError(f"Question '{question.text}' needs a non-empty answer")
                return value.strip()

            if question.type == QuestionType.MULTI_SELECT:
                values = _STRINGS.validate_python(answer, strict=True)
                unknown = [v for v in values if question.options and v not in question.options]
                if unknown:
                    raise InvalidAnswerError(
                        f"Unknown option(s) {unknown} for '{question.text}'. "
                        f"Choose from: {', '.join(question.options)}"
                    )
                if not values:
                    raise InvalidAnswerError(f"Select at least one option for '{question.text}'")
                return values

            if question.type == QuestionType.STEPS:
                if not isinstance(answer, list):
                    raise InvalidAnswerError(f"Question '{question.text}' expects a list of steps")
                steps = [
                    {"action": item} if isinstance(item, str) else item for item in answer
                ]
                values = _STEPS.validate_python(steps)
                if not values:
                    raise InvalidAnswerError(f"Question '{question.text}' needs at least one step")
                return values

            values = [v.strip() for v in _STRINGS.validate_python(answer, strict=True) if v.strip()]
            if question.required and not values:
                raise InvalidAnswerError(f"Question '{question.text}' needs at least one item")
            return values
        except ValidationError as e:
            raise InvalidAnswerError(
                f"Invalid {question.type.value} answer for '{question.text}': "
                f"{e.error_count()} problem(s)"
            ) from e

    def flag_ambiguity(self, description: str, options: list[str] | None = None) -> Ambiguity:
        """Record an open point that must be resolved before approval."""
        pre_flight = self._require_active()
        ambiguity = Ambiguity(description=description, options=list(options or []))
        pre_flight.ambiguities.append(ambiguity)
        logger.info("Ambiguity flagged: %s", description)
        return ambiguity

    def resolve_ambiguity(self, ambiguity_id: str, resolution: str) -> Ambiguity:
        pre_flight = self._require_active()
        ambiguity = next((a for a in pre_flight.ambiguities if a.id == ambiguity_id), None)
        if ambiguity is None:
            raise NotFoundError("Ambiguity", ambiguity_id)
        ambiguity.status = AmbiguityStatus.RESOLVED
        ambiguity.resolution = resolution
        ambiguity.resolved_at = datetime.now()
        return ambiguity

    def is_complete(self) -> bool:
        """All required questions answered and all ambiguities resolved."""
        return self._require_active().is_complete()

    def get_unanswered_questions(self) -> list[Question]:
        return [q for q in self._require_active().questions if not q.answered]

    def get_unresolved_ambiguities(self) -> list[Ambiguity]:
        return [a for a in self._require_active().ambiguities if not a.is_resolved]

    def get_answer_by_category(self, category: QuestionCategory | str) -> Answer | None:
        category = QuestionCategory(category)
        record = next(
            (a for a in self._require_active().answers if a.category == category), None
        )
        return record.answer if record else None

    def generate_summary(self) -> PreFlightSummary:
        pre_flight = self._require_active()
        summary = PreFlightSummary(
            feature_request=pre_flight.feature_request,
            ambiguity_resolutions=[
                AmbiguityResolution(issue=a.description, resolution=a.resolution)
                for a in pre_flight.ambiguities
            ],
            **{c.value: self.get_answer_by_category(c) for c in QuestionCategory},
        )
        pre_flight.summary = summary
        return summary

    def generate_test_steps(self) -> list[TestStep]:
        """Derive test steps from the workflow answer only."""
        pre_flight = self._require_active()
        workflow = self.get_answer_by_category(QuestionCategory.WORKFLOW)

        steps: list[TestStep] = []
        if isinstance(workflow, list):
            for i, step in enumerate(workflow, start=1):
                if not isinstance(step, WorkflowStep):
                    continue
                steps.append(
                    TestStep(
                        index=i,
                        action=step.action,
                        expected_result=step.expected or f"Step {i} completes successfully",
                        element=step.element,
                    )
                )

        pre_flight.steps = steps
        return steps

    def approve(self) -> PreFlight:
        """Approve the pre-flight and produce its summary and steps.

        Raises:
            IncompletePreFlightError: Required answers or resolutions missing
        """
        pre_flight = self._require_active()
        if not self.is_complete():
            raise IncompletePreFlightError()

        self.generate_summary()
        self.generate_test_steps()

        pre_flight.approved = True
        pre_flight.approved_at = datetime.now()
        pre_flight.status = PreFlightStatus.APPROVED
        logger.info("Pre-flight %s approved with %d step(s)", pre_flight.id, len(pre_flight.steps))
        return pre_flight

    def export_pre_flight(self) -> dict[str, Any]:
        data = self._require_active().model_dump(mode="json")
        data["exported_at"] = datetime.now().isoformat()
        return data

    def load_pre_flight(self, data: PreFlight | dict[str, Any]) -> PreFlight:
        """Make a previously exported pre-flight the active one."""
        if isinstance(data, PreFlight):
            self.current = data
        else:
            self.current = PreFlight.model_validate(
                {k: v for k, v in data.items() if k != "exported_at"}
            )
        return self.current
