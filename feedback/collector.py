"""Feedback collection and validation."""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from pipeline.errors import FeedbackStateError, NotFoundError
from schemas.feedback import (
    Feedback,
    FeedbackCategory,
    FeedbackExport,
    FeedbackPriority,
    FeedbackStatus,
    FeedbackSummary,
    FieldError,
    IssueReference,
    ValidationResult,
)

logger = logging.getLogger(__name__)

CATEGORY_LABELS: dict[FeedbackCategory, str] = {
    FeedbackCategory.UI: "UI/Visual",
    FeedbackCategory.LOGIC: "Logic/Behavior",
    FeedbackCategory.DATA: "Data/Validation",
    FeedbackCategory.WORKFLOW: "Workflow/Navigation",
    FeedbackCategory.PERFORMANCE: "Performance",
    FeedbackCategory.ACCESSIBILITY: "Accessibility",
    FeedbackCategory.OTHER: "Other",
}


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _is_member(value: Any, enum: type[Enum]) -> bool:
    return isinstance(value, str) and value in {member.value for member in enum}


class FeedbackCollector:
    """Collects and structures feedback from testers.

    The collector works on a list it may share with a live session, so
    status changes made here are visible in the session's feedback records.
    """

    def __init__(self, items: list[Feedback] | None = None) -> None:
        """Initialize the collector.

        Args:
            items: Existing feedback list to manage in place
        """
        self.feedback: list[Feedback] = items if items is not None else []

    def load(self, items: list[Feedback]) -> None:
        """Manage a different feedback list in place."""
        self.feedback = items

    def clear(self) -> None:
        self.feedback.clear()

    def validate_feedback(self, data: dict[str, Any]) -> ValidationResult:
        """Check feedback input without raising.

        Args:
            data: Raw feedback fields (issue, expected, priority, ...)

        Returns:
            ValidationResult listing every problem found
        """
        if not isinstance(data, Mapping):
            return ValidationResult(
                valid=False,
                errors=[FieldError(field="feedback", message="Feedback must be a mapping of fields")],
            )

        errors: list[FieldError] = []

        if _is_blank(data.get("issue")):
            errors.append(FieldError(field="issue", message="Issue description is required"))

        if _is_blank(data.get("expected")):
            errors.append(FieldError(field="expected", message="Expected behavior is required"))

        # None falls back to the default, as in create_feedback
        priority = _enum_value(data.get("priority"))
        if priority is not None and not _is_member(priority, FeedbackPriority):
            errors.append(FieldError(field="priority", message="Invalid priority level"))

        category = _enum_value(data.get("category"))
        if category is not None and not _is_member(category, FeedbackCategory):
            errors.append(FieldError(field="category", message="Invalid category"))

        return ValidationResult(valid=not errors, errors=errors)

    def create_feedback(self, data: dict[str, Any]) -> Feedback:
        """Create a structured feedback record and start tracking it.

        Priority defaults to nice-to-have, category to other, status to open.
        """
        item = Feedback(
            checkpoint_id=data.get("checkpoint_id"),
            checkpoint_index=data.get("checkpoint_index"),
            field=data.get("field") or None,
            field_path=data.get("field_path") or None,
            issue=(data.get("issue") or "").strip(),
            expected=(data.get("expected") or "").strip(),
            priority=data.get("priority") or FeedbackPriority.NICE_TO_HAVE,
            category=data.get("category") or FeedbackCategory.OTHER,
            screenshot=data.get("screenshot"),
        )
        self.feedback.append(item)
        logger.debug("Feedback %s created (%s)", item.id, item.priority.value)
        return item

    def get_feedback(self, feedback_id: str) -> Feedback:
        item = next((f for f in self.feedback if f.id == feedback_id), None)
        if item is None:
            raise NotFoundError("Feedback", feedback_id)
        return item

    def get_feedback_by_checkpoint(self, checkpoint_id: str) -> list[Feedback]:
        return [f for f in self.feedback if f.checkpoint_id == checkpoint_id]

    def get_feedback_by_priority(self, priority: FeedbackPriority | str) -> list[Feedback]:
        priority = FeedbackPriority(priority)
        return [f for f in self.feedback if f.priority == priority]

    def get_blockers(self) -> list[Feedback]:
        return self.get_feedback_by_priority(FeedbackPriority.BLOCKER)

    def get_unresolved(self) -> list[Feedback]:
        return [f for f in self.feedback if f.is_open]

    def start_progress(self, feedback_id: str) -> Feedback:
        """Move an open item to in-progress."""
        item = self.get_feedback(feedback_id)
        if item.status != FeedbackStatus.OPEN:
            raise FeedbackStateError(
                f"Feedback {feedback_id} is {item.status.value}, expected open"
            )
        item.status = FeedbackStatus.IN_PROGRESS
        return item

    def resolve_feedback(self, feedback_id: str, resolution: str) -> Feedback:
        return self._close(feedback_id, FeedbackStatus.RESOLVED, resolution)

    def mark_wont_fix(self, feedback_id: str, reason: str) -> Feedback:
        return self._close(feedback_id, FeedbackStatus.WONT_FIX, reason)

    def _close(self, feedback_id: str, status: FeedbackStatus, resolution: str) -> Feedback:
        item = self.get_feedback(feedback_id)
        if not item.is_open:
            raise FeedbackStateError(
                f"Feedback {feedback_id} is already {item.status.value}"
            )
        item.status = status
        item.resolution = resolution
        item.resolved_at = datetime.now()
        logger.info("Feedback %s marked %s", feedback_id, status.value)
        return item

    def attach_external_issue(self, feedback_id: str, reference: IssueReference) -> Feedback:
        """Record the tracker issue filed for a feedback item."""
        item = self.get_feedback(feedback_id)
        item.external_issue = reference
        return item

    def get_summary(self) -> FeedbackSummary:
        """Aggregate by priority, status and category. Does not mutate."""
        by_status = {status: 0 for status in FeedbackStatus}
        by_category = {category.value: 0 for category in FeedbackCategory}
        blockers = 0
        for item in self.feedback:
            by_status[item.status] += 1
            by_category[item.category.value] += 1
            if item.is_blocker:
                blockers += 1

        return FeedbackSummary(
            total=len(self.feedback),
            blockers=blockers,
            nice_to_have=len(self.feedback) - blockers,
            open=by_status[FeedbackStatus.OPEN],
            in_progress=by_status[FeedbackStatus.IN_PROGRESS],
            resolved=by_status[FeedbackStatus.RESOLVED],
            wont_fix=by_status[FeedbackStatus.WONT_FIX],
            by_category=by_category,
        )

    def export_feedback(self) -> FeedbackExport:
        return FeedbackExport(
            summary=self.get_summary(),
            items=[f.model_copy(deep=True) for f in self.feedback],
        )

    @staticmethod
    def format_category(category: FeedbackCategory | str) -> str:
        try:
            return CATEGORY_LABELS[FeedbackCategory(category)]
        except ValueError:
            return str(category)

    def get_form_structure(self, available_fields: list[Any] | None = None) -> dict[str, Any]:
        """Describe the rejection form for whatever front end renders it.

        Args:
            available_fields: Detected fields (objects or dicts with name/label)
        """
        field_options = []
        for f in available_fields or []:
            name = f.get("name") if isinstance(f, dict) else getattr(f, "name", None)
            label = f.get("label") if isinstance(f, dict) else getattr(f, "label", None)
            if name:
                field_options.append({"value": name, "label": label or name})

        return {
            "fields": [
                {
                    "name": "field",
                    "label": "Field/Element",
                    "type": "select-or-input",
                    "options": field_options,
                    "required": False,
                },
                {
                    "name": "issue",
                    "label": "What's Wrong",
                    "type": "textarea",
                    "required": True,
                },
                {
                    "name": "expected",
                    "label": "Expected Behavior",
                    "type": "textarea",
                    "required": True,
                },
                {
                    "name": "priority",
                    "label": "Priority",
                    "type": "radio",
                    "options": [
                        {
                            "value": FeedbackPriority.BLOCKER.value,
                            "label": "Blocker",
                            "description": "Cannot proceed until fixed",
                        },
                        {
                            "value": FeedbackPriority.NICE_TO_HAVE.value,
                            "label": "Nice-to-have",
                            "description": "Log for later, continue testing",
                        },
                    ],
                    "required": True,
                    "default": FeedbackPriority.NICE_TO_HAVE.value,
                },
                {
                    "name": "category",
                    "label": "Category",
                    "type": "select",
                    "options": [
                        {"value": c.value, "label": label} for c, label in CATEGORY_LABELS.items()
                    ],
                    "required": False,
                    "default": FeedbackCategory.OTHER.value,
                },
            ]
        }
