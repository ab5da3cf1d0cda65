"""Checkpoint and approval management."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pydantic import TypeAdapter
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from feedback.collector import CATEGORY_LABELS
from schemas.checkpoint import (
    Checkpoint,
    CheckpointStatistics,
    CheckpointStatus,
    DetectedField,
)
from schemas.feedback import FeedbackCategory, FeedbackPriority
from schemas.preflight import TestStep
from schemas.session import Session

logger = logging.getLogger(__name__)

_CHECKPOINT_LIST = TypeAdapter(list[Checkpoint])

_INPUT_TAGS = {"input", "select", "textarea"}


class ApprovalResult(Enum):
    """Operator decision at a checkpoint."""

    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    DEFERRED = "deferred"  # Save and pause, resume later


@dataclass
class ApprovalResponse:
    """Response from the approval prompt."""

    result: ApprovalResult
    notes: str | None = None
    feedback: dict[str, Any] = field(default_factory=dict)
    screenshot: str | None = None


class CheckpointManager:
    """Manages checkpoint definitions, queries and the approval prompt.

    Supports:
    - CLI prompts (blocking)
    - Auto-approval for unattended runs
    - A custom decision callback for other front ends
    """

    def __init__(
        self,
        console: Console | None = None,
        auto_approve: bool = False,
        approval_callback: Callable[[Checkpoint, Session], ApprovalResponse] | None = None,
    ) -> None:
        """Initialize checkpoint manager.

        Args:
            console: Rich console for output
            auto_approve: If True, approve every checkpoint without prompting
            approval_callback: Custom decision handler
        """
        self.console = console or Console()
        self.auto_approve = auto_approve
        self.approval_callback = approval_callback
        self.checkpoints: list[Checkpoint] = []
        self.templates: dict[str, list[dict[str, Any]]] = {}

    def load(self, checkpoints: list[Checkpoint]) -> None:
        """Manage an existing checkpoint list in place."""
        self.checkpoints = checkpoints

    def create_checkpoint(
        self,
        action: str,
        expected_result: str,
        element: str | None = None,
        fields: list[DetectedField] | None = None,
        category: str = "general",
        metadata: dict[str, Any] | None = None,
        index: int = 1,
    ) -> Checkpoint:
        """Create a pending checkpoint record (not added to the list)."""
        return Checkpoint(
            index=index,
            action=action,
            expected_result=expected_result,
            element=element,
            fields=fields or [],
            category=category,
            metadata=metadata or {},
        )

    def generate_from_steps(self, steps: list[TestStep]) -> list[Checkpoint]:
        """Create one checkpoint per approved pre-flight step, in order."""
        self.checkpoints = [
            self.create_checkpoint(
                action=step.action,
                expected_result=step.expected_result,
                element=step.element,
                index=i,
            )
            for i, step in enumerate(steps, start=1)
        ]
        return self.checkpoints

    def generate_from_feature(self, feature_definition: dict[str, Any]) -> list[Checkpoint]:
        """Create checkpoints from a feature definition's user flows.

        Args:
            feature_definition: Mapping with ``user_flows``, each flow having
                ``name``, optional ``role`` and a list of ``steps``
                ({action, expected, element?, fields?})
        """
        checkpoints: list[Checkpoint] = []
        for flow in feature_definition.get("user_flows", []):
            for step_index, step in enumerate(flow.get("steps", []), start=1):
                checkpoints.append(
                    self.create_checkpoint(
                        action=step["action"],
                        expected_result=step.get("expected")
                        or f"Step {step_index} completes successfully",
                        element=step.get("element"),
                        fields=[DetectedField.model_validate(f) for f in step.get("fields", [])],
                        category=flow.get("name", "general"),
                        metadata={
                            "flow_name": flow.get("name"),
                            "step_index": step_index,
                            "role": flow.get("role"),
                        },
                        index=len(checkpoints) + 1,
                    )
                )

        self.checkpoints = checkpoints
        return checkpoints

    def detect_page_fields(self, page_elements: list[dict[str, Any]]) -> list[DetectedField]:
        """Pick out form controls and buttons from a page element dump.

        Args:
            page_elements: Element descriptions as reported by the automation
                collaborator (tag_name, name, id, placeholder, type, label,
                required, value, text, role, has_click_handler)
        """
        fields: list[DetectedField] = []
        for el in page_elements:
            tag = (el.get("tag_name") or "").lower()
            if tag in _INPUT_TAGS:
                fields.append(
                    DetectedField(
                        name=el.get("name") or el.get("id") or el.get("placeholder"),
                        type=el.get("type") or tag,
                        label=el.get("label")
                        or el.get("placeholder")
                        or el.get("name"),
                        required=bool(el.get("required", False)),
                        value=el.get("value") or None,
                    )
                )
            elif tag == "button" or (tag == "a" and el.get("role") == "button"):
                text = (el.get("text") or "").strip()
                fields.append(
                    DetectedField(
                        name=text or el.get("id"),
                        type="button",
                        label=text or None,
                        action="click" if el.get("has_click_handler") else "navigate",
                    )
                )
        return fields

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        return next((c for c in self.checkpoints if c.id == checkpoint_id), None)

    def update_checkpoint_status(
        self,
        checkpoint_id: str,
        status: CheckpointStatus,
        **data: Any,
    ) -> Checkpoint | None:
        """Set a checkpoint's status and stamp its completion time.

        This is a raw edit for checkpoint lists outside a running session;
        the TestRunner enforces the pending-only rule itself.
        """
        checkpoint = self.get_checkpoint(checkpoint_id)
        if checkpoint:
            checkpoint.status = status
            checkpoint.timing.completed_at = datetime.now()
            for key, value in data.items():
                setattr(checkpoint, key, value)
        return checkpoint

    def get_checkpoints_by_status(self, status: CheckpointStatus) -> list[Checkpoint]:
        return [c for c in self.checkpoints if c.status == status]

    def get_statistics(self) -> CheckpointStatistics:
        return CheckpointStatistics(
            total=len(self.checkpoints),
            pending=len(self.get_checkpoints_by_status(CheckpointStatus.PENDING)),
            passed=len(self.get_checkpoints_by_status(CheckpointStatus.PASSED)),
            failed=len(self.get_checkpoints_by_status(CheckpointStatus.FAILED)),
            skipped=len(self.get_checkpoints_by_status(CheckpointStatus.SKIPPED)),
        )

    def save_template(self, name: str, checkpoints: list[Checkpoint]) -> None:
        """Keep the reusable parts of a checkpoint list under a name."""
        self.templates[name] = [
            {
                "action": c.action,
                "expected_result": c.expected_result,
                "element": c.element,
                "fields": [f.model_copy() for f in c.fields],
                "category": c.category,
            }
            for c in checkpoints
        ]

    def load_template(self, name: str) -> list[Checkpoint] | None:
        """Instantiate a saved template with fresh ids, or None if unknown."""
        template = self.templates.get(name)
        if template is None:
            return None
        return [self.create_checkpoint(index=i, **t) for i, t in enumerate(template, start=1)]

    def export_checkpoints(self) -> str:
        return json.dumps([c.model_dump(mode="json") for c in self.checkpoints], indent=2)

    def import_checkpoints(self, payload: str) -> bool:
        """Replace the list from exported JSON. Returns False on bad input."""
        try:
            self.checkpoints = _CHECKPOINT_LIST.validate_json(payload)
        except ValueError as e:
            logger.error("Failed to import checkpoints: %s", e)
            return False
        return True

    def request_decision(self, checkpoint: Checkpoint, session: Session) -> ApprovalResponse:
        """Ask for a decision on the current checkpoint.

        Args:
            checkpoint: The checkpoint under test
            session: Session the checkpoint belongs to

        Returns:
            ApprovalResponse with the decision
        """
        # Auto-approve if configured
        if self.auto_approve:
            return ApprovalResponse(result=ApprovalResult.APPROVED, notes="Auto-approved")

        # Use custom callback if provided
        if self.approval_callback:
            return self.approval_callback(checkpoint, session)

        # Default: CLI prompt
        return self._cli_decision(checkpoint, session)

    def _cli_decision(self, checkpoint: Checkpoint, session: Session) -> ApprovalResponse:
        """Interactive CLI decision prompt."""
        total = len(session.plan)
        self.console.print()
        self.console.print(
            Panel(
                f"[bold]{checkpoint.action}[/bold]\n\n"
                f"[dim]Expected:[/dim] {checkpoint.expected_result}"
                + (f"\n[dim]Element:[/dim] {checkpoint.element}" if checkpoint.element else ""),
                title=f"Checkpoint {checkpoint.index}/{total}",
                border_style="yellow",
            )
        )

        # Prompt for decision
        self.console.print("[bold]Options:[/bold]")
        self.console.print("  [green]y/yes[/green] - Works as expected")
        self.console.print("  [red]n/no[/red] - Reject with feedback")
        self.console.print("  [blue]s/skip[/blue] - Skip this checkpoint")
        self.console.print("  [yellow]p/pause[/yellow] - Save and pause (resume later)")
        self.console.print("  [blue]v/view[/blue] - View progress so far")
        self.console.print()

        while True:
            choice = Prompt.ask(
                "Your decision",
                choices=["y", "yes", "n", "no", "s", "skip", "p", "pause", "v", "view"],
                default="y",
            )

            if choice in ("y", "yes"):
                notes = Prompt.ask("Any notes? (optional)", default="")
                return ApprovalResponse(result=ApprovalResult.APPROVED, notes=notes or None)

            elif choice in ("n", "no"):
                return ApprovalResponse(
                    result=ApprovalResult.REJECTED,
                    feedback=self._prompt_feedback(checkpoint),
                )

            elif choice in ("s", "skip"):
                reason = Prompt.ask("Reason for skipping (optional)", default="")
                return ApprovalResponse(result=ApprovalResult.SKIPPED, notes=reason or None)

            elif choice in ("p", "pause"):
                notes = Prompt.ask("Notes for when you resume (optional)", default="")
                return ApprovalResponse(result=ApprovalResult.DEFERRED, notes=notes or None)

            elif choice in ("v", "view"):
                self._view_progress(session)

    def _prompt_feedback(self, checkpoint: Checkpoint) -> dict[str, Any]:
        field_names = [f.name for f in checkpoint.fields if f.name]
        if field_names:
            self.console.print(f"[dim]Fields on page: {', '.join(field_names)}[/dim]")

        issue = ""
        while not issue.strip():
            issue = Prompt.ask("What's wrong")
        expected = ""
        while not expected.strip():
            expected = Prompt.ask("What should happen instead")

        priority = Prompt.ask(
            "Priority",
            choices=[p.value for p in FeedbackPriority],
            default=FeedbackPriority.NICE_TO_HAVE.value,
        )
        category = Prompt.ask(
            "Category",
            choices=[c.value for c in FeedbackCategory],
            default=FeedbackCategory.OTHER.value,
        )
        field_name = Prompt.ask("Field/element (optional)", default="")

        return {
            "issue": issue,
            "expected": expected,
            "priority": priority,
            "category": category,
            "field": field_name or None,
        }

    def _view_progress(self, session: Session) -> None:
        """Display resolved checkpoints and feedback so far."""
        if not session.checkpoints:
            self.console.print("[dim]No checkpoints resolved yet[/dim]")
            return

        table = Table(title="Progress")
        table.add_column("#", justify="right")
        table.add_column("Action")
        table.add_column("Status")
        table.add_column("Feedback")
        for c in session.checkpoints:
            color = {"passed": "green", "failed": "red", "skipped": "blue"}.get(c.status.value, "white")
            feedback = ""
            if c.feedback:
                feedback = (
                    f"[{c.feedback.priority.value}] "
                    f"{CATEGORY_LABELS[c.feedback.category]}: {c.feedback.issue}"
                )
            table.add_row(str(c.index), c.action, f"[{color}]{c.status.value}[/{color}]", feedback)
        self.console.print(table)
