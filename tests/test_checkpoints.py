"""Tests for CheckpointManager."""

import pytest
from rich.console import Console

from orchestrator import ApprovalResponse, ApprovalResult, CheckpointManager
from schemas.checkpoint import CheckpointStatus, DetectedField
from schemas.preflight import TestStep
from schemas.session import Session


@pytest.fixture
def manager() -> CheckpointManager:
    return CheckpointManager(console=Console(quiet=True))


def _steps(count: int) -> list[TestStep]:
    return [
        TestStep(index=i, action=f"Click {i}", expected_result=f"Page {i} loads", element=f"#b{i}")
        for i in range(1, count + 1)
    ]


class TestGeneration:
    def test_generate_from_steps(self, manager):
        """One pending checkpoint per step, in order, 1-based."""
        checkpoints = manager.generate_from_steps(_steps(3))

        assert [c.index for c in checkpoints] == [1, 2, 3]
        assert [c.action for c in checkpoints] == ["Click 1", "Click 2", "Click 3"]
        assert all(c.status == CheckpointStatus.PENDING for c in checkpoints)
        assert checkpoints[2].element == "#b3"
        assert len({c.id for c in checkpoints}) == 3
        assert manager.checkpoints is checkpoints

    def test_generate_from_feature(self, manager):
        """Flows are flattened with flow metadata and running indices."""
        checkpoints = manager.generate_from_feature(
            {
                "user_flows": [
                    {
                        "name": "Booking",
                        "role": "Patient",
                        "steps": [
                            {"action": "Pick a slot", "expected": "Slot highlighted"},
                            {"action": "Confirm", "fields": [{"name": "notes"}]},
                        ],
                    },
                    {"name": "Cancel", "steps": [{"action": "Cancel booking"}]},
                ]
            }
        )

        assert [c.index for c in checkpoints] == [1, 2, 3]
        assert checkpoints[1].expected_result == "Step 2 completes successfully"
        assert checkpoints[1].fields[0].name == "notes"
        assert checkpoints[0].metadata == {
            "flow_name": "Booking",
            "step_index": 1,
            "role": "Patient",
        }
        assert checkpoints[2].category == "Cancel"

    def test_detect_page_fields(self, manager):
        """Inputs and buttons are detected; other elements ignored."""
        fields = manager.detect_page_fields(
            [
                {"tag_name": "INPUT", "name": "email", "type": "email", "required": True},
                {"tag_name": "textarea", "placeholder": "Comments"},
                {"tag_name": "button", "text": " Save ", "has_click_handler": True},
                {"tag_name": "a", "role": "button", "text": "Back"},
                {"tag_name": "div", "text": "ignored"},
            ]
        )

        assert [f.name for f in fields] == ["email", "Comments", "Save", "Back"]
        assert fields[0].required
        assert fields[1].type == "textarea"
        assert fields[1].label == "Comments"
        assert fields[2] == DetectedField(name="Save", type="button", label="Save", action="click")
        assert fields[3].action == "navigate"


class TestQueries:
    def test_update_and_statistics(self, manager):
        """Status updates feed the statistics."""
        checkpoints = manager.generate_from_steps(_steps(4))
        manager.update_checkpoint_status(checkpoints[0].id, CheckpointStatus.PASSED)
        manager.update_checkpoint_status(checkpoints[1].id, CheckpointStatus.FAILED, notes="broken")

        stats = manager.get_statistics()

        assert (stats.total, stats.pending, stats.passed, stats.failed) == (4, 2, 1, 1)
        assert checkpoints[1].notes == "broken"
        assert checkpoints[0].timing.completed_at is not None
        assert manager.get_checkpoints_by_status(CheckpointStatus.PASSED) == [checkpoints[0]]

    def test_unknown_checkpoint(self, manager):
        """Unknown ids return None."""
        assert manager.get_checkpoint("missing") is None
        assert manager.update_checkpoint_status("missing", CheckpointStatus.PASSED) is None


class TestTemplatesAndExport:
    def test_template_gets_fresh_ids(self, manager):
        """Loading a template creates new pending checkpoints."""
        original = manager.generate_from_steps(_steps(2))
        original[0].status = CheckpointStatus.PASSED
        manager.save_template("smoke", original)

        loaded = manager.load_template("smoke")

        assert [c.action for c in loaded] == ["Click 1", "Click 2"]
        assert all(c.is_pending for c in loaded)
        assert {c.id for c in loaded}.isdisjoint({c.id for c in original})

    def test_unknown_template(self, manager):
        assert manager.load_template("nope") is None

    def test_export_import(self, manager):
        """Exported JSON imports into another manager with the same ids."""
        manager.generate_from_steps(_steps(2))
        payload = manager.export_checkpoints()

        other = CheckpointManager(console=Console(quiet=True))

        assert other.import_checkpoints(payload)
        assert [c.id for c in other.checkpoints] == [c.id for c in manager.checkpoints]

    def test_import_bad_payload(self, manager):
        """Malformed input leaves the list alone and returns False."""
        manager.generate_from_steps(_steps(1))

        assert not manager.import_checkpoints("{not json")
        assert not manager.import_checkpoints('[{"index": 1}]')
        assert len(manager.checkpoints) == 1


class TestDecisions:
    def test_auto_approve(self):
        """auto_approve answers without prompting."""
        manager = CheckpointManager(console=Console(quiet=True), auto_approve=True)
        checkpoint = manager.generate_from_steps(_steps(1))[0]

        response = manager.request_decision(checkpoint, Session(feature_name="x"))

        assert response.result == ApprovalResult.APPROVED

    def test_callback(self):
        """A custom callback decides when configured."""
        seen = []

        def decide(checkpoint, session):
            seen.append((checkpoint.index, session.feature_name))
            return ApprovalResponse(
                result=ApprovalResult.REJECTED,
                feedback={"issue": "x", "expected": "y"},
            )

        manager = CheckpointManager(console=Console(quiet=True), approval_callback=decide)
        checkpoint = manager.generate_from_steps(_steps(1))[0]

        response = manager.request_decision(checkpoint, Session(feature_name="Billing"))

        assert response.result == ApprovalResult.REJECTED
        assert seen == [(1, "Billing")]
