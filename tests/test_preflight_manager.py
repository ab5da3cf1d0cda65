"""Tests for the pre-flight interview."""

import pytest

from pipeline.config import PreFlightConfig
from pipeline.errors import (
    IncompletePreFlightError,
    InvalidAnswerError,
    NoActivePreFlightError,
    NotFoundError,
)
from preflight import QUESTION_TEMPLATE, PreFlightManager
from schemas.preflight import PreFlightStatus, QuestionCategory, WorkflowStep


@pytest.fixture
def manager() -> PreFlightManager:
    manager = PreFlightManager(PreFlightConfig(user_roles=["Patient", "Admin"]))
    manager.start_pre_flight("Patient check-in kiosk")
    return manager


def _answer(manager, category, answer):
    question = manager.get_question_by_category(category)
    return manager.answer_question(question.id, answer)


def _answer_required(manager, workflow=None):
    _answer(manager, "scope", "Let patients check in without staff")
    _answer(manager, "users", ["Patient"])
    _answer(
        manager,
        "workflow",
        workflow
        or [
            {"action": "Open kiosk", "expected": "Welcome screen shows"},
            {"action": "Enter date of birth"},
        ],
    )
    _answer(manager, "data", ["Name", "Date of birth"])


class TestTemplate:
    """Question template instantiation."""

    def test_start_builds_six_questions(self, manager):
        """The template has one question per category."""
        questions = manager.current.questions

        assert len(questions) == len(QUESTION_TEMPLATE) == 6
        assert [q.category for q in questions] == list(QuestionCategory)
        assert [q.required for q in questions] == [True, True, True, True, False, False]

    def test_user_roles_from_config(self, manager):
        """The users question offers the configured roles."""
        assert manager.get_question_by_category("users").options == ["Patient", "Admin"]

    def test_fresh_ids_per_pre_flight(self):
        """Two pre-flights do not share question ids."""
        manager = PreFlightManager()
        first = {q.id for q in manager.start_pre_flight("a").questions}
        second = {q.id for q in manager.start_pre_flight("b").questions}
        assert first.isdisjoint(second)

    def test_requires_active_pre_flight(self):
        """Operations before start_pre_flight raise."""
        with pytest.raises(NoActivePreFlightError):
            PreFlightManager().get_unanswered_questions()


class TestAnswers:
    """answer_question type checking."""

    def test_text_answer_is_stripped(self, manager):
        """Text answers are trimmed and recorded."""
        question = _answer(manager, "scope", "  Faster check-in  ")

        assert question.answered
        assert question.answer == "Faster check-in"
        assert manager.current.answers[0].answer == "Faster check-in"

    def test_text_rejects_non_string(self, manager):
        """A list is not a text answer."""
        with pytest.raises(InvalidAnswerError):
            _answer(manager, "scope", ["not", "text"])

    def test_text_rejects_blank(self, manager):
        """Whitespace is not an answer."""
        with pytest.raises(InvalidAnswerError):
            _answer(manager, "scope", "   ")

    def test_multi_select_checks_options(self, manager):
        """Unknown roles are refused."""
        with pytest.raises(InvalidAnswerError):
            _answer(manager, "users", ["Janitor"])

    def test_multi_select_needs_a_value(self, manager):
        """An empty selection is refused."""
        with pytest.raises(InvalidAnswerError):
            _answer(manager, "users", [])

    def test_steps_accept_strings_and_dicts(self, manager):
        """Bare strings become steps with only an action."""
        question = _answer(manager, "workflow", ["Open kiosk", {"action": "Scan card"}])

        assert question.answer == [
            WorkflowStep(action="Open kiosk"),
            WorkflowStep(action="Scan card"),
        ]

    def test_steps_reject_bad_shapes(self, manager):
        """Steps must be a non-empty list of actions."""
        with pytest.raises(InvalidAnswerError):
            _answer(manager, "workflow", "Open kiosk")
        with pytest.raises(InvalidAnswerError):
            _answer(manager, "workflow", [{"expected": "no action"}])
        with pytest.raises(InvalidAnswerError):
            _answer(manager, "workflow", [])

    def test_list_answer_drops_blank_items(self, manager):
        """List answers are trimmed and blank items dropped."""
        question = _answer(manager, "data", [" Name ", "", "DOB"])
        assert question.answer == ["Name", "DOB"]

    def test_required_list_needs_items(self, manager):
        """A required list with only blanks is refused."""
        with pytest.raises(InvalidAnswerError):
            _answer(manager, "data", ["  "])

    def test_reanswer_replaces_record(self, manager):
        """Answering again replaces the earlier record."""
        _answer(manager, "scope", "first")
        _answer(manager, "scope", "second")

        assert len(manager.current.answers) == 1
        assert manager.get_answer_by_category("scope") == "second"

    def test_unknown_question(self, manager):
        """Unknown question ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            manager.answer_question("nope", "x")

    def test_unanswered_questions(self, manager):
        """Answered questions drop out of the unanswered list."""
        _answer(manager, "scope", "goal")
        assert len(manager.get_unanswered_questions()) == 5


class TestAmbiguities:
    """Ambiguity tracking gates approval."""

    def test_unresolved_ambiguity_blocks_approval(self, manager):
        """Approval waits until every ambiguity is resolved."""
        _answer_required(manager)
        ambiguity = manager.flag_ambiguity("Which ID types are accepted?", ["Card", "License"])

        assert not manager.is_complete()
        with pytest.raises(IncompletePreFlightError):
            manager.approve()

        manager.resolve_ambiguity(ambiguity.id, "Card")
        assert manager.get_unresolved_ambiguities() == []
        assert manager.approve().approved

    def test_resolve_unknown_ambiguity(self, manager):
        """Unknown ambiguity ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            manager.resolve_ambiguity("nope", "x")


class TestApproval:
    """Approval, summary and step generation."""

    def test_missing_required_answer(self, manager):
        """Approval needs every required question answered."""
        _answer(manager, "scope", "goal")

        with pytest.raises(IncompletePreFlightError):
            manager.approve()
        assert not manager.current.approved

    def test_optional_questions_not_needed(self, manager):
        """Optional questions can stay unanswered."""
        _answer_required(manager)
        assert manager.is_complete()

    def test_approve_generates_steps(self, manager):
        """Steps come from the workflow answer, with a default expected text."""
        _answer_required(manager)

        pre_flight = manager.approve()

        assert pre_flight.status == PreFlightStatus.APPROVED
        assert pre_flight.approved_at is not None
        assert [s.index for s in pre_flight.steps] == [1, 2]
        assert pre_flight.steps[0].expected_result == "Welcome screen shows"
        assert pre_flight.steps[1].expected_result == "Step 2 completes successfully"

    def test_summary_groups_answers(self, manager):
        """The summary carries each category's answer and ambiguity resolutions."""
        _answer_required(manager)
        ambiguity = manager.flag_ambiguity("Walk-ins?")
        manager.resolve_ambiguity(ambiguity.id, "Not in scope")

        summary = manager.approve().summary

        assert summary.scope == "Let patients check in without staff"
        assert summary.users == ["Patient"]
        assert summary.validation is None
        assert summary.ambiguity_resolutions[0].resolution == "Not in scope"

    def test_export_and_load(self, manager):
        """An exported pre-flight can be loaded back by another manager."""
        _answer_required(manager)
        manager.approve()
        data = manager.export_pre_flight()

        other = PreFlightManager()
        loaded = other.load_pre_flight(data)

        assert loaded.id == manager.current.id
        assert loaded.approved
        assert len(loaded.steps) == 2


class TestQuickMode:
    """Quick-mode eligibility hint."""

    def test_default_patterns(self):
        """Cosmetic changes are eligible, case-insensitively."""
        manager = PreFlightManager()
        assert manager.is_quick_mode_eligible("Fix TYPO on login page")
        assert manager.is_quick_mode_eligible("Adjust button padding")
        assert not manager.is_quick_mode_eligible("Add appointment booking")

    def test_configured_patterns(self):
        """Configured patterns extend the defaults."""
        manager = PreFlightManager(PreFlightConfig(quick_mode_patterns=[r"tooltip"]))
        assert manager.is_quick_mode_eligible("Update tooltip wording")
        assert manager.is_quick_mode_eligible("color tweak")
