"""Shared fixtures for session engine tests."""

from typing import Any

import pytest

from orchestrator import RunnerEvent, TestRunner
from schemas.preflight import PreFlight, PreFlightStatus, TestStep
from sessions import InMemoryStore, SessionManager


def make_pre_flight(count: int = 5, approved: bool = True) -> PreFlight:
    """Build a pre-flight with `count` generated steps."""
    return PreFlight(
        feature_request="Patient check-in",
        status=PreFlightStatus.APPROVED if approved else PreFlightStatus.IN_PROGRESS,
        approved=approved,
        steps=[
            TestStep(index=i, action=f"action {i}", expected_result=f"result {i}")
            for i in range(1, count + 1)
        ],
    )


def blocker(issue: str = "Save button does nothing") -> dict[str, Any]:
    return {"priority": "blocker", "issue": issue, "expected": "Record is saved"}


def nice_to_have(issue: str = "Label is misaligned") -> dict[str, Any]:
    return {
        "priority": "nice-to-have",
        "issue": issue,
        "expected": "Label lines up with the field",
        "category": "ui",
    }


class EventRecorder:
    """Records every runner event as (name, payload) in delivery order."""

    def __init__(self, runner: TestRunner):
        self.events: list[tuple[str, Any]] = []
        for event in RunnerEvent:
            runner.on(event, self._handler(event))

    def _handler(self, event: RunnerEvent):
        def handle(data: Any) -> None:
            self.events.append((event.value, data))

        return handle

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def runner() -> TestRunner:
    return TestRunner()


@pytest.fixture
def recorder(runner: TestRunner) -> EventRecorder:
    return EventRecorder(runner)


@pytest.fixture
def testing_runner(runner: TestRunner) -> TestRunner:
    """Runner with a five-checkpoint session already in testing."""
    runner.start_session("Patient check-in")
    runner.complete_pre_flight(make_pre_flight(5))
    return runner


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def session_manager(store: InMemoryStore) -> SessionManager:
    manager = SessionManager(store, storage_key="test-sessions", current_user="alice")
    manager.initialize()
    return manager
