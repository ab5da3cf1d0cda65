"""Orchestrator module for checkpoint test sessions.

State machine-based session orchestration with:
- Explicit status transitions
- Checkpoint approval, rejection and skipping
- Blocker gating
- Synchronous event notification
"""

from .state_machine import StateMachine, Transition
from .runner import TestRunner
from .checkpoints import ApprovalResponse, ApprovalResult, CheckpointManager
from .events import EventBus, RunnerEvent

__all__ = [
    "StateMachine",
    "Transition",
    "TestRunner",
    "CheckpointManager",
    "ApprovalResult",
    "ApprovalResponse",
    "EventBus",
    "RunnerEvent",
]
