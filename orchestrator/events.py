"""Synchronous event delivery for runner transitions."""

import logging
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class RunnerEvent(str, Enum):
    """Events emitted by the TestRunner."""

    SESSION_STARTED = "sessionStarted"
    PRE_FLIGHT_COMPLETED = "preFlightCompleted"
    CHECKPOINT_READY = "checkpointReady"
    CHECKPOINT_APPROVED = "checkpointApproved"
    CHECKPOINT_REJECTED = "checkpointRejected"
    CHECKPOINT_SKIPPED = "checkpointSkipped"
    SESSION_BLOCKED = "sessionBlocked"
    BLOCKERS_RESOLVED = "blockersResolved"
    SESSION_RESTARTED = "sessionRestarted"
    SESSION_SAVED = "sessionSaved"
    SESSION_PAUSED = "sessionPaused"
    SESSION_RESUMED = "sessionResumed"
    SESSION_COMPLETED = "sessionCompleted"


class EventBus:
    """Observer registry.

    Listeners run in registration order, inside the emitting call. A
    listener that raises stops delivery and the error reaches the caller
    of the operation that emitted the event.
    """

    def __init__(self) -> None:
        self._listeners: dict[RunnerEvent, list[Listener]] = {}

    def on(self, event: RunnerEvent | str, callback: Listener) -> None:
        self._listeners.setdefault(RunnerEvent(event), []).append(callback)

    def off(self, event: RunnerEvent | str, callback: Listener) -> None:
        callbacks = self._listeners.get(RunnerEvent(event), [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: RunnerEvent, data: Any = None) -> None:
        logger.debug("Emitting %s", event.value)
        # Copy so listeners may unsubscribe while handling
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(data)
            except Exception:
                logger.exception("Listener for %s failed", event.value)
                raise

    def listener_count(self, event: RunnerEvent | str) -> int:
        return len(self._listeners.get(RunnerEvent(event), []))
