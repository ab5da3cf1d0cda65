"""Session persistence and resume.

All sessions live in one JSON document under a single store key. Every
write re-reads that document, replaces only the sessions this process
changed and writes the whole document back. Each session carries a version
counter; a write whose stored version no longer matches the in-memory one
is refused with StaleSessionError instead of overwriting another writer.
"""

import logging
from datetime import datetime
from typing import Any, Iterable

from pydantic import ValidationError

from pipeline.errors import (
    InvalidUpdateError,
    NotFoundError,
    PersistenceError,
    StaleSessionError,
)
from schemas.checkpoint import CheckpointStatus
from schemas.common import new_id
from schemas.feedback import FeedbackPriority
from schemas.session import (
    ACTIVE_STATUSES,
    Handoff,
    HandoffPackage,
    NextStep,
    NextStepPriority,
    SavePoint,
    Session,
    SessionCollection,
    SessionExport,
    SessionMetadata,
    SessionOverview,
    SessionProgress,
    SessionStatus,
)

from .store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "testing-framework-sessions"

# Envelope fields update_session may set
_UPDATABLE_FIELDS = {"feature_name", "notes", "screenshots", "metadata", "options", "handoff"}

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class SessionManager:
    """Owns durable persistence of test sessions.

    Args:
        store: Key-value store the collection is written to
        storage_key: Key the collection is stored under
        current_user: Name recorded on hand-off packages
    """

    def __init__(
        self,
        store: KeyValueStore,
        storage_key: str = DEFAULT_STORAGE_KEY,
        current_user: str = "unknown",
    ) -> None:
        self.store = store
        self.storage_key = storage_key
        self.current_user = current_user
        self.sessions: list[Session] = []
        self.current_session: Session | None = None

    # Storage

    def initialize(self) -> list[Session]:
        return self.load_sessions()

    def load_sessions(self) -> list[Session]:
        """Replace the in-memory sessions with the stored collection."""
        self.sessions = self._read_collection().sessions
        if self.current_session:
            self.current_session = self._find(self.current_session.id)
        logger.debug("Loaded %d session(s) from '%s'", len(self.sessions), self.storage_key)
        return self.sessions

    def save_sessions(self) -> None:
        """Write every in-memory session."""
        self._persist(self.sessions)

    def _read_collection(self) -> SessionCollection:
        try:
            raw = self.store.get(self.storage_key)
        except Exception as e:
            logger.error("Failed to read sessions from '%s': %s", self.storage_key, e)
            raise PersistenceError(f"Failed to read sessions: {e}") from e

        if raw is None:
            return SessionCollection()
        try:
            return SessionCollection.model_validate_json(raw)
        except ValidationError as e:
            logger.error("Stored sessions under '%s' are unreadable", self.storage_key)
            raise PersistenceError(f"Stored sessions are unreadable: {e}") from e

    def _persist(self, changed: Iterable[Session] = (), deleted: Iterable[str] = ()) -> None:
        """Merge this process's changes into the stored collection.

        In-memory versions are bumped only after the store accepted the write.

        Raises:
            StaleSessionError: A changed session was modified by another writer
            PersistenceError: The store failed
        """
        changed = {s.id: s for s in changed}
        deleted = set(deleted)
        stored = self._read_collection()
        stored_ids = {s.id for s in stored.sessions}

        for stored_session in stored.sessions:
            session = changed.get(stored_session.id)
            if session is not None and session.version != stored_session.version:
                raise StaleSessionError(session.id, session.version, stored_session.version)
        for session in changed.values():
            if session.id not in stored_ids and session.version != 0:
                # Stored once, then removed by another writer
                raise StaleSessionError(session.id, session.version, 0)

        merged: list[Session] = []
        for stored_session in stored.sessions:
            if stored_session.id in deleted:
                continue
            session = changed.get(stored_session.id)
            merged.append(stored_session if session is None else session)
        merged.extend(s for s in changed.values() if s.id not in stored_ids)

        try:
            document = SessionCollection(
                sessions=[
                    s.model_copy(update={"version": s.version + 1}) if s.id in changed else s
                    for s in merged
                ]
            ).model_dump_json(indent=2)
            self.store.set(self.storage_key, document)
        except Exception as e:
            logger.error("Failed to save sessions to '%s': %s", self.storage_key, e)
            raise PersistenceError(f"Failed to save sessions: {e}") from e

        for session in changed.values():
            session.version += 1

        # Keep live objects for our sessions, pick up everyone else's
        live = {s.id: s for s in self.sessions}
        live.update(changed)
        merged_ids = {s.id for s in merged}
        self.sessions = [live.get(s.id, s) for s in merged] + [
            s for s in self.sessions if s.id not in merged_ids and s.id not in deleted
        ]
        logger.debug(
            "Saved %d session(s) to '%s' (%d changed, %d deleted)",
            len(merged),
            self.storage_key,
            len(changed),
            len(deleted),
        )

    def _find(self, session_id: str) -> Session | None:
        return next((s for s in self.sessions if s.id == session_id), None)

    def _get(self, session_id: str) -> Session:
        session = self._find(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    # Mutation

    def create_session(self, feature_name: str, options: dict[str, Any] | None = None) -> Session:
        """Create and persist a new session.

        Args:
            feature_name: Feature under test
            options: Run options; github_issue, assigned_to, environment and
                version also populate the session metadata
        """
        options = dict(options or {})
        metadata = SessionMetadata(
            **{k: options[k] for k in SessionMetadata.model_fields if options.get(k) is not None}
        )
        session = Session(feature_name=feature_name, options=options, metadata=metadata)

        self.sessions.append(session)
        self.current_session = session
        self._persist([session])
        logger.info("Session %s created for '%s'", session.id, feature_name)
        return session

    def update_session(self, session_id: str, **updates: Any) -> Session:
        """Set envelope fields on a session and persist it.

        Run state (status, plan, results, blockers) belongs to the TestRunner
        and cannot be set here.

        Raises:
            InvalidUpdateError: Field is not updatable or a value is invalid
        """
        session = self._get(session_id)
        for key in updates:
            if key not in _UPDATABLE_FIELDS:
                raise InvalidUpdateError(f"Cannot update session field: {key}")

        try:
            validated = Session.model_validate({**session.model_dump(), **updates})
        except ValidationError as e:
            raise InvalidUpdateError(
                f"Invalid value for session update: {e.error_count()} problem(s)"
            ) from e

        for key in updates:
            setattr(session, key, getattr(validated, key))
        session.touch()
        self._persist([session])
        return session

    def save_session(self, session: Session) -> Session:
        """Upsert a session mutated elsewhere (usually by the TestRunner)."""
        existing = self._find(session.id)
        if existing is None:
            self.sessions.append(session)
        elif existing is not session:
            self.sessions[self.sessions.index(existing)] = session

        self.current_session = session
        self._persist([session])
        return session

    def save_progress(self, session_id: str, notes: str = "") -> SavePoint:
        """Append a save point holding copies of the current progress."""
        session = self._get(session_id)
        save_point = SavePoint.capture(session, notes)
        session.save_points.append(save_point)
        session.touch()
        self._persist([session])
        logger.info("Save point %s recorded for session %s", save_point.id, session_id)
        return save_point

    def delete_session(self, session_id: str) -> None:
        session = self._get(session_id)
        self._persist(deleted=[session_id])
        if self.current_session is session:
            self.current_session = None
        logger.info("Session %s deleted", session_id)

    # Projections

    def load_session(self, session_id: str) -> Session:
        """Make a stored session the current one."""
        session = self._get(session_id)
        self.current_session = session
        return session

    def get_session_summary(self, session_id: str) -> SessionOverview:
        session = self._get(session_id)
        resolved = sum(1 for c in session.plan if c.status != CheckpointStatus.PENDING)

        return SessionOverview(
            id=session.id,
            feature_name=session.feature_name,
            status=session.status,
            created_at=session.created_at,
            updated_at=session.updated_at,
            progress=SessionProgress(
                checkpoints_completed=resolved if session.plan else len(session.checkpoints),
                total_checkpoints=len(session.plan),
                feedback_items=len(session.feedback),
                save_points=len(session.save_points),
            ),
            blockers=len(session.blockers),
            last_save_point=(
                session.save_points[-1].model_copy(deep=True) if session.save_points else None
            ),
            last_notes=session.notes[-1] if session.notes else None,
        )

    def generate_resume_summary(self, session_id: str) -> str:
        """Human-readable report for picking a session back up."""
        session = self._get(session_id)
        overview = self.get_session_summary(session_id)
        open_blockers = [f for f in session.feedback if f.is_blocker and f.is_open]

        lines = [
            f"Feature: {session.feature_name}",
            f"Status: {session.status.value}",
            f"Started: {session.created_at.strftime(_TIME_FORMAT)}",
            f"Last Updated: {session.updated_at.strftime(_TIME_FORMAT)}",
            "",
            "Progress:",
            f"  - Checkpoints completed: {overview.progress.checkpoints_completed}"
            + (f"/{overview.progress.total_checkpoints}" if session.plan else ""),
            f"  - Feedback items: {overview.progress.feedback_items}",
            f"  - Blockers: {len(open_blockers)}",
        ]

        current = session.get_current_checkpoint()
        if current and session.status != SessionStatus.COMPLETED:
            lines.append(f"  - Next checkpoint: {current.index}. {current.action}")

        if session.save_points:
            last_save = session.save_points[-1]
            lines.extend(["", "Last save point:"])
            lines.append(f"  - Saved: {last_save.saved_at.strftime(_TIME_FORMAT)}")
            if last_save.notes:
                lines.append(f"  - Notes: {last_save.notes}")

        return "\n".join(lines)

    def generate_next_steps(self, session: Session) -> list[NextStep]:
        """Recommended follow-ups, most urgent first."""
        steps: list[NextStep] = []

        blockers = [f for f in session.feedback if f.is_blocker and f.is_open]
        if blockers:
            steps.append(
                NextStep(
                    priority=NextStepPriority.HIGH,
                    action=f"Resolve {len(blockers)} blocker(s)",
                    details=[f.issue for f in blockers],
                )
            )

        if session.status == SessionStatus.PAUSED:
            steps.append(
                NextStep(
                    priority=NextStepPriority.MEDIUM,
                    action=f"Resume testing from checkpoint {session.current_checkpoint_index + 1}",
                )
            )

        nice_to_have = [
            f for f in session.feedback
            if f.priority == FeedbackPriority.NICE_TO_HAVE and f.is_open
        ]
        if nice_to_have:
            steps.append(
                NextStep(
                    priority=NextStepPriority.LOW,
                    action=f"Review {len(nice_to_have)} nice-to-have item(s)",
                    details=[f.issue for f in nice_to_have],
                )
            )

        return steps

    def prepare_handoff(self, session_id: str, notes: str = "") -> Handoff:
        """Bundle a session for another operator and store it on the session."""
        session = self._get(session_id)
        handoff = Handoff(
            session_id=session.id,
            prepared_by=self.current_user,
            notes=notes,
            package=HandoffPackage(
                feature_name=session.feature_name,
                original_request=session.pre_flight.feature_request if session.pre_flight else None,
                pre_flight=session.pre_flight.model_copy(deep=True) if session.pre_flight else None,
                checkpoints=[c.model_copy(deep=True) for c in session.checkpoints],
                feedback=[f.model_copy(deep=True) for f in session.feedback],
                screenshots=list(session.screenshots),
                status=session.status,
                recommended_next_steps=self.generate_next_steps(session),
            ),
        )

        session.handoff = handoff
        session.touch()
        self._persist([session])
        logger.info("Hand-off %s prepared for session %s", handoff.id, session_id)
        return handoff

    # Listing

    def list_sessions(self) -> list[SessionOverview]:
        return [self.get_session_summary(s.id) for s in self.sessions]

    def get_sessions_by_status(self, status: SessionStatus | str) -> list[Session]:
        status = SessionStatus(status)
        return [s for s in self.sessions if s.status == status]

    def get_resumable_sessions(self) -> list[Session]:
        """Unfinished sessions, most recently updated first."""
        return sorted(
            (s for s in self.sessions if s.status in ACTIVE_STATUSES),
            key=lambda s: s.updated_at,
            reverse=True,
        )

    # Export / import

    def export_session(self, session_id: str) -> SessionExport:
        return SessionExport(session=self._get(session_id).model_copy(deep=True))

    def import_session(self, payload: SessionExport | dict[str, Any] | str) -> Session:
        """Add an exported session under a new id.

        Args:
            payload: SessionExport, its dict form, or its JSON text
        """
        if isinstance(payload, str):
            payload = SessionExport.model_validate_json(payload)
        elif not isinstance(payload, SessionExport):
            payload = SessionExport.model_validate(payload)

        original = payload.session
        session = original.model_copy(
            deep=True,
            update={
                "id": new_id(),
                "version": 0,
                "imported_at": datetime.now(),
                "imported_from": original.id,
            },
        )

        self.sessions.append(session)
        self._persist([session])
        logger.info("Imported session %s as %s", original.id, session.id)
        return session
