"""In-memory per-session state: active intent, phase, abort flag."""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger

from .hooks.models import GatekeeperState


@dataclass
class Session:
    """
    State of one agent session.

    Lives only in memory; nothing here is persisted.
    """

    session_id: str
    active_intent_id: Optional[str] = None
    selected_at: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    phase: GatekeeperState = GatekeeperState.NO_INTENT
    abort_event: threading.Event = field(default_factory=threading.Event)

    @property
    def resting_state(self) -> GatekeeperState:
        """State the session returns to between calls."""
        if self.active_intent_id:
            return GatekeeperState.INTENT_ACTIVE
        return GatekeeperState.NO_INTENT

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "active_intent_id": self.active_intent_id,
            "selected_at": self.selected_at.isoformat() if self.selected_at else None,
            "metadata": dict(self.metadata),
            "phase": self.phase.value,
            "aborted": self.aborted,
        }


class SessionStore:
    """
    Thread-safe registry of sessions keyed by session id.

    Each session holds at most one active intent.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Session:
        """Get the session, creating it on first use."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id)
                self._sessions[session_id] = session
            return session

    def set_intent(self, session_id: str, intent_id: str) -> Session:
        """Make ``intent_id`` the session's active intent, replacing any previous one."""
        session = self.get(session_id)
        with self._lock:
            previous = session.active_intent_id
            session.active_intent_id = intent_id
            session.selected_at = datetime.now(timezone.utc)
            session.phase = GatekeeperState.INTENT_ACTIVE
        if previous and previous != intent_id:
            logger.info(f"Session {session_id} switched intent {previous} -> {intent_id}")
        return session

    def get_intent(self, session_id: str) -> Optional[str]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.active_intent_id if session else None

    def clear_intent(self, session_id: str) -> Optional[str]:
        """Clear the active intent; returns the id that was cleared, if any."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            previous = session.active_intent_id
            session.active_intent_id = None
            session.selected_at = None
            session.phase = GatekeeperState.NO_INTENT
            return previous

    def set_phase(self, session_id: str, phase: GatekeeperState) -> None:
        session = self.get(session_id)
        with self._lock:
            session.phase = phase

    def update_metadata(self, session_id: str, **metadata: Any) -> Session:
        session = self.get(session_id)
        with self._lock:
            session.metadata.update(metadata)
        return session

    def abort(self, session_id: str) -> Session:
        """Raise the session's abort flag; it stays raised until the session ends."""
        session = self.get(session_id)
        session.abort_event.set()
        logger.warning(f"Session {session_id} aborted")
        return session

    def is_aborted(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            return session is not None and session.aborted

    def end_session(self, session_id: str) -> bool:
        """Forget a session entirely."""
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def all_sessions(self) -> dict[str, Optional[str]]:
        """Map of session id to active intent id."""
        with self._lock:
            return {sid: s.active_intent_id for sid, s in self._sessions.items()}

    def clear_all(self) -> None:
        with self._lock:
            self._sessions.clear()
