"""In-memory registry of live sessions, at most one open session per athlete."""
import logging
import threading
from typing import Dict, List, Optional

from workout_planner_api.exceptions import ReferentialIntegrityError, SessionStateError
from workout_planner_api.models import WorkoutSession

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("active", "paused")


class SessionRegistry:
    """
    Live sessions keyed by id.

    Finished sessions are archived out of the registry; their final state is
    kept by the persistence collaborator, not here.
    """

    def __init__(self):
        self._sessions: Dict[str, WorkoutSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def open_session_for(self, athlete_id: str) -> Optional[WorkoutSession]:
        for session in list(self._sessions.values()):
            if session.athlete_id == athlete_id and session.status in OPEN_STATUSES:
                return session
        return None

    def start(self, session: WorkoutSession) -> WorkoutSession:
        # check and insert under one lock so two starts cannot both pass
        with self._lock:
            existing = self.open_session_for(session.athlete_id)
            if existing is not None:
                raise SessionStateError(
                    f"Athlete {session.athlete_id} already has an open session ({existing.id})"
                )
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> WorkoutSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise ReferentialIntegrityError(f"Session {session_id} not found") from None

    def replace(self, session: WorkoutSession) -> WorkoutSession:
        with self._lock:
            self.get(session.id)
            self._sessions[session.id] = session
        if session.status not in OPEN_STATUSES:
            logger.info("Session %s is now %s", session.id, session.status)
        return session

    def archive(self, session_id: str) -> WorkoutSession:
        """Remove a completed or abandoned session and return its final state."""
        with self._lock:
            session = self.get(session_id)
            if session.status in OPEN_STATUSES:
                raise SessionStateError(f"Session {session_id} is still {session.status}")
            del self._sessions[session_id]
        logger.info("Archived session %s (%s)", session_id, session.status)
        return session

    def sessions_for(self, athlete_id: str) -> List[WorkoutSession]:
        return [s for s in list(self._sessions.values()) if s.athlete_id == athlete_id]
