"""Tests for the one-open-session-per-athlete registry."""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from workout_planner_api.exceptions import ReferentialIntegrityError, SessionStateError
from workout_planner_api.services.session_engine import abandon_session, pause_session, start_session
from workout_planner_api.services.session_registry import SessionRegistry


@pytest.fixture
def start(circuit_plan, assignment_for):
    def _start(athlete_id="athlete-1"):
        return start_session(assignment_for(circuit_plan, athlete_id), circuit_plan, athlete_id)

    return _start


class TestSessionRegistry:
    def test_one_open_session_per_athlete(self, start):
        registry = SessionRegistry()
        registry.start(start())
        with pytest.raises(SessionStateError):
            registry.start(start())
        registry.start(start("athlete-2"))
        assert len(registry) == 2

    def test_paused_session_still_blocks(self, start):
        registry = SessionRegistry()
        session = registry.start(start())
        registry.replace(pause_session(session))
        with pytest.raises(SessionStateError):
            registry.start(start())

    def test_finished_session_frees_the_athlete(self, start):
        registry = SessionRegistry()
        session = registry.start(start())
        registry.replace(abandon_session(session, confirmed=True))
        assert registry.open_session_for("athlete-1") is None
        registry.start(start())
        assert len(registry.sessions_for("athlete-1")) == 2

    def test_unknown_session(self, start):
        registry = SessionRegistry()
        with pytest.raises(ReferentialIntegrityError):
            registry.get("sess-missing")
        with pytest.raises(ReferentialIntegrityError):
            registry.replace(start())

    def test_archive_drops_finished_session(self, start):
        registry = SessionRegistry()
        session = registry.start(start())
        registry.replace(abandon_session(session, confirmed=True))
        archived = registry.archive(session.id)
        assert archived.status == "abandoned"
        assert len(registry) == 0
        with pytest.raises(ReferentialIntegrityError):
            registry.get(session.id)

    def test_archive_refuses_open_session(self, start):
        registry = SessionRegistry()
        session = registry.start(start())
        with pytest.raises(SessionStateError):
            registry.archive(session.id)
        assert registry.get(session.id) is session

    def test_concurrent_starts_admit_one_session(self, start):
        registry = SessionRegistry()
        candidates = [start() for _ in range(8)]
        barrier = threading.Barrier(len(candidates))

        def _attempt(session):
            barrier.wait()
            try:
                registry.start(session)
                return True
            except SessionStateError:
                return False

        with ThreadPoolExecutor(max_workers=len(candidates)) as pool:
            outcomes = list(pool.map(_attempt, candidates))
        assert outcomes.count(True) == 1
        assert len(registry.sessions_for("athlete-1")) == 1
