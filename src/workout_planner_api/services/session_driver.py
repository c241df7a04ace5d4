"""
Drives a live session against its collaborators.

Commands are serialised with an ``asyncio.Lock``: each one is applied to the
local session first and then written through. A failed set append stays
local and is queued in ``failed_writes`` for the athlete to retry. Edits,
deletions and status changes are rolled back when the write fails.
"""
import asyncio
import logging
from typing import List, Optional, Union

from pydantic import BaseModel

from workout_planner_api.config import settings
from workout_planner_api.exceptions import PersistenceError
from workout_planner_api.models import SetRecord, WorkoutSession
from workout_planner_api.services import session_engine
from workout_planner_api.services.collaborators import PersistenceCollaborator, PRCollaborator
from workout_planner_api.services.pr_detection import PRComparison
from workout_planner_api.services.session_engine import UNCHANGED, SetCompletion, Unchanged

logger = logging.getLogger(__name__)


class LiveSetResult(BaseModel):
    completion: SetCompletion
    persisted: bool = True
    pr: Optional[PRComparison] = None


class LiveSessionDriver:
    def __init__(
        self,
        session: WorkoutSession,
        persistence: PersistenceCollaborator,
        pr_detector: Optional[PRCollaborator] = None,
        advance_delay_ms: Optional[int] = None,
    ):
        self.session = session
        self.persistence = persistence
        self.pr_detector = pr_detector
        # Presentation hint only; the state machine never waits on it.
        self.advance_delay_ms = settings.ADVANCE_DELAY_MS if advance_delay_ms is None else advance_delay_ms
        self.failed_writes: List[SetRecord] = []
        self._lock = asyncio.Lock()

    async def complete_set(
        self,
        weight: Optional[float],
        reps: int,
        rpe: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> LiveSetResult:
        async with self._lock:
            completion = session_engine.complete_set(self.session, weight, reps, rpe=rpe, notes=notes)
            self.session = completion.session
            record = completion.record

            persisted = True
            try:
                await self.persistence.append_set_record(self.session.id, record)
            except Exception as e:
                persisted = False
                self.failed_writes.append(record)
                logger.warning("Failed to save set %s for session %s: %s", record.id, self.session.id, e)

            pr = None
            if record.weight and self.pr_detector is not None:
                exercise = self.session.exercises[completion.exercise_index]
                try:
                    pr = await self.pr_detector.check_for_pr(
                        self.session.athlete_id, exercise.exercise_id, record.weight, record.reps
                    )
                except Exception as e:
                    logger.warning("PR check failed for %s: %s", exercise.exercise_id, e)

            return LiveSetResult(completion=completion, persisted=persisted, pr=pr)

    async def retry_failed_writes(self) -> List[SetRecord]:
        """Re-send queued set appends. Returns the records that still failed."""
        async with self._lock:
            pending, self.failed_writes = self.failed_writes, []
            for record in pending:
                try:
                    await self.persistence.append_set_record(self.session.id, record)
                except Exception as e:
                    logger.warning("Retry of set %s failed: %s", record.id, e)
                    self.failed_writes.append(record)
            return list(self.failed_writes)

    async def _apply_and_write(self, updated: WorkoutSession, write, action: str) -> WorkoutSession:
        previous = self.session
        self.session = updated
        try:
            await write()
        except Exception as e:
            self.session = previous
            logger.error("Failed to %s for session %s: %s", action, previous.id, e)
            raise PersistenceError(f"Failed to {action}: {e}") from e
        return self.session

    async def edit_set(
        self,
        set_id: str,
        weight: Union[Optional[float], Unchanged] = UNCHANGED,
        reps: Union[int, Unchanged] = UNCHANGED,
    ) -> WorkoutSession:
        async with self._lock:
            updated = session_engine.edit_set(self.session, set_id, weight=weight, reps=reps)
            record = next(r for r in updated.recorded_sets if r.id == set_id)
            return await self._apply_and_write(
                updated,
                lambda: self.persistence.update_set_record(updated.id, record),
                "update set",
            )

    async def delete_set(self, set_id: str) -> WorkoutSession:
        async with self._lock:
            updated = session_engine.delete_set(self.session, set_id)
            return await self._apply_and_write(
                updated,
                lambda: self.persistence.delete_set_record(updated.id, set_id),
                "delete set",
            )

    async def _transition(self, updated: WorkoutSession, action: str) -> WorkoutSession:
        return await self._apply_and_write(
            updated, lambda: self.persistence.mark_session_status(updated), action
        )

    async def pause(self) -> WorkoutSession:
        async with self._lock:
            return await self._transition(session_engine.pause_session(self.session), "pause workout")

    async def resume(self) -> WorkoutSession:
        async with self._lock:
            return await self._transition(session_engine.resume_session(self.session), "resume workout")

    async def complete_workout(self, confirmed: bool = False) -> WorkoutSession:
        async with self._lock:
            updated = session_engine.complete_session(self.session, confirmed=confirmed)
            session = await self._transition(updated, "complete workout")
            logger.info(
                "Session %s completed in %ss", session.id, session.total_duration_seconds
            )
            return session

    async def abandon(self, confirmed: bool = False) -> WorkoutSession:
        async with self._lock:
            updated = session_engine.abandon_session(self.session, confirmed=confirmed)
            return await self._transition(updated, "abandon workout")
