"""
Live session state machine.

A ``WorkoutSession`` walks one athlete through an assigned plan. Sessions are
values: every function here returns a new session and leaves its input
untouched, so a sequence of commands can be replayed against persisted state.

Statuses::

    active  --pause-->    paused
    paused  --resume-->   active
    active  --complete--> completed
    active|paused --abandon--> abandoned   (terminal)

Completing the last set of an exercise also moves the pointer. Supersets and
circuits with more than one round loop back to their first member until
``group_rounds[group]`` reaches ``rounds``. The decision is computed from the
session's persisted counters only, never from a timer.
"""
import logging
import math
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel

from workout_planner_api.config import settings
from workout_planner_api.exceptions import (
    ConfirmationRequiredError,
    PlanValidationError,
    ReferentialIntegrityError,
    SessionStateError,
)
from workout_planner_api.models import (
    GroupInfo,
    SessionExercise,
    SetRecord,
    WorkoutAssignment,
    WorkoutPlan,
    WorkoutSession,
    new_id,
    utcnow,
)
from workout_planner_api.services.assignments import (
    apply_modifications,
    athletes_for,
    modifications_for,
)
from workout_planner_api.services.plan_editor import execution_sequence
from workout_planner_api.utils import leading_int

logger = logging.getLogger(__name__)

DEFAULT_REST_SECONDS = 60
LOOPING_GROUP_TYPES = ("circuit", "superset")

class Unchanged:
    """Marker for an ``edit_set`` field the caller leaves as it is."""

    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = Unchanged()


class Advancement(BaseModel):
    """Where the pointer goes after an exercise is completed."""
    next_index: int
    reason: Literal["next_round", "next_in_group", "after_group", "next_exercise", "end_of_workout"]
    new_round: Optional[int] = None
    reset_group_id: Optional[str] = None


class SetPrefill(BaseModel):
    """Default form values for the next set."""
    weight: Optional[float] = None
    reps: Optional[int] = None


class SetCompletion(BaseModel):
    """Outcome of ``complete_set``."""
    session: WorkoutSession
    record: SetRecord
    exercise_index: int
    exercise_completed: bool = False
    advancement: Optional[Advancement] = None
    prefill: SetPrefill


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


def start_session(
    assignment: WorkoutAssignment,
    plan: WorkoutPlan,
    athlete_id: str,
    session_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WorkoutSession:
    """Project an assignment into a fresh session for one athlete."""
    if assignment.workout_plan_id != plan.id:
        raise ReferentialIntegrityError(
            f"Assignment {assignment.id} is for plan {assignment.workout_plan_id}, not {plan.id}"
        )
    if athlete_id not in athletes_for(assignment):
        raise PlanValidationError("Assignment not found for this athlete")
    if assignment.status == "completed":
        raise SessionStateError(f"Assignment {assignment.id} is already completed")

    exercises = execution_sequence(apply_modifications(plan, modifications_for(assignment, athlete_id)))
    if not exercises:
        raise PlanValidationError("No exercises found in this workout")

    session_exercises = [
        SessionExercise(
            session_exercise_id=new_id("sx"),
            exercise_id=ex.exercise_id,
            exercise_name=ex.exercise_name,
            group_id=ex.group_id,
            sets_target=ex.sets,
            reps_target=str(ex.reps),
            weight_target=ex.weight if ex.weight_type == "fixed" else None,
            weight_percentage=ex.percentage if ex.weight_type == "percentage" else None,
            rest_seconds=ex.rest_time if ex.rest_time is not None else DEFAULT_REST_SECONDS,
            tempo=ex.tempo,
            order_index=index,
            notes=ex.notes,
        )
        for index, ex in enumerate(exercises)
    ]
    used_groups = {ex.group_id for ex in exercises if ex.group_id}
    groups = [
        GroupInfo(
            id=group.id,
            name=group.name,
            type=group.type,
            order_index=group.order,
            rounds=group.rounds,
            rest_between_rounds=group.rest_between_rounds,
            rest_between_exercises=group.rest_between_exercises,
            notes=group.notes,
        )
        for group in plan.groups
        if group.id in used_groups
    ]
    session = WorkoutSession(
        id=session_id or new_id("sess"),
        assignment_id=assignment.id,
        athlete_id=athlete_id,
        workout_plan_id=plan.id,
        workout_name=plan.name or "Untitled Workout",
        started_at=now or utcnow(),
        exercises=session_exercises,
        groups=groups,
        group_rounds={group.id: 1 for group in groups},
    )
    logger.info(
        "Started session %s for athlete %s (%d exercises)", session.id, athlete_id, len(session_exercises)
    )
    return session


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


def _require_status(session: WorkoutSession, allowed: tuple, action: str) -> None:
    if session.status not in allowed:
        raise SessionStateError(f"Cannot {action} a session that is {session.status}")


def _elapsed_seconds(session: WorkoutSession, now: datetime) -> int:
    return max(0, math.floor((now - session.started_at).total_seconds()))


def pause_session(session: WorkoutSession, now: Optional[datetime] = None) -> WorkoutSession:
    _require_status(session, ("active",), "pause")
    return session.model_copy(update={"status": "paused", "paused_at": now or utcnow()})


def resume_session(session: WorkoutSession) -> WorkoutSession:
    _require_status(session, ("paused",), "resume")
    return session.model_copy(update={"status": "active", "paused_at": None})


def abandon_session(
    session: WorkoutSession,
    confirmed: bool = False,
    now: Optional[datetime] = None,
) -> WorkoutSession:
    """Discard the session. Terminal: an abandoned session cannot be resumed."""
    _require_status(session, ("active", "paused"), "abandon")
    if not confirmed:
        raise ConfirmationRequiredError("Abandon this workout? Progress will not be resumable.")
    now = now or utcnow()
    return session.model_copy(
        update={"status": "abandoned", "total_duration_seconds": _elapsed_seconds(session, now)}
    )


def is_workout_complete(session: WorkoutSession) -> bool:
    return all(ex.completed for ex in session.exercises)


def complete_session(
    session: WorkoutSession,
    confirmed: bool = False,
    now: Optional[datetime] = None,
) -> WorkoutSession:
    """
    Finish the workout.

    Finishing with unfinished exercises needs ``confirmed=True``. Duration is
    the wall-clock span since ``started_at``.
    """
    _require_status(session, ("active",), "complete")
    if not confirmed and not is_workout_complete(session):
        remaining = sum(1 for ex in session.exercises if not ex.completed)
        raise ConfirmationRequiredError(
            f"{remaining} exercise(s) are not finished. Complete the workout anyway?"
        )
    now = now or utcnow()
    return session.model_copy(
        update={
            "status": "completed",
            "completed_at": now,
            "paused_at": None,
            "total_duration_seconds": _elapsed_seconds(session, now),
        }
    )


# ---------------------------------------------------------------------------
# Atomic exercise transitions
# ---------------------------------------------------------------------------


def _exercise_at(session: WorkoutSession, index: int) -> SessionExercise:
    if index < 0 or index >= len(session.exercises):
        raise IndexError(f"Exercise index {index} out of range for session {session.id}")
    return session.exercises[index]


def _with_exercise(session: WorkoutSession, index: int, exercise: SessionExercise) -> WorkoutSession:
    exercises = list(session.exercises)
    exercises[index] = exercise
    return session.model_copy(update={"exercises": exercises})


def add_set_record(session: WorkoutSession, exercise_index: int, record: SetRecord) -> WorkoutSession:
    exercise = _exercise_at(session, exercise_index)
    updated = exercise.model_copy(
        update={
            "set_records": [*exercise.set_records, record],
            "sets_completed": exercise.sets_completed + 1,
        }
    )
    session = _with_exercise(session, exercise_index, updated)
    return session.model_copy(update={"recorded_sets": [*session.recorded_sets, record]})


def complete_exercise(session: WorkoutSession, exercise_index: int) -> WorkoutSession:
    exercise = _exercise_at(session, exercise_index)
    return _with_exercise(session, exercise_index, exercise.model_copy(update={"completed": True}))


def update_exercise_index(session: WorkoutSession, index: int) -> WorkoutSession:
    _exercise_at(session, index)
    return session.model_copy(update={"current_exercise_index": index})


def update_group_round(session: WorkoutSession, group_id: str, round_number: int) -> WorkoutSession:
    if round_number < 1:
        raise ValueError("Round numbers start at 1")
    return session.model_copy(update={"group_rounds": {**session.group_rounds, group_id: round_number}})


def reset_circuit_exercises(session: WorkoutSession, group_id: str) -> WorkoutSession:
    """Start a new round: clear progress on every member of the group."""
    exercises = [
        ex.model_copy(update={"completed": False, "sets_completed": 0, "set_records": []})
        if ex.group_id == group_id
        else ex
        for ex in session.exercises
    ]
    return session.model_copy(update={"exercises": exercises})


# ---------------------------------------------------------------------------
# Advancement
# ---------------------------------------------------------------------------


def _group_info(session: WorkoutSession, group_id: str) -> Optional[GroupInfo]:
    for group in session.groups:
        if group.id == group_id:
            return group
    message = f"Session {session.id} exercise references unknown group {group_id}"
    if settings.STRICT_REFERENCES:
        raise ReferentialIntegrityError(message)
    logger.warning("%s; treating it as ungrouped", message)
    return None


def group_member_indices(session: WorkoutSession, group_id: str) -> List[int]:
    """Session positions of a group's members, in group order."""
    members = [i for i, ex in enumerate(session.exercises) if ex.group_id == group_id]
    return sorted(members, key=lambda i: (session.exercises[i].order_index, i))


def _is_looping(group: Optional[GroupInfo]) -> bool:
    return group is not None and group.type in LOOPING_GROUP_TYPES and (group.rounds or 1) > 1


def _advance_to(target: int, current: int, count: int, reason: str) -> Advancement:
    if target < count:
        return Advancement(next_index=target, reason=reason)
    return Advancement(next_index=current, reason="end_of_workout")


def decide_advancement(session: WorkoutSession, exercise_index: int) -> Advancement:
    """
    Decide where to go after the exercise at ``exercise_index`` was completed.

    Pure function of the session's counters. "Last in group" is decided by
    position among the members, whichever member the athlete started from.
    """
    exercise = _exercise_at(session, exercise_index)
    count = len(session.exercises)
    group = _group_info(session, exercise.group_id) if exercise.group_id else None

    if not _is_looping(group):
        return _advance_to(exercise_index + 1, exercise_index, count, "next_exercise")

    members = group_member_indices(session, group.id)
    position = members.index(exercise_index)
    if position < len(members) - 1:
        return Advancement(next_index=members[position + 1], reason="next_in_group")

    current_round = session.group_rounds.get(group.id, 1)
    if current_round < group.rounds:
        return Advancement(
            next_index=members[0],
            reason="next_round",
            new_round=current_round + 1,
            reset_group_id=group.id,
        )
    return _advance_to(max(members) + 1, exercise_index, count, "after_group")


def apply_advancement(session: WorkoutSession, advancement: Advancement) -> WorkoutSession:
    if advancement.reset_group_id and advancement.new_round:
        session = update_group_round(session, advancement.reset_group_id, advancement.new_round)
        session = reset_circuit_exercises(session, advancement.reset_group_id)
    return update_exercise_index(session, advancement.next_index)


# ---------------------------------------------------------------------------
# Sets
# ---------------------------------------------------------------------------


def prefill_for_exercise(exercise: SessionExercise) -> SetPrefill:
    if exercise.set_records:
        last = exercise.set_records[-1]
        return SetPrefill(weight=last.weight, reps=last.reps)
    return SetPrefill(weight=exercise.weight_target, reps=leading_int(exercise.reps_target))


def prefill_for_next_set(session: WorkoutSession) -> SetPrefill:
    return prefill_for_exercise(_exercise_at(session, session.current_exercise_index))


def _validate_set_values(weight: Optional[float], reps: Optional[int], rpe: Optional[int] = None) -> None:
    if not reps or reps <= 0:
        raise PlanValidationError("Please enter the number of reps completed")
    if weight is not None and weight < 0:
        raise PlanValidationError("Weight cannot be negative")
    if rpe is not None and not 1 <= rpe <= 10:
        raise PlanValidationError("RPE must be between 1 and 10")


def complete_set(
    session: WorkoutSession,
    weight: Optional[float],
    reps: int,
    rpe: Optional[int] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SetCompletion:
    """
    Record a set on the current exercise and advance when its sets are done.

    A set logged on an exercise that was already complete is recorded but does
    not move the pointer again.
    """
    _require_status(session, ("active",), "record a set in")
    _validate_set_values(weight, reps, rpe)

    index = session.current_exercise_index
    exercise = _exercise_at(session, index)
    was_completed = exercise.completed
    round_number = session.group_rounds.get(exercise.group_id, 1) if exercise.group_id else 1

    record = SetRecord(
        session_exercise_id=exercise.session_exercise_id,
        set_number=max((r.set_number for r in exercise.set_records), default=0) + 1,
        weight=weight or None,
        reps=reps,
        rpe=rpe,
        completed_at=now or utcnow(),
        round=round_number,
        notes=notes,
    )
    session = add_set_record(session, index, record)
    exercise = session.exercises[index]

    advancement = None
    just_completed = not was_completed and exercise.sets_completed >= exercise.sets_target
    if just_completed:
        session = complete_exercise(session, index)
        advancement = decide_advancement(session, index)
        session = apply_advancement(session, advancement)
        logger.debug("Session %s: exercise %d complete -> %s", session.id, index, advancement.reason)

    if session.current_exercise_index == index and not (advancement and advancement.reset_group_id):
        prefill = SetPrefill(weight=record.weight, reps=record.reps)
    else:
        prefill = prefill_for_next_set(session)

    return SetCompletion(
        session=session,
        record=record,
        exercise_index=index,
        exercise_completed=just_completed,
        advancement=advancement,
        prefill=prefill,
    )


def _locate_set(session: WorkoutSession, set_id: str):
    for index, exercise in enumerate(session.exercises):
        for record in exercise.set_records:
            if record.id == set_id:
                return index, record
    for record in session.recorded_sets:
        if record.id == set_id:
            return None, record
    raise ReferentialIntegrityError(f"Set {set_id} not found in session {session.id}")


def edit_set(
    session: WorkoutSession,
    set_id: str,
    weight: Union[Optional[float], Unchanged] = UNCHANGED,
    reps: Union[int, Unchanged] = UNCHANGED,
) -> WorkoutSession:
    """
    Correct the weight and/or reps of a recorded set.

    Fields left as ``UNCHANGED`` keep their recorded value; ``weight=None``
    clears the weight.

    Pure data correction: completion flags and the pointer are not revisited.
    """
    if session.status == "abandoned":
        raise SessionStateError("Cannot edit sets of an abandoned session")
    index, record = _locate_set(session, set_id)
    changes = {}
    if weight is not UNCHANGED:
        changes["weight"] = weight
    if reps is not UNCHANGED:
        changes["reps"] = reps
    _validate_set_values(changes.get("weight", record.weight), changes.get("reps", record.reps))
    edited = record.model_copy(update=changes)

    if index is not None:
        exercise = session.exercises[index]
        records = [edited if r.id == set_id else r for r in exercise.set_records]
        session = _with_exercise(session, index, exercise.model_copy(update={"set_records": records}))
    log = [edited if r.id == set_id else r for r in session.recorded_sets]
    return session.model_copy(update={"recorded_sets": log})


def delete_set(session: WorkoutSession, set_id: str) -> WorkoutSession:
    """
    Remove a recorded set.

    Other sets keep their ``set_number``. The exercise's ``sets_completed`` is
    recounted from its remaining records and ``completed`` follows from it.
    """
    if session.status == "abandoned":
        raise SessionStateError("Cannot delete sets of an abandoned session")
    index, _ = _locate_set(session, set_id)
    if index is not None:
        exercise = session.exercises[index]
        records = [r for r in exercise.set_records if r.id != set_id]
        updated = exercise.model_copy(
            update={
                "set_records": records,
                "sets_completed": len(records),
                "completed": len(records) >= exercise.sets_target,
            }
        )
        session = _with_exercise(session, index, updated)
    log = [r for r in session.recorded_sets if r.id != set_id]
    return session.model_copy(update={"recorded_sets": log})
