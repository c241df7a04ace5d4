"""
Workout assignments.

An assignment schedules a plan for one athlete or for a group of athletes.
Per-athlete modifications are stored on the assignment and only applied when
the plan is presented or executed; the plan itself is never changed.
"""
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from workout_planner_api.exceptions import PlanValidationError, ReferentialIntegrityError
from workout_planner_api.models import (
    AthleteGroup,
    Exercise,
    WorkoutAssignment,
    WorkoutModification,
    WorkoutPlan,
    utcnow,
)
from workout_planner_api.utils import to_float, to_int

logger = logging.getLogger(__name__)


def _validate_times(start_time: Optional[str], end_time: Optional[str]) -> None:
    # "HH:MM" strings compare correctly as text
    if start_time and end_time and start_time >= end_time:
        raise PlanValidationError("End time must be after start time")


def create_individual_assignment(
    plan: WorkoutPlan,
    athlete_id: str,
    scheduled_date: date,
    assigned_by: Optional[str] = None,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    location: Optional[str] = None,
    notes: Optional[str] = None,
) -> WorkoutAssignment:
    if not athlete_id:
        raise PlanValidationError("An athlete is required for an individual assignment")
    _validate_times(start_time, end_time)
    return WorkoutAssignment(
        workout_plan_id=plan.id,
        workout_plan_name=plan.name,
        assignment_type="individual",
        athlete_id=athlete_id,
        athlete_ids=[athlete_id],
        assigned_by=assigned_by,
        scheduled_date=scheduled_date,
        start_time=start_time,
        end_time=end_time,
        location=location,
        notes=notes,
    )


def create_group_assignment(
    plan: WorkoutPlan,
    group: AthleteGroup,
    scheduled_date: date,
    assigned_by: Optional[str] = None,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    location: Optional[str] = None,
    notes: Optional[str] = None,
) -> WorkoutAssignment:
    """Assign to a group; the roster is snapshotted at assignment time."""
    if not group.athlete_ids:
        raise PlanValidationError(f"Group {group.name} has no athletes")
    _validate_times(start_time, end_time)
    return WorkoutAssignment(
        workout_plan_id=plan.id,
        workout_plan_name=plan.name,
        assignment_type="group",
        group_id=group.id,
        athlete_ids=list(dict.fromkeys(group.athlete_ids)),
        assigned_by=assigned_by,
        scheduled_date=scheduled_date,
        start_time=start_time,
        end_time=end_time,
        location=location,
        notes=notes,
    )


def bulk_assign(
    plan: WorkoutPlan,
    scheduled_date: date,
    athlete_ids: Iterable[str] = (),
    groups: Iterable[AthleteGroup] = (),
    **details,
) -> List[WorkoutAssignment]:
    """One assignment per athlete and per group."""
    assignments = [
        create_individual_assignment(plan, athlete_id, scheduled_date, **details)
        for athlete_id in dict.fromkeys(athlete_ids)
    ]
    assignments.extend(create_group_assignment(plan, group, scheduled_date, **details) for group in groups)
    if not assignments:
        raise PlanValidationError("Select at least one athlete or group")
    logger.info("Created %d assignments for plan %s", len(assignments), plan.id)
    return assignments


def athletes_for(assignment: WorkoutAssignment) -> List[str]:
    if assignment.assignment_type == "individual" and assignment.athlete_id:
        return [assignment.athlete_id]
    return list(assignment.athlete_ids)


def reschedule(
    assignment: WorkoutAssignment,
    scheduled_date: date,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
) -> WorkoutAssignment:
    _validate_times(start_time or assignment.start_time, end_time or assignment.end_time)
    return assignment.model_copy(
        update={
            "scheduled_date": scheduled_date,
            "start_time": start_time or assignment.start_time,
            "end_time": end_time or assignment.end_time,
        }
    )


def mark_completed(assignment: WorkoutAssignment) -> WorkoutAssignment:
    return assignment.model_copy(update={"status": "completed"})


def add_modification(
    assignment: WorkoutAssignment,
    plan: WorkoutPlan,
    modification: WorkoutModification,
) -> WorkoutAssignment:
    """Attach a per-athlete override. The plan is only read."""
    exercise = next((ex for ex in plan.exercises if ex.id == modification.workout_exercise_id), None)
    if exercise is None:
        raise ReferentialIntegrityError(
            f"Exercise {modification.workout_exercise_id} not found in plan {plan.id}"
        )
    if modification.athlete_id not in athletes_for(assignment):
        raise PlanValidationError(f"Athlete {modification.athlete_id} is not part of this assignment")
    _coerce_value(modification)

    original = modification.original_value
    if original is None:
        original = _current_value(exercise, modification)
    recorded = modification.model_copy(update={"original_value": original, "created_at": utcnow()})
    return assignment.model_copy(update={"modifications": [*assignment.modifications, recorded]})


def modifications_for(assignment: WorkoutAssignment, athlete_id: str) -> List[WorkoutModification]:
    return [mod for mod in assignment.modifications if mod.athlete_id == athlete_id]


def _current_value(exercise: Exercise, modification: WorkoutModification):
    return {
        "sets": exercise.sets,
        "reps": exercise.reps,
        "weight": exercise.weight,
        "exercise": exercise.exercise_name,
        "rest": exercise.rest_time,
    }[modification.modification_type]


def _coerce_value(modification: WorkoutModification):
    """Convert the modified value to the type its field needs."""
    value = modification.modified_value
    kind = modification.modification_type
    if kind in ("sets", "reps"):
        number = to_int(value)
        if number is None or number < 1:
            raise PlanValidationError(f"{kind.capitalize()} must be a whole number of at least 1")
        return number
    if kind in ("weight", "rest"):
        number = to_float(value)
        if number is None or number < 0:
            raise PlanValidationError(f"{kind.capitalize()} cannot be negative")
        return number if kind == "weight" else int(number)
    text = str(value).strip()
    if not text:
        raise PlanValidationError("Substitute exercise name is required")
    return text


def apply_modifications(plan: WorkoutPlan, modifications: Iterable[WorkoutModification]) -> List[Exercise]:
    """
    The plan's exercises as one athlete should see them.

    Returns new exercise objects; later modifications of the same type win.
    """
    by_exercise: Dict[str, List[WorkoutModification]] = {}
    for mod in modifications:
        by_exercise.setdefault(mod.workout_exercise_id, []).append(mod)

    result: List[Exercise] = []
    for exercise in plan.exercises:
        mods = by_exercise.get(exercise.id)
        if not mods:
            result.append(exercise)
            continue
        update: Dict[str, object] = {}
        for mod in mods:
            value = _coerce_value(mod)
            if mod.modification_type == "sets":
                update["sets"] = value
            elif mod.modification_type == "reps":
                update["reps"] = value
            elif mod.modification_type == "weight":
                update["weight"] = value
                update["weight_type"] = "fixed"
                update["percentage"] = None
                update["percentage_max"] = None
                update["percentage_base_kpi"] = None
            elif mod.modification_type == "rest":
                update["rest_time"] = value
            else:
                update["original_exercise"] = exercise.exercise_name
                update["exercise_name"] = value
                update["substitution_reason"] = mod.reason or None
                if mod.substitute_exercise_id:
                    update["exercise_id"] = mod.substitute_exercise_id
        result.append(exercise.model_copy(update=update))
    return result
