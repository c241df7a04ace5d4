"""
Plan editing operations.

Every operation takes a ``WorkoutPlan`` and returns a new one; the input plan
is never mutated.

Exercise ``order`` is scoped. An exercise's scope is its group when it has one,
otherwise its block instance, otherwise the plan's top level. After every
operation the members of each scope carry a dense ``1..N`` order and appear
in that order in ``plan.exercises``.
"""
import logging
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from workout_planner_api.config import settings
from workout_planner_api.exceptions import (
    PlanValidationError,
    ReferentialIntegrityError,
    ScopeError,
)
from workout_planner_api.models import (
    Exercise,
    ExerciseGroup,
    GroupType,
    LibraryExercise,
    WeightType,
    WorkoutPlan,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

ScopeKey = Tuple[str, Optional[str]]
TOP_LEVEL: ScopeKey = ("top", None)

# Defaults for a blank exercise added from the editor
DEFAULT_SETS = 3
DEFAULT_REPS = 10
DEFAULT_REST_SECONDS = 120


# ---------------------------------------------------------------------------
# Scopes and indexes
# ---------------------------------------------------------------------------


def scope_of(exercise: Exercise) -> ScopeKey:
    """Return the ordering scope an exercise belongs to."""
    if exercise.group_id:
        return ("group", exercise.group_id)
    if exercise.block_instance_id:
        return ("block", exercise.block_instance_id)
    return TOP_LEVEL


def scope_members(exercises: Iterable[Exercise], scope: ScopeKey) -> List[Exercise]:
    """Members of a scope sorted by order."""
    return sorted((ex for ex in exercises if scope_of(ex) == scope), key=lambda ex: ex.order)


def group_index(plan: WorkoutPlan) -> Dict[str, List[Exercise]]:
    """Group id -> member exercises (by order). Groups without members map to []."""
    index: Dict[str, List[Exercise]] = {group.id: [] for group in plan.groups}
    for ex in plan.exercises:
        if ex.group_id is not None:
            index.setdefault(ex.group_id, []).append(ex)
    for members in index.values():
        members.sort(key=lambda ex: ex.order)
    return index


def top_level_exercises(plan: WorkoutPlan) -> List[Exercise]:
    """The ungrouped, unblocked exercises shown at the plan's top level."""
    return scope_members(plan.exercises, TOP_LEVEL)


def execution_sequence(exercises: List[Exercise]) -> List[Exercise]:
    """
    Flatten a plan's exercises into run order.

    Each scope is first put into ``order`` order within the list slots it
    occupies, so a plan whose list is out of order still runs 1..N. The
    members of a group are emitted together at the position of the group's
    first member.
    """
    exercises = normalize_order(exercises)
    emitted_groups = set()
    members: Dict[str, List[Exercise]] = {}
    for ex in exercises:
        if ex.group_id:
            members.setdefault(ex.group_id, []).append(ex)

    sequence: List[Exercise] = []
    for ex in exercises:
        if not ex.group_id:
            sequence.append(ex)
            continue
        if ex.group_id in emitted_groups:
            continue
        emitted_groups.add(ex.group_id)
        sequence.extend(sorted(members[ex.group_id], key=lambda e: e.order))
    return sequence


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


def check_references(plan: WorkoutPlan) -> List[str]:
    """List dangling or inconsistent group / block instance references."""
    problems: List[str] = []
    groups = {group.id: group for group in plan.groups}
    instance_ids = {instance.id for instance in plan.block_instances}

    for ex in plan.exercises:
        if ex.group_id and ex.group_id not in groups:
            problems.append(f"Exercise {ex.id} references missing group {ex.group_id}")
        if ex.block_instance_id and ex.block_instance_id not in instance_ids:
            problems.append(
                f"Exercise {ex.id} references missing block instance {ex.block_instance_id}"
            )
        group = groups.get(ex.group_id) if ex.group_id else None
        if group is not None and group.block_instance_id != ex.block_instance_id:
            problems.append(
                f"Exercise {ex.id} and its group {group.id} belong to different block instances"
            )

    for group in plan.groups:
        if group.block_instance_id and group.block_instance_id not in instance_ids:
            problems.append(
                f"Group {group.id} references missing block instance {group.block_instance_id}"
            )
    return problems


def assert_references(plan: WorkoutPlan) -> None:
    """Fail loudly on dangling references in strict mode, log otherwise."""
    problems = check_references(plan)
    if not problems:
        return
    if settings.STRICT_REFERENCES:
        raise ReferentialIntegrityError("; ".join(problems))
    for problem in problems:
        logger.warning("Plan %s: %s", plan.id, problem)


def normalize_order(exercises: List[Exercise]) -> List[Exercise]:
    """
    Renumber every scope to ``1..N``.

    Each scope keeps the list slots it occupies; its members are placed into
    those slots sorted by (order, list position).
    """
    slots: Dict[ScopeKey, List[int]] = {}
    for position, ex in enumerate(exercises):
        slots.setdefault(scope_of(ex), []).append(position)

    result: List[Optional[Exercise]] = [None] * len(exercises)
    for positions in slots.values():
        ranked = sorted(positions, key=lambda p: (exercises[p].order, p))
        for number, (slot, source) in enumerate(zip(positions, ranked), start=1):
            ex = exercises[source]
            result[slot] = ex if ex.order == number else ex.model_copy(update={"order": number})
    return [ex for ex in result if ex is not None]


def normalize_group_order(groups: List[ExerciseGroup]) -> List[ExerciseGroup]:
    ranked = sorted(enumerate(groups), key=lambda item: (item[1].order, item[0]))
    result = []
    for number, (_, group) in enumerate(ranked, start=1):
        result.append(group if group.order == number else group.model_copy(update={"order": number}))
    return result


def rebuild_plan(
    plan: WorkoutPlan,
    exercises: Optional[List[Exercise]] = None,
    groups: Optional[List[ExerciseGroup]] = None,
    **changes,
) -> WorkoutPlan:
    """Copy ``plan`` with new lists, renumbering scopes and checking references."""
    update = dict(changes)
    update["exercises"] = normalize_order(plan.exercises if exercises is None else exercises)
    update["groups"] = normalize_group_order(plan.groups if groups is None else groups)
    update["updated_at"] = utcnow()
    updated = plan.model_copy(update=update)
    assert_references(updated)
    return updated


def _find_exercise(plan: WorkoutPlan, exercise_id: str) -> Exercise:
    for ex in plan.exercises:
        if ex.id == exercise_id:
            return ex
    raise ReferentialIntegrityError(f"Exercise {exercise_id} not found in plan {plan.id}")


def _find_group(plan: WorkoutPlan, group_id: str) -> ExerciseGroup:
    for group in plan.groups:
        if group.id == group_id:
            return group
    raise ReferentialIntegrityError(f"Group {group_id} not found in plan {plan.id}")


def _next_order(exercises: Iterable[Exercise], scope: ScopeKey) -> int:
    return max((ex.order for ex in exercises if scope_of(ex) == scope), default=0) + 1


def _require_name(exercise: Exercise) -> None:
    if not exercise.exercise_name or not exercise.exercise_name.strip():
        raise PlanValidationError("Exercise name is required")


# ---------------------------------------------------------------------------
# Exercise operations
# ---------------------------------------------------------------------------


def set_weight_type(exercise: Exercise, weight_type: WeightType) -> Exercise:
    """Switch the load type, clearing whichever load fields no longer apply."""
    data = exercise.model_dump()
    data["weight_type"] = weight_type
    return Exercise.model_validate(data)


def add_exercise(plan: WorkoutPlan, exercise: Optional[Exercise] = None) -> WorkoutPlan:
    """Append an exercise to the end of its scope (a blank one when omitted)."""
    if exercise is None:
        exercise = Exercise(
            id=new_id("ex"),
            exercise_id="new-exercise",
            exercise_name="New Exercise",
            sets=DEFAULT_SETS,
            reps=DEFAULT_REPS,
            weight_type="fixed",
            weight=0,
            rest_time=DEFAULT_REST_SECONDS,
        )
    _require_name(exercise)
    if any(ex.id == exercise.id for ex in plan.exercises):
        raise PlanValidationError(f"Exercise id {exercise.id} already exists in the plan")
    if exercise.group_id:
        _find_group(plan, exercise.group_id)

    placed = exercise.model_copy(update={"order": _next_order(plan.exercises, scope_of(exercise))})
    return rebuild_plan(plan, exercises=[*plan.exercises, placed])


def add_exercise_from_library(plan: WorkoutPlan, entry: LibraryExercise) -> WorkoutPlan:
    """Append an exercise resolved from the exercise library."""
    exercise = Exercise(
        id=new_id("ex"),
        exercise_id=entry.id,
        exercise_name=entry.name,
        sets=DEFAULT_SETS,
        reps=DEFAULT_REPS,
        weight_type="fixed",
        weight=0,
        rest_time=DEFAULT_REST_SECONDS,
    )
    return add_exercise(plan, exercise)


def update_exercise(plan: WorkoutPlan, updated: Exercise) -> WorkoutPlan:
    """
    Replace an exercise's prescription.

    Placement (order, group, block instance) is kept from the current version;
    use ``move_exercise`` or ``move_exercise_to_group`` to change it.
    """
    current = _find_exercise(plan, updated.id)
    _require_name(updated)
    if (updated.group_id, updated.block_instance_id) != (current.group_id, current.block_instance_id):
        raise ScopeError(
            f"Exercise {updated.id} cannot change group or block via update; "
            "use move_exercise_to_group"
        )
    data = updated.model_dump()
    data["order"] = current.order
    replacement = Exercise.model_validate(data)
    exercises = [replacement if ex.id == updated.id else ex for ex in plan.exercises]
    return rebuild_plan(plan, exercises=exercises)


def delete_exercise(plan: WorkoutPlan, exercise_id: str) -> WorkoutPlan:
    _find_exercise(plan, exercise_id)
    return rebuild_plan(plan, exercises=[ex for ex in plan.exercises if ex.id != exercise_id])


def move_exercise(
    plan: WorkoutPlan,
    exercise_id: str,
    direction: Literal["up", "down"],
    scope_group_id: Optional[str] = None,
) -> WorkoutPlan:
    """
    Swap an exercise with its neighbour inside the same scope.

    ``scope_group_id`` names the group the caller is reordering in (``None``
    for an ungrouped list). Moving past either end of the scope is a no-op.
    """
    exercise = _find_exercise(plan, exercise_id)
    if exercise.group_id != scope_group_id:
        raise ScopeError(
            f"Exercise {exercise_id} is not in scope "
            f"{scope_group_id or 'ungrouped'}; use move_exercise_to_group"
        )

    members = scope_members(plan.exercises, scope_of(exercise))
    index = next(i for i, ex in enumerate(members) if ex.id == exercise_id)
    target = index - 1 if direction == "up" else index + 1
    if target < 0 or target >= len(members):
        return plan

    neighbour = members[target]
    swapped = {exercise.id: neighbour.order, neighbour.id: exercise.order}
    exercises = [
        ex.model_copy(update={"order": swapped[ex.id]}) if ex.id in swapped else ex
        for ex in plan.exercises
    ]
    return rebuild_plan(plan, exercises=exercises)


def move_exercise_to_group(
    plan: WorkoutPlan,
    exercise_id: str,
    target_group_id: Optional[str] = None,
) -> WorkoutPlan:
    """Move an exercise into a group (appended last), or out of its group when ``None``."""
    exercise = _find_exercise(plan, exercise_id)
    if exercise.group_id == target_group_id:
        return plan
    if target_group_id is not None:
        group = _find_group(plan, target_group_id)
        if group.block_instance_id != exercise.block_instance_id:
            raise ScopeError(
                f"Group {target_group_id} belongs to a different block instance than exercise {exercise_id}"
            )

    moved = exercise.model_copy(update={"group_id": target_group_id})
    others = [ex for ex in plan.exercises if ex.id != exercise_id]
    moved = moved.model_copy(update={"order": _next_order(others, scope_of(moved))})
    exercises = [moved if ex.id == exercise_id else ex for ex in plan.exercises]
    return rebuild_plan(plan, exercises=exercises)


# ---------------------------------------------------------------------------
# Group operations
# ---------------------------------------------------------------------------


def create_group(
    plan: WorkoutPlan,
    exercise_ids: List[str],
    group_type: GroupType,
    rounds: Optional[int] = None,
    rest_between_exercises: Optional[int] = None,
    rest_between_rounds: Optional[int] = None,
    name: Optional[str] = None,
) -> WorkoutPlan:
    """Create a group and move the given exercises into it, keeping their relative order."""
    if not exercise_ids:
        raise PlanValidationError("Select at least one exercise to create a group")
    selected = [_find_exercise(plan, exercise_id) for exercise_id in exercise_ids]

    block_ids = {ex.block_instance_id for ex in selected}
    if len(block_ids) > 1:
        raise ScopeError("Cannot group exercises from different block instances")

    group_number = len(plan.groups) + 1
    group = ExerciseGroup(
        id=new_id("grp"),
        name=name or f"Group {group_number}",
        type=group_type,
        order=group_number,
        rounds=rounds,
        rest_between_exercises=rest_between_exercises,
        rest_between_rounds=rest_between_rounds,
        block_instance_id=block_ids.pop(),
    )

    wanted = set(exercise_ids)
    exercises = []
    position = 0
    for ex in plan.exercises:
        if ex.id in wanted:
            position += 1
            ex = ex.model_copy(update={"group_id": group.id, "order": position})
        exercises.append(ex)
    logger.debug("Created %s group %s with %d exercises", group_type, group.id, len(wanted))
    return rebuild_plan(plan, exercises=exercises, groups=[*plan.groups, group])


def update_group(plan: WorkoutPlan, updated: ExerciseGroup) -> WorkoutPlan:
    current = _find_group(plan, updated.id)
    data = updated.model_dump()
    data["block_instance_id"] = current.block_instance_id
    replacement = ExerciseGroup.model_validate(data)
    groups = [replacement if group.id == updated.id else group for group in plan.groups]
    return rebuild_plan(plan, groups=groups)


def delete_group(plan: WorkoutPlan, group_id: str) -> WorkoutPlan:
    """Delete a group. Its exercises stay in the plan, appended to their ungrouped scope."""
    _find_group(plan, group_id)
    exercises = list(plan.exercises)
    for position, ex in enumerate(exercises):
        if ex.group_id != group_id:
            continue
        released = ex.model_copy(update={"group_id": None})
        released = released.model_copy(
            update={"order": _next_order(exercises, scope_of(released))}
        )
        exercises[position] = released
    groups = [group for group in plan.groups if group.id != group_id]
    return rebuild_plan(plan, exercises=exercises, groups=groups)
