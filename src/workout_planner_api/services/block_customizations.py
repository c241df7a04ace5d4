"""
Block instance customization tracking.

A block instance starts as a clone of its template. When a coach edits the
instance, the edit is saved together with an explicit record of how the
instance now differs from the template, so template changes never silently
rewrite plans built from it.

Instance entities are matched to template entities by their
``source_exercise_id`` / ``source_group_id`` (falling back to their own id).
Customization lists therefore use template ids for modified and removed
entries and instance ids for added ones.
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from workout_planner_api.exceptions import (
    ConfirmationRequiredError,
    PlanValidationError,
    ReferentialIntegrityError,
)
from workout_planner_api.models import (
    BlockCustomizations,
    BlockInstance,
    BlockTemplate,
    Exercise,
    ExerciseGroup,
    WorkoutPlan,
    utcnow,
)
from workout_planner_api.services.block_library import clone_template_contents
from workout_planner_api.services.duration import DurationEstimator, estimate_duration
from workout_planner_api.services.plan_editor import rebuild_plan

logger = logging.getLogger(__name__)

# Prescription fields compared when deciding whether an entity was modified.
# Placement (id, order, block instance, source links) is deliberately absent.
EXERCISE_CONTENT_FIELDS: Tuple[str, ...] = (
    "exercise_id",
    "exercise_name",
    "sets",
    "reps",
    "weight_type",
    "weight",
    "weight_max",
    "percentage",
    "percentage_max",
    "percentage_base_kpi",
    "tempo",
    "rest_time",
    "each_side",
    "notes",
    "substitution_reason",
    "original_exercise",
)

GROUP_CONTENT_FIELDS: Tuple[str, ...] = (
    "name",
    "type",
    "description",
    "rounds",
    "rest_between_rounds",
    "rest_between_exercises",
    "notes",
)


def _exercise_key(exercise: Exercise) -> str:
    return exercise.source_exercise_id or exercise.id


def _group_key(group: ExerciseGroup) -> str:
    return group.source_group_id or group.id


def diff_exercise_fields(
    current: Exercise,
    original: Exercise,
    current_group_keys: Optional[Dict[str, str]] = None,
) -> List[str]:
    """
    Names of the prescription fields that differ between two exercises.

    ``current_group_keys`` maps the instance's group ids to template group ids
    so that group membership is compared in template terms.
    """
    changed = [name for name in EXERCISE_CONTENT_FIELDS if getattr(current, name) != getattr(original, name)]
    current_group = current.group_id
    if current_group is not None and current_group_keys:
        current_group = current_group_keys.get(current_group, current_group)
    if current_group != original.group_id:
        changed.append("group_id")
    return changed


def diff_group_fields(current: ExerciseGroup, original: ExerciseGroup) -> List[str]:
    return [name for name in GROUP_CONTENT_FIELDS if getattr(current, name) != getattr(original, name)]


def compute_customizations(
    exercises: Sequence[Exercise],
    groups: Sequence[ExerciseGroup],
    template: BlockTemplate,
) -> BlockCustomizations:
    """Diff an instance's current exercises/groups against its template."""
    group_keys = {group.id: _group_key(group) for group in groups}
    template_exercises = {ex.id: ex for ex in template.exercises}
    template_groups = {group.id: group for group in template.groups}

    customizations = BlockCustomizations()
    seen_exercises = set()
    for ex in exercises:
        key = _exercise_key(ex)
        original = template_exercises.get(key)
        if original is None:
            customizations.added_exercises.append(ex.id)
            continue
        seen_exercises.add(key)
        if diff_exercise_fields(ex, original, group_keys):
            customizations.modified_exercises.append(key)
    customizations.removed_exercises = [
        ex.id for ex in template.exercises if ex.id not in seen_exercises
    ]

    seen_groups = set()
    for group in groups:
        key = _group_key(group)
        original = template_groups.get(key)
        if original is None:
            customizations.added_groups.append(group.id)
            continue
        seen_groups.add(key)
        if diff_group_fields(group, original):
            customizations.modified_groups.append(key)
    customizations.removed_groups = [
        group.id for group in template.groups if group.id not in seen_groups
    ]
    return customizations


def has_customizations(instance: BlockInstance) -> bool:
    c = instance.customizations
    return any(
        [
            c.modified_exercises,
            c.added_exercises,
            c.removed_exercises,
            c.modified_groups,
            c.added_groups,
            c.removed_groups,
        ]
    )


def _find_instance(plan: WorkoutPlan, instance_id: str) -> BlockInstance:
    for instance in plan.block_instances:
        if instance.id == instance_id:
            return instance
    raise ReferentialIntegrityError(f"Block instance {instance_id} not found in plan {plan.id}")


def _replace_instance_contents(
    plan: WorkoutPlan,
    instance: BlockInstance,
    exercises: List[Exercise],
    groups: List[ExerciseGroup],
) -> Tuple[List[Exercise], List[ExerciseGroup], List[BlockInstance]]:
    """Swap the instance's scoped entities in place, keeping the block's position in the plan."""
    insert_at = next(
        (i for i, ex in enumerate(plan.exercises) if ex.block_instance_id == instance.id),
        None,
    )
    others = [ex for ex in plan.exercises if ex.block_instance_id != instance.id]
    if insert_at is None:
        new_exercises = [*others, *exercises]
    else:
        before = sum(1 for ex in plan.exercises[:insert_at] if ex.block_instance_id != instance.id)
        new_exercises = [*others[:before], *exercises, *others[before:]]

    new_groups = [group for group in plan.groups if group.block_instance_id != instance.id] + groups
    instances = [instance if i.id == instance.id else i for i in plan.block_instances]
    return new_exercises, new_groups, instances


def save_block_instance(
    plan: WorkoutPlan,
    instance: BlockInstance,
    exercises: List[Exercise],
    groups: List[ExerciseGroup],
    template: BlockTemplate,
    instance_name: Optional[str] = None,
    notes: Optional[str] = None,
    estimator: DurationEstimator = estimate_duration,
) -> Tuple[WorkoutPlan, BlockInstance]:
    """
    Save an edited block instance.

    The given exercises/groups replace everything the plan currently holds for
    the instance. Customizations are recomputed against ``template`` and the
    instance's duration is re-estimated.
    """
    current = _find_instance(plan, instance.id)
    if not exercises:
        raise PlanValidationError("A block needs at least one exercise")
    errors = [
        f"Exercise {index + 1}: Name is required"
        for index, ex in enumerate(exercises)
        if not ex.exercise_name or not ex.exercise_name.strip()
    ]
    if errors:
        raise PlanValidationError(errors[0], errors=errors)

    stamped_groups = [group.model_copy(update={"block_instance_id": instance.id}) for group in groups]
    stamped_exercises = [ex.model_copy(update={"block_instance_id": instance.id}) for ex in exercises]

    name = instance_name if instance_name is not None else current.display_name
    updated_instance = current.model_copy(
        update={
            "instance_name": name if name != current.source_block_name else None,
            "notes": notes if notes is not None else current.notes,
            "customizations": compute_customizations(stamped_exercises, stamped_groups, template),
            "estimated_duration": estimator(stamped_exercises),
            "updated_at": utcnow(),
        }
    )

    new_exercises, new_groups, instances = _replace_instance_contents(
        plan, updated_instance, stamped_exercises, stamped_groups
    )
    updated_plan = rebuild_plan(plan, exercises=new_exercises, groups=new_groups, block_instances=instances)
    if has_customizations(updated_instance):
        logger.info("Block instance %s diverges from template %s", instance.id, template.id)
    return updated_plan, updated_instance


def reset_to_template(
    plan: WorkoutPlan,
    instance: BlockInstance,
    template: BlockTemplate,
    confirmed: bool = False,
    estimator: DurationEstimator = estimate_duration,
) -> Tuple[WorkoutPlan, BlockInstance]:
    """
    Discard every customization and re-clone the template into the instance.

    Destructive and irreversible, so ``confirmed`` must be True. Clones get
    new ids; their orders start after the highest order among the plan's
    other exercises.
    """
    if not confirmed:
        raise ConfirmationRequiredError(
            "Reset this block to the original template? All customizations will be lost."
        )
    current = _find_instance(plan, instance.id)

    max_order = max((ex.order for ex in plan.exercises if ex.block_instance_id != current.id), default=0)
    max_group_order = max((g.order for g in plan.groups if g.block_instance_id != current.id), default=0)
    exercises, groups = clone_template_contents(
        template,
        current.id,
        order_start=max_order + 1,
        group_order_start=max_group_order + 1,
    )

    reset_instance = current.model_copy(
        update={
            "source_block_name": template.name,
            "instance_name": None,
            "notes": None,
            "customizations": BlockCustomizations(),
            "estimated_duration": estimator(exercises),
            "updated_at": utcnow(),
        }
    )
    new_exercises, new_groups, instances = _replace_instance_contents(plan, reset_instance, exercises, groups)
    updated_plan = rebuild_plan(plan, exercises=new_exercises, groups=new_groups, block_instances=instances)
    logger.info("Reset block instance %s to template %s", current.id, template.id)
    return updated_plan, reset_instance
