"""
Block template library.

Blocks are named bundles of exercises and groups a coach can drop into any
plan. Inserting a block creates a ``BlockInstance``: the template's contents
are cloned with fresh ids and stamped with the instance id, and each clone
remembers the template entity it came from.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from workout_planner_api.exceptions import PlanValidationError, ReferentialIntegrityError
from workout_planner_api.models import (
    BlockCategory,
    BlockInstance,
    BlockTemplate,
    Exercise,
    ExerciseGroup,
    WorkoutPlan,
    new_id,
    utcnow,
)
from workout_planner_api.services.duration import estimate_duration
from workout_planner_api.services.plan_editor import normalize_order, rebuild_plan

logger = logging.getLogger(__name__)


def clone_template_contents(
    template: BlockTemplate,
    block_instance_id: str,
    order_start: int = 1,
    group_order_start: int = 1,
) -> Tuple[List[Exercise], List[ExerciseGroup]]:
    """Clone a template's exercises and groups for a block instance."""
    group_ids: Dict[str, str] = {}
    groups: List[ExerciseGroup] = []
    for index, group in enumerate(template.groups):
        group_ids[group.id] = new_id("grp")
        groups.append(
            group.model_copy(
                update={
                    "id": group_ids[group.id],
                    "order": group_order_start + index,
                    "block_instance_id": block_instance_id,
                    "source_group_id": group.id,
                }
            )
        )

    exercises: List[Exercise] = []
    for index, ex in enumerate(template.exercises):
        group_id = None
        if ex.group_id:
            group_id = group_ids.get(ex.group_id)
            if group_id is None:
                logger.warning(
                    "Template %s exercise %s references unknown group %s; cloning ungrouped",
                    template.id, ex.id, ex.group_id,
                )
        exercises.append(
            ex.model_copy(
                update={
                    "id": new_id("ex"),
                    "order": order_start + index,
                    "group_id": group_id,
                    "block_instance_id": block_instance_id,
                    "source_exercise_id": ex.id,
                }
            )
        )
    return exercises, groups


def insert_block(plan: WorkoutPlan, template: BlockTemplate) -> Tuple[WorkoutPlan, BlockInstance]:
    """Place a template into a plan as a new block instance (appended at the end)."""
    instance = BlockInstance(
        id=new_id("block"),
        source_block_id=template.id,
        source_block_name=template.name,
        estimated_duration=template.estimated_duration or estimate_duration(template.exercises),
    )
    max_order = max((ex.order for ex in plan.exercises), default=0)
    exercises, groups = clone_template_contents(
        template,
        instance.id,
        order_start=max_order + 1,
        group_order_start=len(plan.groups) + 1,
    )
    updated = rebuild_plan(
        plan,
        exercises=[*plan.exercises, *exercises],
        groups=[*plan.groups, *groups],
        block_instances=[*plan.block_instances, instance],
    )
    logger.info("Inserted block %s into plan %s as %s", template.id, plan.id, instance.id)
    return updated, instance


def delete_block_instance(plan: WorkoutPlan, instance_id: str) -> WorkoutPlan:
    """Remove a block instance together with every exercise and group it owns."""
    if not any(instance.id == instance_id for instance in plan.block_instances):
        raise ReferentialIntegrityError(f"Block instance {instance_id} not found in plan {plan.id}")
    return rebuild_plan(
        plan,
        exercises=[ex for ex in plan.exercises if ex.block_instance_id != instance_id],
        groups=[group for group in plan.groups if group.block_instance_id != instance_id],
        block_instances=[instance for instance in plan.block_instances if instance.id != instance_id],
    )


def _strip_placement(exercises: List[Exercise], groups: List[ExerciseGroup]):
    """Detach entities from any plan/instance so they can live in a template."""
    exercises = [
        ex.model_copy(update={"block_instance_id": None, "source_exercise_id": None})
        for ex in exercises
    ]
    groups = [
        group.model_copy(update={"block_instance_id": None, "source_group_id": None})
        for group in groups
    ]
    return normalize_order(exercises), groups


class BlockLibrary:
    """In-memory catalogue of block templates."""

    def __init__(self, templates: Optional[List[BlockTemplate]] = None):
        self._templates: Dict[str, BlockTemplate] = {t.id: t for t in templates or []}

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    @staticmethod
    def _validate(name: str, exercises: List[Exercise]) -> None:
        errors = []
        if not name or not name.strip():
            errors.append("Block name is required")
        if not exercises:
            errors.append("A block needs at least one exercise")
        for index, ex in enumerate(exercises):
            if not ex.exercise_name or not ex.exercise_name.strip():
                errors.append(f"Exercise {index + 1}: Name is required")
        if errors:
            raise PlanValidationError(errors[0], errors=errors)

    def create_template(
        self,
        name: str,
        exercises: List[Exercise],
        groups: Optional[List[ExerciseGroup]] = None,
        category: BlockCategory = "custom",
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        created_by: Optional[str] = None,
    ) -> BlockTemplate:
        self._validate(name, exercises)
        exercises, groups = _strip_placement(exercises, groups or [])
        template = BlockTemplate(
            id=new_id("tpl"),
            name=name.strip(),
            description=description,
            category=category,
            exercises=exercises,
            groups=groups,
            estimated_duration=estimate_duration(exercises),
            tags=tags or [],
            created_by=created_by,
        )
        self._templates[template.id] = template
        logger.info("Created block template %s (%s)", template.id, template.name)
        return template

    def update_template(self, template: BlockTemplate) -> BlockTemplate:
        """Authoring edit. Existing block instances are not touched."""
        self.get(template.id)
        self._validate(template.name, template.exercises)
        exercises, groups = _strip_placement(template.exercises, template.groups)
        updated = template.model_copy(
            update={
                "exercises": exercises,
                "groups": groups,
                "estimated_duration": estimate_duration(exercises),
                "updated_at": utcnow(),
            }
        )
        self._templates[updated.id] = updated
        return updated

    def get(self, template_id: str) -> BlockTemplate:
        try:
            return self._templates[template_id]
        except KeyError:
            raise ReferentialIntegrityError(f"Block template {template_id} not found") from None

    def delete(self, template_id: str) -> None:
        self.get(template_id)
        del self._templates[template_id]

    def toggle_favorite(self, template_id: str) -> BlockTemplate:
        template = self.get(template_id)
        updated = template.model_copy(update={"is_favorite": not template.is_favorite})
        self._templates[template_id] = updated
        return updated

    def record_usage(self, template_id: str, when: Optional[datetime] = None) -> BlockTemplate:
        template = self.get(template_id)
        updated = template.model_copy(
            update={"usage_count": template.usage_count + 1, "last_used": when or utcnow()}
        )
        self._templates[template_id] = updated
        return updated

    def search(
        self,
        category: Optional[BlockCategory] = None,
        query: Optional[str] = None,
        favorites_only: bool = False,
    ) -> List[BlockTemplate]:
        """Filter templates; favorites first, then most used, then by name."""
        needle = (query or "").strip().lower()
        results = []
        for template in self._templates.values():
            if category and template.category != category:
                continue
            if favorites_only and not template.is_favorite:
                continue
            if needle:
                haystack = " ".join([template.name, template.description or "", *template.tags]).lower()
                if needle not in haystack:
                    continue
            results.append(template)
        return sorted(results, key=lambda t: (not t.is_favorite, -t.usage_count, t.name.lower()))

    def save_section_as_block(
        self,
        plan: WorkoutPlan,
        exercise_ids: List[str],
        name: str,
        category: BlockCategory = "custom",
        description: Optional[str] = None,
    ) -> BlockTemplate:
        """Turn selected plan exercises (and the groups they use) into a new template."""
        wanted = set(exercise_ids)
        selected = [ex for ex in plan.exercises if ex.id in wanted]
        missing = wanted - {ex.id for ex in selected}
        if missing:
            raise ReferentialIntegrityError(f"Exercises not found in plan {plan.id}: {sorted(missing)}")

        group_ids = {ex.group_id for ex in selected if ex.group_id}
        group_map = {group.id: new_id("grp") for group in plan.groups if group.id in group_ids}
        groups = [
            group.model_copy(update={"id": group_map[group.id]})
            for group in plan.groups
            if group.id in group_map
        ]
        exercises = [
            ex.model_copy(update={"id": new_id("ex"), "group_id": group_map.get(ex.group_id)})
            for ex in selected
        ]
        return self.create_template(
            name=name,
            exercises=exercises,
            groups=groups,
            category=category,
            description=description,
            created_by=plan.created_by,
        )

    def insert_into(self, plan: WorkoutPlan, template_id: str) -> Tuple[WorkoutPlan, BlockInstance]:
        """Insert a library template into a plan and record the usage."""
        template = self.get(template_id)
        updated, instance = insert_block(plan, template)
        self.record_usage(template_id)
        return updated, instance
