"""
Optimistic local cache of plans and block templates.

Creates show up immediately under a temporary id, which is swapped for the
stored record once persistence answers. Updates are applied locally first and
the previous value is put back if the write fails.
"""
import logging
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from workout_planner_api.exceptions import PersistenceError, ReferentialIntegrityError
from workout_planner_api.models import BlockTemplate, WorkoutPlan, new_id
from workout_planner_api.services.collaborators import PersistenceCollaborator
from workout_planner_api.services.plan_validation import ensure_valid

logger = logging.getLogger(__name__)

T = TypeVar("T", WorkoutPlan, BlockTemplate)

TEMP_ID_PREFIX = "temp"


def is_temporary_id(item_id: str) -> bool:
    return item_id.startswith(f"{TEMP_ID_PREFIX}-")


class PlanStore:
    def __init__(self, persistence: PersistenceCollaborator):
        self.persistence = persistence
        self.plans: Dict[str, WorkoutPlan] = {}
        self.templates: Dict[str, BlockTemplate] = {}

    async def _create(self, cache: Dict[str, T], item: T, write: Callable[[T], Awaitable[T]], kind: str) -> T:
        temp = item.model_copy(update={"id": new_id(TEMP_ID_PREFIX)})
        cache[temp.id] = temp
        try:
            saved = await write(temp)
        except Exception as e:
            cache.pop(temp.id, None)
            logger.error("Failed to create %s %r: %s", kind, item.name, e)
            raise PersistenceError(f"Failed to create {kind}: {e}") from e
        cache.pop(temp.id, None)
        cache[saved.id] = saved
        logger.info("Created %s %s", kind, saved.id)
        return saved

    async def _update(self, cache: Dict[str, T], item: T, write: Callable[[T], Awaitable[T]], kind: str) -> T:
        if item.id not in cache:
            raise ReferentialIntegrityError(f"Unknown {kind} {item.id}")
        if is_temporary_id(item.id):
            raise PersistenceError(f"{kind.capitalize()} {item.id} has not been saved yet")
        previous = cache[item.id]
        cache[item.id] = item
        try:
            saved = await write(item)
        except Exception as e:
            cache[item.id] = previous
            logger.error("Failed to update %s %s: %s", kind, item.id, e)
            raise PersistenceError(f"Failed to update {kind}: {e}") from e
        cache[saved.id] = saved
        return saved

    async def create_plan(self, plan: WorkoutPlan) -> WorkoutPlan:
        ensure_valid(plan)
        return await self._create(self.plans, plan, self.persistence.create_plan, "workout")

    async def update_plan(self, plan: WorkoutPlan) -> WorkoutPlan:
        ensure_valid(plan)
        return await self._update(self.plans, plan, self.persistence.update_plan, "workout")

    async def create_template(self, template: BlockTemplate) -> BlockTemplate:
        return await self._create(self.templates, template, self.persistence.create_block_template, "block")

    async def update_template(self, template: BlockTemplate) -> BlockTemplate:
        return await self._update(self.templates, template, self.persistence.update_block_template, "block")

    def get_plan(self, plan_id: str) -> Optional[WorkoutPlan]:
        return self.plans.get(plan_id)

    def list_plans(self, include_archived: bool = False) -> List[WorkoutPlan]:
        plans = [p for p in self.plans.values() if include_archived or not p.archived]
        return sorted(plans, key=lambda p: p.updated_at, reverse=True)
