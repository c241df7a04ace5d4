"""Interfaces of the external collaborators the core calls out to, plus an in-memory stand-in."""
from typing import Dict, List, Protocol

from workout_planner_api.models import (
    BlockTemplate,
    SetRecord,
    WorkoutAssignment,
    WorkoutPlan,
    WorkoutSession,
    new_id,
)
from workout_planner_api.services.pr_detection import PRComparison


class PersistenceCollaborator(Protocol):
    """Stores plans, templates, assignments and session progress."""

    async def create_plan(self, plan: WorkoutPlan) -> WorkoutPlan: ...

    async def update_plan(self, plan: WorkoutPlan) -> WorkoutPlan: ...

    async def create_block_template(self, template: BlockTemplate) -> BlockTemplate: ...

    async def update_block_template(self, template: BlockTemplate) -> BlockTemplate: ...

    async def create_assignments(self, assignments: List[WorkoutAssignment]) -> List[WorkoutAssignment]: ...

    async def append_set_record(self, session_id: str, record: SetRecord) -> None: ...

    async def update_set_record(self, session_id: str, record: SetRecord) -> None: ...

    async def delete_set_record(self, session_id: str, set_id: str) -> None: ...

    async def mark_session_status(self, session: WorkoutSession) -> None: ...


class PRCollaborator(Protocol):
    """Tells whether a set is a personal record for the athlete."""

    async def check_for_pr(self, athlete_id: str, exercise_id: str, weight: float, reps: int) -> PRComparison: ...


class TemplateFetchCollaborator(Protocol):
    """Loads a full block template (reset-to-template and library browsing)."""

    async def fetch_template(self, template_id: str) -> BlockTemplate: ...


class LocalPersistence:
    """
    Process-local persistence used when no persistence API is configured.

    Keeps what it is given in memory; nothing survives a restart.
    """

    def __init__(self):
        self.plans: Dict[str, WorkoutPlan] = {}
        self.templates: Dict[str, BlockTemplate] = {}
        self.assignments: Dict[str, WorkoutAssignment] = {}
        self.sets: Dict[str, Dict[str, SetRecord]] = {}
        self.statuses: Dict[str, str] = {}

    async def create_plan(self, plan: WorkoutPlan) -> WorkoutPlan:
        saved = plan.model_copy(update={"id": new_id("plan")})
        self.plans[saved.id] = saved
        return saved

    async def update_plan(self, plan: WorkoutPlan) -> WorkoutPlan:
        self.plans[plan.id] = plan
        return plan

    async def create_block_template(self, template: BlockTemplate) -> BlockTemplate:
        saved = template.model_copy(update={"id": new_id("tmpl")})
        self.templates[saved.id] = saved
        return saved

    async def update_block_template(self, template: BlockTemplate) -> BlockTemplate:
        self.templates[template.id] = template
        return template

    async def create_assignments(self, assignments: List[WorkoutAssignment]) -> List[WorkoutAssignment]:
        for assignment in assignments:
            self.assignments[assignment.id] = assignment
        return list(assignments)

    async def append_set_record(self, session_id: str, record: SetRecord) -> None:
        self.sets.setdefault(session_id, {})[record.id] = record

    async def update_set_record(self, session_id: str, record: SetRecord) -> None:
        self.sets.setdefault(session_id, {})[record.id] = record

    async def delete_set_record(self, session_id: str, set_id: str) -> None:
        self.sets.get(session_id, {}).pop(set_id, None)

    async def mark_session_status(self, session: WorkoutSession) -> None:
        self.statuses[session.id] = session.status
