"""HTTP implementations of the persistence, PR and template collaborators."""
import logging
from typing import Any, Dict, List, Optional

import httpx

from workout_planner_api.config import settings
from workout_planner_api.models import (
    BlockTemplate,
    SetRecord,
    WorkoutAssignment,
    WorkoutPlan,
    WorkoutSession,
)
from workout_planner_api.retry import read_retry
from workout_planner_api.services.pr_detection import PRComparison

logger = logging.getLogger(__name__)


class _HttpCollaborator:
    """Shared request plumbing. ``transport`` lets tests plug in ``httpx.MockTransport``."""

    def __init__(
        self,
        base_url: Optional[str],
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError(f"{type(self).__name__} needs a base URL")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    async def _request(self, method: str, path: str, json: Any = None) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            response = await client.request(method, path, json=json)
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()


class HttpPersistenceClient(_HttpCollaborator):
    """Writes through the platform REST API. Writes are never retried here."""

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(base_url or settings.PERSISTENCE_API_URL, **kwargs)

    async def create_plan(self, plan: WorkoutPlan) -> WorkoutPlan:
        data = await self._request("POST", "/workouts", json=plan.model_dump(mode="json"))
        return WorkoutPlan.model_validate(data.get("workout", data))

    async def update_plan(self, plan: WorkoutPlan) -> WorkoutPlan:
        data = await self._request("PUT", f"/workouts/{plan.id}", json=plan.model_dump(mode="json"))
        return WorkoutPlan.model_validate(data.get("workout", data))

    async def create_block_template(self, template: BlockTemplate) -> BlockTemplate:
        data = await self._request("POST", "/blocks", json=template.model_dump(mode="json"))
        return BlockTemplate.model_validate(data.get("block", data))

    async def update_block_template(self, template: BlockTemplate) -> BlockTemplate:
        data = await self._request("PUT", f"/blocks/{template.id}", json=template.model_dump(mode="json"))
        return BlockTemplate.model_validate(data.get("block", data))

    async def create_assignments(self, assignments: List[WorkoutAssignment]) -> List[WorkoutAssignment]:
        data = await self._request(
            "POST",
            "/assignments/bulk",
            json={"assignments": [a.model_dump(mode="json") for a in assignments]},
        )
        return [WorkoutAssignment.model_validate(item) for item in data.get("assignments", [])]

    async def append_set_record(self, session_id: str, record: SetRecord) -> None:
        await self._request("POST", f"/sessions/{session_id}/sets", json=record.model_dump(mode="json"))

    async def update_set_record(self, session_id: str, record: SetRecord) -> None:
        await self._request(
            "PATCH",
            f"/sessions/{session_id}/sets/{record.id}",
            json={"weight": record.weight, "reps": record.reps},
        )

    async def delete_set_record(self, session_id: str, set_id: str) -> None:
        await self._request("DELETE", f"/sessions/{session_id}/sets/{set_id}")

    async def mark_session_status(self, session: WorkoutSession) -> None:
        await self._request(
            "PATCH",
            f"/sessions/{session.id}",
            json={
                "status": session.status,
                "completed_at": session.completed_at.isoformat() if session.completed_at else None,
                "total_duration_seconds": session.total_duration_seconds,
            },
        )


class HttpPRClient(_HttpCollaborator):
    """Asks the analytics service whether a set is a personal record."""

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(base_url or settings.PR_API_URL, **kwargs)

    @read_retry
    async def check_for_pr(self, athlete_id: str, exercise_id: str, weight: float, reps: int) -> PRComparison:
        data = await self._request(
            "POST",
            "/pr/check",
            json={"athlete_id": athlete_id, "exercise_id": exercise_id, "weight": weight, "reps": reps},
        )
        return PRComparison.model_validate(data)


class HttpTemplateClient(_HttpCollaborator):
    """Fetches block templates from the library API."""

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(base_url or settings.TEMPLATE_API_URL, **kwargs)

    @read_retry
    async def fetch_template(self, template_id: str) -> BlockTemplate:
        data = await self._request("GET", f"/blocks/{template_id}")
        logger.debug("Fetched block template %s", template_id)
        return BlockTemplate.model_validate(data.get("block", data))
