"""Canonical JSON rendering of plans and block templates.

Keys are sorted and unset optional fields are omitted, so the same plan
always renders to the same bytes regardless of how it was constructed.
"""
import json
from typing import Any, Dict

from workout_planner_api.models import BlockTemplate, WorkoutPlan


def _canonical(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def serialize_plan(plan: WorkoutPlan) -> str:
    return _canonical(plan.model_dump(mode="json", exclude_none=True))


def deserialize_plan(text: str) -> WorkoutPlan:
    return WorkoutPlan.model_validate_json(text)


def serialize_template(template: BlockTemplate) -> str:
    return _canonical(template.model_dump(mode="json", exclude_none=True))


def deserialize_template(text: str) -> BlockTemplate:
    return BlockTemplate.model_validate_json(text)
