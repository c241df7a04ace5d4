"""
Test fixtures for workout-planner-api.

Provides plan/assignment builders and an API client backed by in-memory
collaborators so tests run offline and deterministically.
"""

import sys
from datetime import date
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

# Make src/ importable so tests can do `import workout_planner_api...`
for p in {ROOT, SRC}:
    p_str = str(p)
    if p_str not in sys.path:
        sys.path.insert(0, p_str)

from workout_planner_api.api import routes
from workout_planner_api.config import settings
from workout_planner_api.main import app
from workout_planner_api.models import (
    BlockTemplate,
    Exercise,
    ExerciseGroup,
    WorkoutAssignment,
    WorkoutPlan,
)


# ---------------------------------------------------------------------------
# Core Test Client
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> TestClient:
    """Per-test FastAPI TestClient with a fresh session registry."""
    routes.reset_sessions()
    return TestClient(app)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def strict_references(monkeypatch):
    """Tests run with development defaults unless they say otherwise."""
    monkeypatch.setattr(settings, "STRICT_REFERENCES", True)
    monkeypatch.setattr(settings, "SECONDS_PER_REP", 3)


@pytest.fixture
def lenient_references(monkeypatch):
    monkeypatch.setattr(settings, "STRICT_REFERENCES", False)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


@pytest.fixture
def make_exercise() -> Callable[..., Exercise]:
    """Build an exercise with sensible defaults; keyword args override them."""

    def _make(id: str, name: str = None, **overrides) -> Exercise:
        data = {
            "id": id,
            "exercise_id": f"lib-{id}",
            "exercise_name": name or id.replace("-", " ").title(),
            "sets": 3,
            "reps": 10,
            "weight_type": "fixed",
            "weight": 100,
            "rest_time": 60,
        }
        data.update(overrides)
        return Exercise(**data)

    return _make


@pytest.fixture
def empty_plan() -> WorkoutPlan:
    return WorkoutPlan(id="plan-1", name="Strength Day", created_by="coach-1")


@pytest.fixture
def simple_plan(make_exercise) -> WorkoutPlan:
    """Three ungrouped exercises."""
    return WorkoutPlan(
        id="plan-1",
        name="Strength Day",
        exercises=[
            make_exercise("squat", order=1),
            make_exercise("bench", order=2),
            make_exercise("row", order=3),
        ],
    )


@pytest.fixture
def circuit_plan(make_exercise) -> WorkoutPlan:
    """A 3x10 fixed squat, a two-exercise circuit run twice, then a finisher."""
    return WorkoutPlan(
        id="plan-circuit",
        name="Circuit Day",
        exercises=[
            make_exercise("squat", "Back Squat", sets=3, reps=10, weight=135, order=1),
            make_exercise("burpee", "Burpee", sets=1, reps=15, weight_type="bodyweight", order=1, group_id="grp-c"),
            make_exercise("swing", "Kettlebell Swing", sets=1, reps=20, weight=24, order=2, group_id="grp-c"),
            make_exercise("plank", "Plank", sets=1, reps=1, weight_type="bodyweight", order=2),
        ],
        groups=[ExerciseGroup(id="grp-c", name="Conditioning", type="circuit", order=1, rounds=2)],
    )


@pytest.fixture
def assignment_for() -> Callable[..., WorkoutAssignment]:
    def _make(plan: WorkoutPlan, athlete_id: str = "athlete-1", **overrides) -> WorkoutAssignment:
        data = {
            "id": "asg-1",
            "workout_plan_id": plan.id,
            "workout_plan_name": plan.name,
            "assignment_type": "individual",
            "athlete_id": athlete_id,
            "athlete_ids": [athlete_id],
            "scheduled_date": date(2026, 10, 20),
        }
        data.update(overrides)
        return WorkoutAssignment(**data)

    return _make


@pytest.fixture
def warmup_template(make_exercise) -> BlockTemplate:
    """Template with two exercises, the second in a superset with a third."""
    return BlockTemplate(
        id="tpl-warmup",
        name="Dynamic Warm-up",
        category="warmup",
        exercises=[
            make_exercise("t-jacks", "Jumping Jacks", weight_type="bodyweight", order=1),
            make_exercise("t-lunge", "Walking Lunge", weight_type="bodyweight", order=1, group_id="t-grp"),
            make_exercise("t-bridge", "Glute Bridge", weight_type="bodyweight", order=2, group_id="t-grp"),
        ],
        groups=[ExerciseGroup(id="t-grp", name="Legs", type="superset", order=1, rounds=2)],
        estimated_duration=8,
        tags=["mobility"],
    )
