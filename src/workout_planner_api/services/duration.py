"""Duration estimates for plans and block instances.

The formula is a coarse heuristic: every rep is assumed to take a fixed number
of seconds and each set is followed by its prescribed rest. It is not an
authoritative prediction of how long an athlete will take.
"""
from typing import Callable, Iterable, Optional

from workout_planner_api.config import settings
from workout_planner_api.models import Exercise, WorkoutPlan

DurationEstimator = Callable[[Iterable[Exercise]], float]


def estimate_duration(
    exercises: Iterable[Exercise],
    seconds_per_rep: Optional[int] = None,
) -> float:
    """
    Approximate duration in minutes.

    Sum over exercises of ``(sets * reps * seconds_per_rep + rest_time * sets) / 60``.
    """
    per_rep = settings.SECONDS_PER_REP if seconds_per_rep is None else seconds_per_rep
    total = 0.0
    for ex in exercises:
        total += (ex.sets * ex.reps * per_rep + (ex.rest_time or 0) * ex.sets) / 60
    return total


def plan_duration(plan: WorkoutPlan, estimator: DurationEstimator = estimate_duration) -> float:
    """Authored duration when present, otherwise the estimate."""
    if plan.estimated_duration is not None:
        return plan.estimated_duration
    return estimator(plan.exercises)
