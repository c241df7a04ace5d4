"""
Personal record (PR) detection.

Compares a completed set against the athlete's previous sets for the same
exercise. A set is a PR when it beats the best estimated one-rep max, the
heaviest weight, the most reps at a similar weight (within 90%), or the
largest single-set volume, checked in that order.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel

from workout_planner_api.models import utcnow

logger = logging.getLogger(__name__)

PRType = Literal["weight", "reps", "1rm", "volume"]

# Rep PRs only count when the weight is close to the best weight
REP_PR_WEIGHT_RATIO = 0.9


class PRData(BaseModel):
    exercise_id: str
    exercise_name: Optional[str] = None
    weight: float
    reps: int
    estimated_one_rm: float
    date: datetime


class Performance(BaseModel):
    weight: float
    reps: int
    estimated_one_rm: float
    volume: float


class PRComparison(BaseModel):
    is_pr: bool
    type: Optional[PRType] = None
    improvement: float = 0  # percent over the previous best
    previous_best: Optional[PRData] = None
    current_performance: Performance


def calculate_one_rm(weight: float, reps: int) -> float:
    """Estimated 1RM using the Epley formula: weight x (1 + reps / 30)."""
    if reps == 1:
        return weight
    return round(weight * (1 + reps / 30))


def calculate_volume(weight: float, reps: int) -> float:
    return weight * reps


def _performance(weight: float, reps: int) -> Performance:
    return Performance(
        weight=weight,
        reps=reps,
        estimated_one_rm=calculate_one_rm(weight, reps),
        volume=calculate_volume(weight, reps),
    )


def _improvement(current: float, best: float) -> float:
    if best <= 0:
        return 100.0
    return (current - best) / best * 100


def compare_against_history(history: Iterable[PRData], weight: float, reps: int) -> PRComparison:
    """Classify a set against previous sets of the same exercise."""
    history = list(history)
    current = _performance(weight, reps)
    if not history:
        # First time doing this exercise counts as a PR
        return PRComparison(is_pr=True, type="1rm", improvement=100, current_performance=current)

    best_set = max(history, key=lambda s: s.estimated_one_rm)
    best_one_rm = best_set.estimated_one_rm
    best_weight = max(s.weight for s in history)
    best_reps = max(s.reps for s in history)
    best_volume = max(calculate_volume(s.weight, s.reps) for s in history)

    checks: List[Tuple[bool, PRType, float, float]] = [
        (current.estimated_one_rm > best_one_rm, "1rm", current.estimated_one_rm, best_one_rm),
        (weight > best_weight, "weight", weight, best_weight),
        (reps > best_reps and weight >= best_weight * REP_PR_WEIGHT_RATIO, "reps", reps, best_reps),
        (current.volume > best_volume, "volume", current.volume, best_volume),
    ]
    for hit, pr_type, value, best in checks:
        if hit:
            return PRComparison(
                is_pr=True,
                type=pr_type,
                improvement=_improvement(value, best),
                previous_best=best_set,
                current_performance=current,
            )
    return PRComparison(is_pr=False, previous_best=best_set, current_performance=current)


class HistoryPRDetector:
    """
    In-process PR detector backed by a set history.

    Every checked set is added to the history afterwards, so consecutive
    checks within a session compare against earlier sets.
    """

    def __init__(self):
        self._history: Dict[Tuple[str, str], List[PRData]] = {}

    def record(
        self,
        athlete_id: str,
        exercise_id: str,
        weight: float,
        reps: int,
        exercise_name: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> None:
        self._history.setdefault((athlete_id, exercise_id), []).append(
            PRData(
                exercise_id=exercise_id,
                exercise_name=exercise_name,
                weight=weight,
                reps=reps,
                estimated_one_rm=calculate_one_rm(weight, reps),
                date=when or utcnow(),
            )
        )

    def history(self, athlete_id: str, exercise_id: str) -> List[PRData]:
        return list(self._history.get((athlete_id, exercise_id), []))

    async def check_for_pr(self, athlete_id: str, exercise_id: str, weight: float, reps: int) -> PRComparison:
        comparison = compare_against_history(self.history(athlete_id, exercise_id), weight, reps)
        self.record(athlete_id, exercise_id, weight, reps)
        if comparison.is_pr:
            logger.info("PR (%s) for athlete %s on %s: %sx%s", comparison.type, athlete_id, exercise_id, weight, reps)
        return comparison
