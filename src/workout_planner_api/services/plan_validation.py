"""
Plan validation.

Structural and business-rule checks run before a plan or block is saved.
Errors block the save; warnings are shown to the coach but do not.
"""
import re
from typing import List, Literal

from pydantic import BaseModel, Field

from workout_planner_api.exceptions import PlanValidationError
from workout_planner_api.models import Exercise, ExerciseGroup, WorkoutPlan
from workout_planner_api.services.duration import plan_duration
from workout_planner_api.services.plan_editor import check_references

MAX_NAME_LENGTH = 100
MIN_NAME_LENGTH = 3
_TEMPO_RE = re.compile(r"^\d{1,2}-\d{1,2}-\d{1,2}-\d{1,2}$")


class ValidationIssue(BaseModel):
    field: str
    message: str
    severity: Literal["error", "warning"] = "error"


class ValidationResult(BaseModel):
    is_valid: bool = True
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    def merge(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.is_valid = not self.errors


def _error(field: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, severity="error")


def _warning(field: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, severity="warning")


def validate_workout(plan: WorkoutPlan) -> ValidationResult:
    """Validate a complete workout plan."""
    result = ValidationResult()

    name = (plan.name or "").strip()
    if not name:
        result.errors.append(_error("name", "Workout name is required"))
    elif len(name) < MIN_NAME_LENGTH:
        result.warnings.append(_warning("name", "Workout name should be at least 3 characters"))
    if len(plan.name or "") > MAX_NAME_LENGTH:
        result.errors.append(_error("name", "Workout name must be 100 characters or less"))

    if not plan.exercises:
        result.errors.append(_error("exercises", "At least one exercise is required"))
    for index, exercise in enumerate(plan.exercises):
        result.merge(validate_exercise(exercise, index))

    if plan.exercises:
        duration = plan_duration(plan)
        if duration < 5:
            result.warnings.append(
                _warning("estimated_duration", "Workout duration seems very short (less than 5 minutes)")
            )
        if duration > 180:
            result.warnings.append(
                _warning("estimated_duration", "Workout duration seems very long (over 3 hours)")
            )

    for index, group in enumerate(plan.groups):
        result.merge(validate_group(group, index, plan.exercises))

    for problem in check_references(plan):
        result.errors.append(_error("references", problem))

    result.is_valid = not result.errors
    return result


def validate_exercise(exercise: Exercise, index: int) -> ValidationResult:
    """Validate a single exercise."""
    result = ValidationResult()
    position = index + 1
    prefix = f"exercises[{index}]"

    if not exercise.exercise_name or not exercise.exercise_name.strip():
        result.errors.append(_error(f"{prefix}.exercise_name", f"Exercise {position}: Name is required"))

    if exercise.sets > 20:
        result.warnings.append(
            _warning(f"{prefix}.sets", f"Exercise {position}: {exercise.sets} sets is unusually high")
        )
    if exercise.reps > 100:
        result.warnings.append(
            _warning(f"{prefix}.reps", f"Exercise {position}: {exercise.reps} reps is unusually high")
        )

    if exercise.weight_type == "fixed" and exercise.weight is not None and exercise.weight > 1000:
        result.warnings.append(
            _warning(f"{prefix}.weight", f"Exercise {position}: {exercise.weight:g} lbs is extremely heavy")
        )

    if exercise.weight_type == "percentage":
        if exercise.percentage is not None and exercise.percentage > 200:
            result.errors.append(
                _error(f"{prefix}.percentage", f"Exercise {position}: Percentage must be between 0-200%")
            )
        if not exercise.percentage_base_kpi:
            result.warnings.append(
                _warning(
                    f"{prefix}.percentage_base_kpi",
                    f'Exercise {position}: Percentage-based weight needs a base KPI (e.g., "1RM Squat")',
                )
            )

    if exercise.tempo and not _TEMPO_RE.match(exercise.tempo):
        result.warnings.append(
            _warning(
                f"{prefix}.tempo",
                f'Exercise {position}: Tempo format should be "eccentric-pause-concentric-pause" (e.g., "3-1-2-0")',
            )
        )

    if exercise.rest_time is not None and exercise.rest_time > 600:
        result.warnings.append(
            _warning(
                f"{prefix}.rest_time",
                f"Exercise {position}: {exercise.rest_time} seconds rest is unusually long (over 10 minutes)",
            )
        )

    result.is_valid = not result.errors
    return result


def validate_group(group: ExerciseGroup, index: int, exercises: List[Exercise]) -> ValidationResult:
    """Validate a superset, circuit or section against its member exercises."""
    result = ValidationResult()
    position = index + 1
    prefix = f"groups[{index}]"
    members = [ex for ex in exercises if ex.group_id == group.id]

    if not group.name or not group.name.strip():
        result.warnings.append(_warning(f"{prefix}.name", f"Group {position}: Name is recommended for clarity"))

    if not members:
        result.warnings.append(
            _warning(f"{prefix}.exercises", f'Group {position} "{group.name}": Has no exercises assigned')
        )

    if group.type == "superset":
        if len(members) < 2:
            result.warnings.append(
                _warning(f"{prefix}.exercises", f'Group {position} "{group.name}": Supersets typically have 2-4 exercises')
            )
        if len(members) > 4:
            result.warnings.append(
                _warning(
                    f"{prefix}.exercises",
                    f'Group {position} "{group.name}": {len(members)} exercises is more like a circuit than a superset',
                )
            )

    if group.type == "circuit" and len(members) < 3:
        result.warnings.append(
            _warning(f"{prefix}.exercises", f'Group {position} "{group.name}": Circuits typically have 3+ exercises')
        )

    result.is_valid = not result.errors
    return result


def ensure_valid(plan: WorkoutPlan) -> ValidationResult:
    """Raise ``PlanValidationError`` when the plan has errors; return the result otherwise."""
    result = validate_workout(plan)
    if not result.is_valid:
        messages = [issue.message for issue in result.errors]
        raise PlanValidationError(messages[0], errors=messages)
    return result
