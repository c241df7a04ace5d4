"""Data models for workout plans, block templates, assignments and live sessions."""
import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

WeightType = Literal["fixed", "percentage", "bodyweight"]
GroupType = Literal["superset", "circuit", "section"]
BlockCategory = Literal["warmup", "main", "accessory", "cooldown", "custom"]
AssignmentType = Literal["individual", "group"]
AssignmentStatus = Literal["assigned", "completed"]
ModificationType = Literal["sets", "reps", "weight", "exercise", "rest"]
SessionStatus = Literal["active", "paused", "completed", "abandoned"]


def new_id(prefix: str) -> str:
    """Generate a short unique id such as ``ex-3f2a9c1b0d4e``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Plan model
# ---------------------------------------------------------------------------


class LibraryExercise(BaseModel):
    """An entry from the exercise library an exercise can be resolved to."""
    id: str
    name: str
    category: Optional[str] = None


class Exercise(BaseModel):
    """
    A single prescribed exercise inside a plan, group or block.

    ``exercise_id`` identifies the library movement; ``exercise_name`` is free
    text and may be edited independently. Only the load field selected by
    ``weight_type`` is kept: fixed uses ``weight``/``weight_max``, percentage
    uses ``percentage``/``percentage_max``/``percentage_base_kpi`` and
    bodyweight uses neither.
    """
    id: str
    exercise_id: str
    exercise_name: str
    sets: int = Field(default=3, ge=1)
    reps: int = Field(default=10, ge=1)
    weight_type: WeightType = "fixed"
    weight: Optional[float] = Field(default=None, ge=0)
    weight_max: Optional[float] = Field(default=None, ge=0)
    percentage: Optional[float] = Field(default=None, ge=0)
    percentage_max: Optional[float] = Field(default=None, ge=0)
    percentage_base_kpi: Optional[str] = None  # KPI exercise the percentage is taken from
    tempo: Optional[str] = None  # e.g. "3-1-1-0"
    rest_time: Optional[int] = Field(default=None, ge=0)  # seconds
    each_side: bool = False
    notes: Optional[str] = None
    order: int = Field(default=1, ge=1)

    # Back-references (ownership is never embedded in the parent)
    group_id: Optional[str] = None
    block_instance_id: Optional[str] = None
    source_exercise_id: Optional[str] = None  # template exercise this was cloned from

    # Substitution tracking
    substitution_reason: Optional[str] = None
    original_exercise: Optional[str] = None

    class Config:
        extra = "ignore"  # Ignore UI-only fields

    @model_validator(mode="before")
    @classmethod
    def _drop_irrelevant_load(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        weight_type = data.get("weight_type", "fixed")
        if weight_type != "fixed":
            data["weight"] = None
            data["weight_max"] = None
        if weight_type != "percentage":
            data["percentage"] = None
            data["percentage_max"] = None
            data["percentage_base_kpi"] = None
        return data


class ExerciseGroup(BaseModel):
    """
    A superset, circuit or section.

    Members are the exercises whose ``group_id`` points here; the group never
    holds its own exercise list.
    """
    id: str
    name: str
    type: GroupType
    description: Optional[str] = None
    order: int = Field(default=1, ge=1)
    rest_between_rounds: Optional[int] = Field(default=None, ge=0)
    rest_between_exercises: Optional[int] = Field(default=None, ge=0)
    rounds: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None
    block_instance_id: Optional[str] = None
    source_group_id: Optional[str] = None

    class Config:
        extra = "ignore"


class BlockCustomizations(BaseModel):
    """How a block instance diverges from its template, by id."""
    modified_exercises: List[str] = Field(default_factory=list)
    added_exercises: List[str] = Field(default_factory=list)
    removed_exercises: List[str] = Field(default_factory=list)
    modified_groups: List[str] = Field(default_factory=list)
    added_groups: List[str] = Field(default_factory=list)
    removed_groups: List[str] = Field(default_factory=list)


class BlockTemplate(BaseModel):
    """A reusable, named bundle of exercises and groups."""
    id: str
    name: str
    description: Optional[str] = None
    category: BlockCategory = "custom"
    exercises: List[Exercise] = Field(default_factory=list)
    groups: List[ExerciseGroup] = Field(default_factory=list)
    estimated_duration: float = 0.0  # minutes
    tags: List[str] = Field(default_factory=list)
    is_template: bool = False  # system template vs coach-created
    created_by: Optional[str] = None
    usage_count: int = Field(default=0, ge=0)
    last_used: Optional[datetime] = None
    is_favorite: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class BlockInstance(BaseModel):
    """One placement of a block template inside a plan."""
    id: str
    source_block_id: str
    source_block_name: str  # snapshot, survives template rename/delete
    instance_name: Optional[str] = None
    notes: Optional[str] = None
    customizations: BlockCustomizations = Field(default_factory=BlockCustomizations)
    estimated_duration: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        return self.instance_name or self.source_block_name


class WorkoutPlan(BaseModel):
    """A coach-authored training plan."""
    id: str
    name: str
    description: Optional[str] = None
    exercises: List[Exercise] = Field(default_factory=list)
    groups: List[ExerciseGroup] = Field(default_factory=list)
    block_instances: List[BlockInstance] = Field(default_factory=list)
    estimated_duration: Optional[float] = None  # minutes; derived when not authored
    target_group_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    archived: bool = False

    class Config:
        extra = "ignore"


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


class AthleteGroup(BaseModel):
    """A roster of athletes a plan can be assigned to."""
    id: str
    name: str
    athlete_ids: List[str] = Field(default_factory=list)


class WorkoutModification(BaseModel):
    """A per-athlete override applied at presentation/execution time."""
    id: str = Field(default_factory=lambda: new_id("mod"))
    workout_exercise_id: str
    athlete_id: str
    modification_type: ModificationType
    original_value: Optional[str | float] = None
    modified_value: str | float
    reason: str = ""
    substitute_exercise_id: Optional[str] = None  # library id for "exercise" swaps
    modified_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class WorkoutAssignment(BaseModel):
    """Binds a plan to an athlete or a group of athletes on a date."""
    id: str = Field(default_factory=lambda: new_id("asg"))
    workout_plan_id: str
    workout_plan_name: str
    assignment_type: AssignmentType
    athlete_id: Optional[str] = None
    group_id: Optional[str] = None
    athlete_ids: List[str] = Field(default_factory=list)
    assigned_by: Optional[str] = None
    assigned_date: datetime = Field(default_factory=utcnow)
    scheduled_date: date
    start_time: Optional[str] = None  # "HH:MM"
    end_time: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    status: AssignmentStatus = "assigned"
    modifications: List[WorkoutModification] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Live sessions
# ---------------------------------------------------------------------------


class SetRecord(BaseModel):
    """One completed set. Only ``weight`` and ``reps`` may change after writing."""
    id: str = Field(default_factory=lambda: new_id("set"))
    session_exercise_id: str
    set_number: int = Field(ge=1)
    weight: Optional[float] = Field(default=None, ge=0)
    reps: int = Field(gt=0)
    rpe: Optional[int] = Field(default=None, ge=1, le=10)
    completed_at: datetime = Field(default_factory=utcnow)
    round: int = Field(default=1, ge=1)  # circuit round the set belongs to
    notes: Optional[str] = None


class SessionExercise(BaseModel):
    """Exercise snapshot plus execution progress inside a session."""
    session_exercise_id: str
    exercise_id: str
    exercise_name: str
    group_id: Optional[str] = None
    sets_target: int = Field(ge=1)
    reps_target: str  # "10" or a range such as "8-12"
    weight_target: Optional[float] = None
    weight_percentage: Optional[float] = None
    rest_seconds: int = 60
    tempo: Optional[str] = None
    order_index: int = 0
    sets_completed: int = 0
    completed: bool = False
    notes: Optional[str] = None
    set_records: List[SetRecord] = Field(default_factory=list)


class GroupInfo(BaseModel):
    """Group metadata the session needs for round advancement."""
    id: str
    name: str
    type: GroupType
    order_index: int = 0
    rounds: Optional[int] = None
    rest_between_rounds: Optional[int] = None
    rest_between_exercises: Optional[int] = None
    notes: Optional[str] = None


class WorkoutSession(BaseModel):
    """
    Live execution state of one assignment for one athlete.

    Treated as an immutable value: every transition in
    ``services.session_engine`` returns a new instance.
    """
    id: str = Field(default_factory=lambda: new_id("sess"))
    assignment_id: str
    athlete_id: str
    workout_plan_id: str
    workout_name: str
    status: SessionStatus = "active"
    started_at: datetime = Field(default_factory=utcnow)
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_duration_seconds: int = 0
    current_exercise_index: int = 0
    exercises: List[SessionExercise] = Field(default_factory=list)
    groups: List[GroupInfo] = Field(default_factory=list)
    group_rounds: Dict[str, int] = Field(default_factory=dict)
    # Every set written during the session, including rounds already reset
    recorded_sets: List[SetRecord] = Field(default_factory=list)
    notes: Optional[str] = None
