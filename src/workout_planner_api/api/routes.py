"""API routes for plan checks and live workout sessions."""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from workout_planner_api.config import settings
from workout_planner_api.exceptions import (
    ConfirmationRequiredError,
    PersistenceError,
    PlanValidationError,
    ReferentialIntegrityError,
    ScopeError,
    SessionStateError,
    WorkoutPlannerError,
)
from workout_planner_api.models import Exercise, WorkoutAssignment, WorkoutPlan, WorkoutSession
from workout_planner_api.services.collaborators import LocalPersistence
from workout_planner_api.services.duration import estimate_duration, plan_duration
from workout_planner_api.services.http_collaborators import HttpPersistenceClient, HttpPRClient
from workout_planner_api.services.plan_validation import ValidationResult, validate_workout
from workout_planner_api.services.pr_detection import HistoryPRDetector
from workout_planner_api.services.session_driver import LiveSessionDriver, LiveSetResult
from workout_planner_api.services.session_engine import UNCHANGED, start_session
from workout_planner_api.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class PlanValidationResponse(ValidationResult):
    estimated_duration: float


class EstimateDurationRequest(BaseModel):
    exercises: List[Exercise]
    seconds_per_rep: Optional[int] = None


class StartSessionRequest(BaseModel):
    assignment: WorkoutAssignment
    plan: WorkoutPlan
    athlete_id: str


class SetInput(BaseModel):
    weight: Optional[float] = None
    reps: int
    rpe: Optional[int] = None
    notes: Optional[str] = None


class SetEditInput(BaseModel):
    weight: Optional[float] = None
    reps: Optional[int] = None


class ConfirmInput(BaseModel):
    confirmed: bool = False


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


def _build_persistence():
    if settings.PERSISTENCE_API_URL:
        return HttpPersistenceClient()
    return LocalPersistence()


def _build_pr_detector():
    if settings.PR_API_URL:
        return HttpPRClient()
    return HistoryPRDetector()


registry = SessionRegistry()
drivers: Dict[str, LiveSessionDriver] = {}
persistence = _build_persistence()
pr_detector = _build_pr_detector()


def reset_sessions() -> None:
    """Forget every live session and rebuild the collaborators (used by tests)."""
    global registry, persistence, pr_detector
    registry = SessionRegistry()
    drivers.clear()
    persistence = _build_persistence()
    pr_detector = _build_pr_detector()


def _driver(session_id: str) -> LiveSessionDriver:
    registry.get(session_id)
    return drivers[session_id]


def _finish(session: WorkoutSession) -> WorkoutSession:
    """Archive a completed or abandoned session and release its driver."""
    registry.replace(session)
    drivers.pop(session.id, None)
    return registry.archive(session.id)


def _http_error(exc: WorkoutPlannerError) -> HTTPException:
    if isinstance(exc, PlanValidationError):
        return HTTPException(status_code=400, detail={"message": str(exc), "errors": exc.errors})
    if isinstance(exc, ScopeError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ReferentialIntegrityError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (SessionStateError, ConfirmationRequiredError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


# ---------------------------------------------------------------------------
# Health / plans
# ---------------------------------------------------------------------------


@router.get("/health")
def health():
    """Health check endpoint."""
    return {"ok": True, "environment": settings.ENVIRONMENT}


@router.post("/plans/validate", response_model=PlanValidationResponse)
def validate_plan(plan: WorkoutPlan):
    """Run the pre-save checks on a plan without storing it."""
    result = validate_workout(plan)
    return PlanValidationResponse(**result.model_dump(), estimated_duration=plan_duration(plan))


@router.post("/plans/estimate-duration")
def estimate_plan_duration(request: EstimateDurationRequest):
    """Approximate duration in minutes for a list of exercises."""
    minutes = estimate_duration(request.exercises, seconds_per_rep=request.seconds_per_rep)
    return {"estimated_duration": round(minutes, 1)}


# ---------------------------------------------------------------------------
# Live sessions
# ---------------------------------------------------------------------------


@router.post("/sessions/start", response_model=WorkoutSession)
async def start_workout_session(request: StartSessionRequest):
    try:
        session = start_session(request.assignment, request.plan, request.athlete_id)
        registry.start(session)
    except WorkoutPlannerError as e:
        raise _http_error(e) from e
    drivers[session.id] = LiveSessionDriver(session, persistence, pr_detector)
    return session


@router.get("/sessions/{session_id}", response_model=WorkoutSession)
def get_workout_session(session_id: str):
    try:
        return registry.get(session_id)
    except WorkoutPlannerError as e:
        raise _http_error(e) from e


@router.post("/sessions/{session_id}/sets", response_model=LiveSetResult)
async def record_set(session_id: str, body: SetInput):
    """Log a set on the current exercise; the pointer advances once its sets are done."""
    try:
        driver = _driver(session_id)
        result = await driver.complete_set(body.weight, body.reps, rpe=body.rpe, notes=body.notes)
    except WorkoutPlannerError as e:
        raise _http_error(e) from e
    registry.replace(driver.session)
    return result


@router.patch("/sessions/{session_id}/sets/{set_id}", response_model=WorkoutSession)
async def edit_recorded_set(session_id: str, set_id: str, body: SetEditInput):
    # Only fields present in the body change; an explicit null clears the weight
    fields = body.model_fields_set
    try:
        driver = _driver(session_id)
        session = await driver.edit_set(
            set_id,
            weight=body.weight if "weight" in fields else UNCHANGED,
            reps=body.reps if "reps" in fields else UNCHANGED,
        )
    except WorkoutPlannerError as e:
        raise _http_error(e) from e
    return registry.replace(session)


@router.delete("/sessions/{session_id}/sets/{set_id}", response_model=WorkoutSession)
async def delete_recorded_set(session_id: str, set_id: str):
    try:
        driver = _driver(session_id)
        session = await driver.delete_set(set_id)
    except WorkoutPlannerError as e:
        raise _http_error(e) from e
    return registry.replace(session)


@router.post("/sessions/{session_id}/pause", response_model=WorkoutSession)
async def pause_workout(session_id: str):
    try:
        session = await _driver(session_id).pause()
    except WorkoutPlannerError as e:
        raise _http_error(e) from e
    return registry.replace(session)


@router.post("/sessions/{session_id}/resume", response_model=WorkoutSession)
async def resume_workout(session_id: str):
    try:
        session = await _driver(session_id).resume()
    except WorkoutPlannerError as e:
        raise _http_error(e) from e
    return registry.replace(session)


@router.post("/sessions/{session_id}/complete", response_model=WorkoutSession)
async def complete_workout(session_id: str, body: Optional[ConfirmInput] = None):
    confirmed = body.confirmed if body else False
    try:
        session = await _driver(session_id).complete_workout(confirmed=confirmed)
    except WorkoutPlannerError as e:
        raise _http_error(e) from e
    return _finish(session)


@router.post("/sessions/{session_id}/abandon", response_model=WorkoutSession)
async def abandon_workout(session_id: str, body: Optional[ConfirmInput] = None):
    confirmed = body.confirmed if body else False
    try:
        session = await _driver(session_id).abandon(confirmed=confirmed)
    except WorkoutPlannerError as e:
        raise _http_error(e) from e
    return _finish(session)
