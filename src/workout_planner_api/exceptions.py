"""Error types raised by the planning and session core."""
from typing import List, Optional


class WorkoutPlannerError(RuntimeError):
    """Base class for all workout planner errors."""


class PlanValidationError(WorkoutPlannerError):
    """Raised when user input fails validation. Nothing is applied."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class ScopeError(WorkoutPlannerError):
    """Raised when a reorder crosses group / block instance boundaries."""


class ReferentialIntegrityError(WorkoutPlannerError):
    """Raised when an entity points at a group or block instance that does not exist."""


class SessionStateError(WorkoutPlannerError):
    """Raised when a session transition is not allowed from the current status."""


class ConfirmationRequiredError(WorkoutPlannerError):
    """Raised when a destructive or partial action was requested without confirmation."""


class PersistenceError(WorkoutPlannerError):
    """Raised when a fatal write to the persistence collaborator fails."""
