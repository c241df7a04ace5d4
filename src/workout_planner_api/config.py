"""Configuration settings for the workout planner API."""
import os
from typing import Literal


EnvironmentType = Literal["development", "staging", "production"]


class Settings:
    """Application settings."""

    # Environment
    ENVIRONMENT: EnvironmentType = "development"

    # Data integrity: raise on dangling group/block references instead of logging
    STRICT_REFERENCES: bool = True

    # Collaborator endpoints
    PERSISTENCE_API_URL: str | None = None
    PR_API_URL: str | None = None
    TEMPLATE_API_URL: str | None = None
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Duration heuristic (approximate, see services.duration.estimate_duration)
    SECONDS_PER_REP: int = 3

    # Presentation-only delay before the UI shows the next exercise
    ADVANCE_DELAY_MS: int = 500

    def __init__(self):
        # Environment
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env in ("development", "staging", "production"):
            self.ENVIRONMENT = env  # type: ignore
        else:
            self.ENVIRONMENT = "development"

        # Strict references default on only while developing
        strict_default = "true" if self.ENVIRONMENT == "development" else "false"
        self.STRICT_REFERENCES = os.getenv("STRICT_REFERENCES", strict_default).lower() == "true"

        # Collaborators
        self.PERSISTENCE_API_URL = os.getenv("PERSISTENCE_API_URL")
        self.PR_API_URL = os.getenv("PR_API_URL")
        self.TEMPLATE_API_URL = os.getenv("TEMPLATE_API_URL")
        self.HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

        self.SECONDS_PER_REP = int(os.getenv("SECONDS_PER_REP", "3"))
        self.ADVANCE_DELAY_MS = int(os.getenv("ADVANCE_DELAY_MS", "500"))


settings = Settings()
