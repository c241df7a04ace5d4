"""Retry utilities for idempotent collaborator reads with exponential backoff.

Writes are never retried automatically: a silently repeated write could
duplicate a set or an assignment. Failed writes are reported and retried by
the user instead.
"""
import logging
from typing import Callable, TypeVar

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 1
DEFAULT_MAX_WAIT_SECONDS = 10

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if a collaborator failure is worth retrying.

    Retryable errors include:
    - Rate limit errors (429)
    - Server errors (5xx)
    - Timeout and connection errors

    Everything else (4xx, bad payloads, programming errors) is not.
    """
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exception, (httpx.TimeoutException, httpx.NetworkError)):
        return True

    error_str = str(exception).lower()
    exception_type = type(exception).__name__.lower()
    if "timeout" in exception_type or "timed out" in error_str:
        return True
    if "connect" in exception_type:
        return True
    return False


def create_retry_decorator(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait_seconds: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Create a retry decorator with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries

    Returns:
        A retry decorator configured with the specified parameters
    """
    return retry(
        retry=retry_if_exception(is_retryable_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_seconds,
            max=max_wait_seconds,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


# Pre-configured retry decorator for idempotent reads
read_retry = create_retry_decorator()
