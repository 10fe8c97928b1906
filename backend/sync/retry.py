"""Error classification and backoff for the sync engine.

Flush cycles never retry in place: a transient failure ends the cycle and
the next attempt is scheduled at the trigger level using `backoff_delay`.
User-initiated one-shot calls (profile recovery) use `one_shot_retrying`,
a tenacity policy with exponential waits.
"""
import logging
from typing import Sequence

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from application.exceptions import (
    AuthenticationError,
    RejectedPayloadError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

# Default retry configuration for one-shot calls
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 1
DEFAULT_MAX_WAIT_SECONDS = 10

# PostgREST / Postgres error codes meaning the credentials were refused
AUTH_ERROR_CODES = {"PGRST301", "PGRST302", "42501", "401", "403"}


def is_auth_error(exception: BaseException) -> bool:
    """Determine if an exception means the backend refused our credentials."""
    if isinstance(exception, AuthenticationError):
        return True

    code = str(getattr(exception, "code", "") or "")
    if code in AUTH_ERROR_CODES:
        return True

    error_str = str(exception).lower()
    if "jwt expired" in error_str or "invalid jwt" in error_str:
        return True
    if "unauthorized" in error_str or "invalid api key" in error_str:
        return True
    return False


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if an exception is retryable.

    Uses both exception type checking and string matching for robustness.

    Retryable errors include:
    - Rate limit errors (429)
    - Server errors (5xx)
    - Timeout errors
    - Connection errors (including DNS failures)

    Non-retryable errors include:
    - Authentication errors (401/403)
    - Bad request / constraint errors (400, 404, 409, 422)
    """
    exception_type = type(exception)

    if issubclass(exception_type, TransientNetworkError):
        return True
    if issubclass(exception_type, (AuthenticationError, RejectedPayloadError)):
        return False
    if issubclass(exception_type, (TimeoutError, ConnectionError)):
        return True

    if is_auth_error(exception):
        return False

    error_str = str(exception).lower()
    exception_type_str = exception_type.__name__.lower()

    # Postgres class 08 (connection exception), 53 (insufficient resources),
    # 57 (operator intervention)
    code = str(getattr(exception, "code", "") or "")
    if code[:2] in {"08", "53", "57"}:
        return True

    # Check for rate limit (429) - always retry
    if "rate" in error_str and "limit" in error_str:
        return True
    if "429" in error_str:
        return True

    # Check for server errors (5xx) - retry
    if any(c in error_str for c in ["500", "502", "503", "504"]):
        return True

    # Check for timeout errors - retry
    if "timeout" in error_str or "timed out" in error_str:
        return True
    if "timeout" in exception_type_str:
        return True

    # Check for connection errors - retry
    if "connection" in error_str or "connect" in exception_type_str:
        return True
    if "network" in exception_type_str:
        return True

    # Check for DNS resolution failures - retry (transient network issue)
    if "name or service not known" in error_str:
        return True
    if "nodename nor servname provided" in error_str:
        return True
    if "temporary failure in name resolution" in error_str:
        return True

    # Default: don't retry unknown errors
    return False


def backoff_delay(consecutive_failures: int, schedule: Sequence[float]) -> float:
    """
    Delay before the next trigger after `consecutive_failures` transient failures.

    The schedule is indexed from the first failure; the last value repeats.

    Raises:
        ValueError: If the schedule is empty or the failure count is < 1
    """
    if not schedule:
        raise ValueError("schedule must contain at least one delay")
    if consecutive_failures < 1:
        raise ValueError(f"consecutive_failures must be >= 1, got {consecutive_failures}")
    index = min(consecutive_failures, len(schedule)) - 1
    return float(schedule[index])


def one_shot_retrying(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait_seconds: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
) -> AsyncRetrying:
    """
    Build a tenacity retry controller for user-initiated remote calls.

    Only transient errors are retried; the last error is re-raised.

    Usage:
        async for attempt in one_shot_retrying():
            with attempt:
                profile = await remote.verify_recovery(name, pin)
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
    if min_wait_seconds > max_wait_seconds:
        raise ValueError(
            f"min_wait_seconds ({min_wait_seconds}) cannot exceed "
            f"max_wait_seconds ({max_wait_seconds})"
        )

    return AsyncRetrying(
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
