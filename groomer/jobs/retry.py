"""
Retry decisions for email jobs.

Failed sends are retried on the next dispatch tick (no backoff) until the
job's retry budget is spent.
"""

from typing import Optional

from ..core.exceptions import ConfigurationError, NotFoundError, ValidationError


# Errors that will not go away by trying again
NON_RETRYABLE_ERRORS = (
    NotFoundError,  # Meeting deleted
    ConfigurationError,  # No mail credential
    ValidationError,  # Unrenderable job
    ValueError,
    KeyError,
    TypeError,
)


def should_retry(retry_count: int, max_retries: int = 3, error: Optional[Exception] = None) -> bool:
    """
    Determine if a job should be retried based on retry count and error type.

    Args:
        retry_count: Retry count after recording the current failure
        max_retries: Maximum number of retries allowed (default: 3)
        error: The exception that occurred (optional)

    Returns:
        True if job should stay pending, False if it is terminally failed
    """
    if retry_count >= max_retries:
        return False

    if error is not None and isinstance(error, NON_RETRYABLE_ERRORS):
        return False

    return True


def format_retry_info(retry_count: int, max_retries: int) -> str:
    """
    Format retry information for logging/display.

    Returns:
        Formatted string like "Retry 2/3"
    """
    return f"Retry {retry_count}/{max_retries}"
