"""Retry logic with exponential backoff for transient failures.

Used by the v2 transport around each HTTP exchange. Signing itself is
never retried; a retried request is re-signed so its Date stays fresh.

Transient (Retryable):
- Connection timeouts
- Connection errors
- Server errors (5xx)
- Rate limiting (429)
- S3 RequestTimeout and SlowDown errors, whatever their status

Permanent (Not Retryable):
- Other client errors (4xx)
- Signature mismatches (403)
- Authentication failures (401)
"""

import logging
import time
import xml.etree.ElementTree as ET
from typing import Any, Callable, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

# HTTP status codes that indicate transient server issues
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# S3 error codes that are transient whatever the HTTP status
RETRYABLE_ERROR_CODES = {"RequestTimeout", "SlowDown", "InternalError", "ServiceUnavailable"}


class RetryExhausted(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def s3_error_code(response: httpx.Response) -> Optional[str]:
    """Return the <Code> of an S3 XML error body, or None."""
    try:
        root = ET.fromstring(response.content)
    except (ET.ParseError, httpx.ResponseNotRead):
        return None
    return root.findtext("Code")


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error is transient and worth retrying.

    A 403 (signature mismatch, skewed clock or denied ACL) is never
    retried and is logged at debug with its S3 error code.

    Args:
        error: The exception that was raised.

    Returns:
        True if the error is transient and should trigger a retry,
        False if the error is permanent and retrying won't help.
    """
    if isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout)):
        return True

    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        error_code = s3_error_code(error.response)
        if status_code == 403:
            logger.debug("Request rejected with 403 %s, not retrying", error_code or "Forbidden")
            return False
        return status_code in RETRYABLE_STATUS_CODES or error_code in RETRYABLE_ERROR_CODES

    return False


def retry_with_backoff(
    func: Callable[..., Any],
    max_attempts: int = 3,
    delays: Sequence[float] = (1.0, 2.0, 4.0),
    args: tuple = (),
    kwargs: Optional[dict] = None,
) -> Any:
    """Execute a function with retry logic and exponential backoff.

    Args:
        func: The function to execute.
        max_attempts: Maximum number of attempts (including first try).
        delays: Sequence of delay times (seconds) between retries.
                delays[0] is used after first failure, etc.
        args: Positional arguments to pass to func.
        kwargs: Keyword arguments to pass to func.

    Returns:
        The return value of func if successful.

    Raises:
        RetryExhausted: If all attempts fail with retryable errors.
        Exception: If a non-retryable error occurs, it's raised immediately.
    """
    if kwargs is None:
        kwargs = {}

    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            last_error = e

            if not is_retryable_error(e):
                raise

            if attempt >= max_attempts:
                raise RetryExhausted(
                    f"Operation failed after {max_attempts} attempts",
                    attempts=max_attempts,
                    last_error=last_error,
                ) from last_error

            delay = delays[min(attempt - 1, len(delays) - 1)]
            logger.warning(
                "Attempt %d/%d failed: %s; retrying in %.1fs",
                attempt, max_attempts, e, delay,
            )
            time.sleep(delay)

    raise RetryExhausted(
        f"Operation failed after {max_attempts} attempts",
        attempts=max_attempts,
        last_error=last_error,
    )
