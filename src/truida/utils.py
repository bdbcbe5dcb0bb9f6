"""
Utility functions and decorators for the TRUIDA system.

This module provides the clock abstraction shared by every time-dependent
component, timestamp parsing, timing and retry decorators, and small
formatting helpers used in logs and audit notes.
"""

import time
import functools
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar, Union

import structlog

from .constants import LOGGED_DIGEST_PREFIX

# Initialize structured logger
logger = structlog.get_logger(__name__)

# Type variable for generic decorators
F = TypeVar("F", bound=Callable[..., Any])

# Injectable "now" source; must return a timezone-aware datetime
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def fixed_clock(instant: datetime) -> Clock:
    """
    Build a clock that always returns ``instant``.

    Parameters
    ----------
    instant : datetime
        Instant to return. Naive values are interpreted as UTC.

    Returns
    -------
    Clock
        Zero-argument callable returning the fixed instant.

    Examples
    --------
    >>> clock = fixed_clock(datetime(2030, 1, 1, tzinfo=timezone.utc))
    >>> clock().year
    2030
    """
    aware = ensure_aware(instant)
    return lambda: aware


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values are returned unchanged."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_timestamp(value: Union[str, datetime, int, float]) -> datetime:
    """
    Parse a timestamp into a timezone-aware datetime.

    Accepts ISO 8601 strings (a trailing ``Z`` is understood as UTC),
    datetime objects and POSIX epoch seconds. Naive values are interpreted
    as UTC.

    Parameters
    ----------
    value : Union[str, datetime, int, float]
        Timestamp to parse.

    Returns
    -------
    datetime
        Timezone-aware datetime.

    Raises
    ------
    ValueError
        If the value is empty or cannot be parsed.
    """
    if isinstance(value, datetime):
        return ensure_aware(value)

    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"Timestamp out of range: {value!r}") from e

    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not a timestamp: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    return ensure_aware(datetime.fromisoformat(text))


def timer(func: F) -> F:
    """
    Decorator logging the wall-clock duration of each call at debug level.

    Failed calls are logged with the exception type and re-raised unchanged.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        outcome = "error"
        try:
            result = func(*args, **kwargs)
            outcome = "ok"
            return result
        except Exception as e:
            outcome = type(e).__name__
            raise
        finally:
            logger.debug(
                "Operation timed",
                operation=func.__qualname__,
                duration_ms=round((time.perf_counter() - started) * 1000, 3),
                outcome=outcome,
            )

    return wrapper


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
) -> Callable[[F], F]:
    """
    Decorator to retry function execution on failure.

    The last exception is re-raised once every attempt has failed.

    Parameters
    ----------
    max_attempts : int, default=3
        Maximum number of attempts.
    delay : float, default=1.0
        Initial delay between retries in seconds.
    backoff : float, default=2.0
        Backoff multiplier for delay.
    exceptions : tuple, default=(Exception,)
        Tuple of exception types to catch and retry.

    Returns
    -------
    Callable
        Decorator function.

    Examples
    --------
    >>> @retry(max_attempts=3, delay=0.5, exceptions=(StorageError,))
    ... def persist():
    ...     pass
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(
                            "Giving up after retries",
                            operation=func.__qualname__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise

                    logger.warning(
                        "Attempt failed, retrying",
                        operation=func.__qualname__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay_seconds=wait,
                        error=str(e),
                    )
                    time.sleep(wait)
                    wait *= backoff
                    attempt += 1

        return wrapper

    return decorator


def short_digest(digest: Optional[str]) -> Optional[str]:
    """Truncate a biometric digest for diagnostic logs."""
    if not digest:
        return digest
    return digest[:LOGGED_DIGEST_PREFIX]


def format_similarity(similarity: float) -> str:
    """
    Format a similarity score as the percentage written to audit notes.

    Examples
    --------
    >>> format_similarity(0.9)
    'Similarity: 90.0%'
    """
    return f"Similarity: {similarity * 100:.1f}%"


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Perform safe division with default value for zero denominator.

    Examples
    --------
    >>> safe_divide(10, 2)
    5.0
    >>> safe_divide(10, 0)
    0.0
    """
    if denominator == 0:
        return default
    return numerator / denominator
