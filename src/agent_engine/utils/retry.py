"""Retry utilities.

Backoff delay computation shared by the flow executor and an async retry
decorator used around model backend calls.
"""

import asyncio
import functools
import random
from typing import Any, Callable, Literal

from .logging import get_logger

logger = get_logger(__name__)

BackoffStrategy = Literal["fixed", "linear", "exponential"]


def compute_backoff_delay(
    attempt: int,
    base_delay: float,
    backoff: BackoffStrategy = "exponential",
    max_delay: float | None = None,
    exponential_base: float = 2.0,
) -> float:
    """Compute the delay before a retry attempt.

    Args:
        attempt: Retry attempt number, starting at 1
        base_delay: Delay of the first retry
        backoff: Backoff strategy
        max_delay: Upper bound for the returned delay
        exponential_base: Growth factor for exponential backoff

    Returns:
        Delay in the same unit as ``base_delay``
    """
    if attempt < 1:
        return 0.0

    if backoff == "fixed":
        delay = base_delay
    elif backoff == "linear":
        delay = base_delay * attempt
    else:
        delay = base_delay * (exponential_base ** (attempt - 1))

    if max_delay is not None:
        delay = min(delay, max_delay)
    return float(delay)


def async_retry_with_exponential_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable: Callable[[Exception], bool] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Async decorator for retry with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries
        exponential_base: Base for exponential backoff calculation
        jitter: Whether to add random jitter to delay
        retryable: Predicate deciding whether an error is retried

    Returns:
        Decorated async function with retry logic
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    attempt += 1

                    if retryable is not None and not retryable(e):
                        raise

                    if attempt >= max_attempts:
                        logger.error(f"Async function {func.__name__} failed after {max_attempts} attempts: {e}")
                        raise

                    delay = compute_backoff_delay(attempt, base_delay, "exponential", max_delay, exponential_base)
                    if jitter:
                        delay = delay * (0.5 + random.random())

                    logger.warning(
                        f"Async function {func.__name__} failed (attempt {attempt}/{max_attempts}): {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is transient and worth retrying.

    Connection errors, timeouts, rate limits (429) and server errors (5xx)
    are considered retryable.

    Args:
        error: The exception to check

    Returns:
        True if the error is retryable
    """
    error_type = type(error).__name__.lower()
    error_message = str(error).lower()

    if "connection" in error_type or "connect" in error_message:
        return True

    if "timeout" in error_type or "timed out" in error_message:
        return True

    if "429" in error_message or "rate limit" in error_message or "ratelimit" in error_type:
        return True

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int) and status_code >= 500:
        return True

    if "temporary" in error_message or "unavailable" in error_message:
        return True

    return False
