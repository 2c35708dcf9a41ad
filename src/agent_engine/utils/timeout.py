"""Timeout utilities.

Wraps ``asyncio.wait_for`` so that expiry surfaces as the engine's own
``TimeoutError`` instead of ``asyncio.TimeoutError``.
"""

import asyncio
from typing import Awaitable, TypeVar

from ..errors import TimeoutError

T = TypeVar("T")


async def wait_with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float | None,
    message: str | None = None,
    code: str | None = None,
) -> T:
    """Await with a wall-clock limit.

    Args:
        awaitable: Coroutine or future to wait for
        timeout_seconds: Limit in seconds; None waits indefinitely
        message: Error message used on expiry
        code: Error code used on expiry

    Returns:
        Result of the awaitable

    Raises:
        TimeoutError: If the limit is reached
    """
    if timeout_seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise TimeoutError(
            message or f"Operation timed out after {timeout_seconds} seconds",
            code=code,
            details={"timeout_seconds": timeout_seconds},
        ) from None

