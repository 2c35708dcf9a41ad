"""Side channel resolving pending tool results by correlation id."""

import asyncio
from typing import Any, Optional

from ..errors import NotFoundError, ToolExecutionError
from ..utils import get_logger, wait_with_timeout

logger = get_logger(__name__)


class PendingResults:
    """Futures for long-running tool calls, keyed by correlation id.

    A long-running tool registers its correlation id when it returns a
    pending ToolResult. Whoever completes the work later calls ``resolve``
    (or ``fail``); consumers ``wait`` for the value.
    """

    def __init__(self) -> None:
        self._futures: dict[str, asyncio.Future[Any]] = {}

    def register(self, correlation_id: str) -> None:
        """Start tracking a correlation id. Registering twice is a no-op."""
        if correlation_id not in self._futures:
            self._futures[correlation_id] = asyncio.get_running_loop().create_future()
            logger.debug(f"Registered pending result {correlation_id}")

    def resolve(self, correlation_id: str, value: Any) -> None:
        """Deliver the value of a pending call.

        Raises:
            NotFoundError: If the correlation id was never registered
        """
        future = self._get(correlation_id)
        if not future.done():
            future.set_result(value)

    def fail(self, correlation_id: str, error: str) -> None:
        """Deliver a failure for a pending call.

        Raises:
            NotFoundError: If the correlation id was never registered
        """
        future = self._get(correlation_id)
        if not future.done():
            future.set_exception(ToolExecutionError(error, details={"correlation_id": correlation_id}))

    async def wait(self, correlation_id: str, timeout_seconds: Optional[float] = None) -> Any:
        """Wait for a pending value and stop tracking it.

        Args:
            correlation_id: Correlation id of the pending call
            timeout_seconds: Optional wait limit

        Returns:
            The delivered value

        Raises:
            NotFoundError: If the correlation id was never registered
            ToolExecutionError: If the call was failed
            TimeoutError: If the limit is reached
        """
        future = self._get(correlation_id)
        try:
            return await wait_with_timeout(
                asyncio.shield(future),
                timeout_seconds,
                message=f"Pending result {correlation_id} not delivered within {timeout_seconds} seconds",
            )
        finally:
            if future.done():
                self._futures.pop(correlation_id, None)

    def is_pending(self, correlation_id: str) -> bool:
        future = self._futures.get(correlation_id)
        return future is not None and not future.done()

    @property
    def pending_ids(self) -> list[str]:
        return [cid for cid, future in self._futures.items() if not future.done()]

    def _get(self, correlation_id: str) -> asyncio.Future[Any]:
        future = self._futures.get(correlation_id)
        if future is None:
            raise NotFoundError(f"Unknown pending result: {correlation_id}")
        return future
