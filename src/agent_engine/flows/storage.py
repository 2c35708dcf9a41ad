"""Flow storage.

FlowStorage is the persistence contract the FlowManager consumes.
InMemoryFlowStorage keeps serialized copies, so callers never share
mutable state with the store.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..models import FlowConfig, FlowExecutionResult
from ..utils import get_logger

logger = get_logger(__name__)


class FlowStorage(ABC):
    """Persistence backend for flow definitions and execution results."""

    @abstractmethod
    async def save_flow(self, config: FlowConfig) -> None:
        """Save or replace a flow definition."""

    @abstractmethod
    async def load_flow(self, flow_id: str) -> Optional[FlowConfig]:
        """Load a flow definition.

        Returns:
            The definition, or None if not stored
        """

    @abstractmethod
    async def delete_flow(self, flow_id: str) -> bool:
        """Delete a flow definition.

        Returns:
            True if it existed
        """

    @abstractmethod
    async def list_flows(self) -> list[FlowConfig]:
        """List every stored flow definition."""

    @abstractmethod
    async def save_execution(self, result: FlowExecutionResult) -> None:
        """Save or replace an execution result."""

    @abstractmethod
    async def load_execution(self, execution_id: str) -> Optional[FlowExecutionResult]:
        """Load an execution result.

        Returns:
            The result, or None if not stored
        """

    @abstractmethod
    async def list_executions(self, flow_id: Optional[str] = None) -> list[FlowExecutionResult]:
        """List stored execution results, optionally of one flow."""


class InMemoryFlowStorage(FlowStorage):
    """Process-local FlowStorage."""

    def __init__(self) -> None:
        self._flows: dict[str, dict[str, Any]] = {}
        self._executions: dict[str, dict[str, Any]] = {}

    async def save_flow(self, config: FlowConfig) -> None:
        self._flows[config.id] = config.model_dump()
        logger.debug(f"Stored flow {config.id}")

    async def load_flow(self, flow_id: str) -> Optional[FlowConfig]:
        data = self._flows.get(flow_id)
        return FlowConfig.model_validate(data) if data is not None else None

    async def delete_flow(self, flow_id: str) -> bool:
        return self._flows.pop(flow_id, None) is not None

    async def list_flows(self) -> list[FlowConfig]:
        return [FlowConfig.model_validate(data) for data in self._flows.values()]

    async def save_execution(self, result: FlowExecutionResult) -> None:
        self._executions[result.execution_id] = result.model_dump()

    async def load_execution(self, execution_id: str) -> Optional[FlowExecutionResult]:
        data = self._executions.get(execution_id)
        return FlowExecutionResult.model_validate(data) if data is not None else None

    async def list_executions(self, flow_id: Optional[str] = None) -> list[FlowExecutionResult]:
        return [
            FlowExecutionResult.model_validate(data)
            for data in self._executions.values()
            if flow_id is None or data["flow_id"] == flow_id
        ]

    def clear(self) -> None:
        self._flows.clear()
        self._executions.clear()
