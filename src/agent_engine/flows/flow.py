"""Flow: a validated flow definition bound to an executor."""

from typing import Any, Optional

from ..errors import NotFoundError
from ..models import FlowConfig, FlowContext, FlowExecutionResult, FlowStep, FlowValidationResult
from ..utils import generate_execution_id
from .constants import FlowErrorCode
from .executor import EventSink, FlowExecutor
from .hooks import FlowLifecycleHooks
from .validation import validate_flow_config


class Flow:
    """A flow definition plus the executor that runs it.

    Attributes:
        config: Immutable flow definition
        executor: Executor used by ``execute``
    """

    def __init__(self, config: FlowConfig, executor: Optional[FlowExecutor] = None) -> None:
        self.config = config
        self.executor = executor or FlowExecutor()

    @property
    def id(self) -> str:
        return self.config.id

    def validate(self) -> FlowValidationResult:
        """Validate the definition.

        Step types with a registered executor do not produce unknown-type
        warnings.

        Returns:
            Validation result with every error and warning
        """
        return validate_flow_config(self.config, known_step_types=self.executor.registry.types())

    def get_step(self, step_id: str) -> FlowStep:
        """Get a step by id.

        Raises:
            NotFoundError: If the flow has no such step
        """
        step = self.config.get_step(step_id)
        if step is None:
            raise NotFoundError(
                f"Step '{step_id}' not found in flow '{self.config.id}'",
                code=FlowErrorCode.STEP_NOT_FOUND,
            )
        return step

    def get_steps(self) -> list[FlowStep]:
        return list(self.config.steps)

    def get_metadata(self) -> dict[str, Any]:
        return {
            "id": self.config.id,
            "name": self.config.name,
            "description": self.config.description,
            "version": self.config.version,
            "mode": self.config.mode.value,
            "priority": self.config.priority.value,
            "step_count": len(self.config.steps),
            "tags": list(self.config.tags),
            "metadata": dict(self.config.metadata),
        }

    def create_context(
        self,
        input: Optional[dict[str, Any]] = None,
        execution_id: Optional[str] = None,
        **overrides: Any,
    ) -> FlowContext:
        """Create a fresh execution context seeded with the flow variables.

        Args:
            input: Execution input
            execution_id: Execution id (generated when omitted)
            **overrides: Other FlowContext fields (user_id, session_id, metadata, ...)

        Returns:
            New FlowContext
        """
        fields: dict[str, Any] = {
            "execution_id": execution_id or generate_execution_id(),
            "flow_id": self.config.id,
            "input": dict(input or {}),
            "variables": dict(self.config.variables),
        }
        fields.update(overrides)
        return FlowContext(**fields)

    async def execute(
        self,
        context: Optional[FlowContext] = None,
        hooks: Optional[FlowLifecycleHooks] = None,
        emit: Optional[EventSink] = None,
        result: Optional[FlowExecutionResult] = None,
    ) -> FlowExecutionResult:
        """Execute the flow.

        Args:
            context: Execution context (a fresh one when omitted)
            hooks: Step hooks
            emit: Receives step events
            result: Result object to fill in

        Returns:
            The COMPLETED result

        Raises:
            FlowExecutionError: If a non-optional step failed
        """
        context = context or self.create_context()
        return await self.executor.execute(self.config, context, hooks=hooks, emit=emit, result=result)

    def clone(self, **updates: Any) -> "Flow":
        """Copy the flow, optionally changing definition fields.

        Args:
            **updates: FlowConfig fields to replace, e.g. ``id`` or ``name``

        Returns:
            New Flow sharing this flow's executor
        """
        return Flow(self.config.model_copy(update=updates, deep=True), executor=self.executor)

    def __repr__(self) -> str:
        return f"Flow(id={self.config.id!r}, steps={len(self.config.steps)})"
