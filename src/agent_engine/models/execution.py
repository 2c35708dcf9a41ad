"""Flow execution entities.

FlowContext is the per-execution working record. FlowExecutionResult is the
state machine reported back to callers: PENDING -> RUNNING -> one of
COMPLETED, FAILED, CANCELLED or PAUSED.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ..errors import ConfigurationError
from .flow import FlowConfig


class FlowStatus(str, Enum):
    """Status of a flow execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class StepStatus(str, Enum):
    """Status of a single step within an execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FlowEventType(str, Enum):
    """Lifecycle events emitted by the flow layer."""

    FLOW_REGISTERED = "flow_registered"
    FLOW_UNREGISTERED = "flow_unregistered"
    FLOW_STARTED = "flow_started"
    FLOW_COMPLETED = "flow_completed"
    FLOW_FAILED = "flow_failed"
    FLOW_CANCELLED = "flow_cancelled"
    FLOW_PAUSED = "flow_paused"
    FLOW_RESUMED = "flow_resumed"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    STEP_SKIPPED = "step_skipped"


_TRANSITIONS: dict[FlowStatus, set[FlowStatus]] = {
    FlowStatus.PENDING: {FlowStatus.RUNNING, FlowStatus.FAILED, FlowStatus.CANCELLED},
    FlowStatus.RUNNING: {FlowStatus.COMPLETED, FlowStatus.FAILED, FlowStatus.CANCELLED, FlowStatus.PAUSED},
    FlowStatus.PAUSED: {FlowStatus.RUNNING, FlowStatus.CANCELLED, FlowStatus.FAILED},
    FlowStatus.COMPLETED: set(),
    FlowStatus.FAILED: set(),
    FlowStatus.CANCELLED: set(),
}


class FlowContext(BaseModel):
    """Ephemeral record of one flow execution.

    Attributes:
        execution_id: Execution identifier
        flow_id: Flow identifier
        user_id: Optional user identifier
        session_id: Optional session identifier
        input: Execution input
        output: Output collected from steps
        variables: Intermediate variables
        metadata: Execution metadata
        step_outputs: Raw output of each finished step, by step id
        parent: Context of the enclosing execution (nested flows)
        children: Contexts of nested executions
    """

    execution_id: str = Field(..., description="Execution identifier")
    flow_id: str = Field(..., description="Flow identifier")
    user_id: Optional[str] = Field(None, description="User identifier")
    session_id: Optional[str] = Field(None, description="Session identifier")
    input: dict[str, Any] = Field(default_factory=dict, description="Execution input")
    output: dict[str, Any] = Field(default_factory=dict, description="Execution output")
    variables: dict[str, Any] = Field(default_factory=dict, description="Intermediate variables")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Execution metadata")
    step_outputs: dict[str, Any] = Field(default_factory=dict, description="Step outputs by id")
    parent: Optional["FlowContext"] = Field(None, exclude=True, repr=False, description="Parent context")
    children: list["FlowContext"] = Field(default_factory=list, exclude=True, repr=False, description="Child contexts")

    def create_child(self, execution_id: str, flow_id: str, input: dict[str, Any]) -> "FlowContext":
        """Create a linked context for a nested flow.

        Args:
            execution_id: Execution identifier of the nested run
            flow_id: Nested flow identifier
            input: Nested flow input

        Returns:
            The child context, already registered in ``children``
        """
        child = FlowContext(
            execution_id=execution_id,
            flow_id=flow_id,
            user_id=self.user_id,
            session_id=self.session_id,
            input=input,
            metadata={"parent_execution_id": self.execution_id},
            parent=self,
        )
        self.children.append(child)
        return child

    def resolve(self, path: str) -> Any:
        """Resolve a dotted path.

        ``input.x``, ``output.x``, ``variables.x`` and ``steps.<id>.x`` address
        the matching map; a bare name is looked up in variables, then input.

        Args:
            path: Dotted path

        Returns:
            The value, or None if any segment is missing
        """
        head, _, rest = path.partition(".")
        roots = {
            "input": self.input,
            "output": self.output,
            "variables": self.variables,
            "metadata": self.metadata,
            "steps": self.step_outputs,
        }
        if head in roots:
            value: Any = roots[head]
            segments = rest.split(".") if rest else []
        elif head in self.variables:
            value = self.variables
            segments = path.split(".")
        else:
            value = self.input
            segments = path.split(".")

        for segment in segments:
            if isinstance(value, dict):
                if segment not in value:
                    return None
                value = value[segment]
            elif isinstance(value, (list, tuple)) and segment.isdigit():
                index = int(segment)
                if index >= len(value):
                    return None
                value = value[index]
            elif hasattr(value, segment):
                value = getattr(value, segment)
            else:
                return None
        return value


class FlowStepResult(BaseModel):
    """Outcome of one step.

    Attributes:
        step_id: Step identifier
        step_name: Step display name
        status: Step status
        input: Resolved step input
        output: Step output
        error: Error message if failed
        error_code: Error code if failed
        start_time: Start timestamp
        end_time: End timestamp
        retry_attempts: Retries performed
        metadata: Additional data
    """

    step_id: str = Field(..., description="Step identifier")
    step_name: str = Field(default="", description="Step name")
    status: StepStatus = Field(default=StepStatus.PENDING, description="Step status")
    input: dict[str, Any] = Field(default_factory=dict, description="Resolved input")
    output: Any = Field(None, description="Step output")
    error: Optional[str] = Field(None, description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    start_time: datetime = Field(default_factory=datetime.now, description="Start timestamp")
    end_time: Optional[datetime] = Field(None, description="End timestamp")
    retry_attempts: int = Field(default=0, description="Retries performed")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional data")

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000

    @property
    def succeeded(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.SKIPPED)


class FlowExecutionResult(BaseModel):
    """Result of one flow execution.

    Attributes:
        execution_id: Execution identifier
        flow_id: Flow identifier
        status: Execution status
        input: Execution input
        output: Execution output
        error: Error message if failed
        error_code: Error code if failed
        start_time: Creation timestamp
        end_time: Set when a terminal or paused status is reached
        step_results: Step outcomes in completion order
        metadata: Execution metadata
    """

    execution_id: str = Field(..., description="Execution identifier")
    flow_id: str = Field(..., description="Flow identifier")
    status: FlowStatus = Field(default=FlowStatus.PENDING, description="Execution status")
    input: dict[str, Any] = Field(default_factory=dict, description="Execution input")
    output: dict[str, Any] = Field(default_factory=dict, description="Execution output")
    error: Optional[str] = Field(None, description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    start_time: datetime = Field(default_factory=datetime.now, description="Start timestamp")
    end_time: Optional[datetime] = Field(None, description="End timestamp")
    step_results: list[FlowStepResult] = Field(default_factory=list, description="Step outcomes")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Execution metadata")

    def _transition(self, status: FlowStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ConfigurationError(
                f"Invalid status transition for execution '{self.execution_id}': "
                f"{self.status.value} -> {status.value}",
                code="INVALID_CONFIG",
            )
        self.status = status

    def mark_running(self) -> None:
        """Mark the execution as running."""
        self._transition(FlowStatus.RUNNING)
        self.start_time = datetime.now()
        self.end_time = None

    def mark_completed(self, output: dict[str, Any]) -> None:
        """Mark the execution as completed.

        Args:
            output: Execution output
        """
        self._transition(FlowStatus.COMPLETED)
        self.output = output
        self.end_time = datetime.now()

    def mark_failed(self, error: str, code: Optional[str] = None) -> None:
        """Mark the execution as failed.

        Args:
            error: Error message
            code: Error code
        """
        self._transition(FlowStatus.FAILED)
        self.error = error
        self.error_code = code
        self.end_time = datetime.now()

    def mark_cancelled(self) -> None:
        self._transition(FlowStatus.CANCELLED)
        self.end_time = datetime.now()

    def mark_paused(self) -> None:
        self._transition(FlowStatus.PAUSED)
        self.end_time = datetime.now()

    @property
    def is_finished(self) -> bool:
        return self.status in (FlowStatus.COMPLETED, FlowStatus.FAILED, FlowStatus.CANCELLED)

    @property
    def duration_ms(self) -> Optional[float]:
        """Execution duration in milliseconds.

        Returns:
            Duration, or None while no end time is set
        """
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000


class FlowEvent(BaseModel):
    """Lifecycle notification delivered to flow listeners."""

    type: FlowEventType = Field(..., description="Event type")
    flow_id: str = Field(..., description="Flow identifier")
    execution_id: Optional[str] = Field(None, description="Execution identifier")
    step_id: Optional[str] = Field(None, description="Step identifier")
    timestamp: datetime = Field(default_factory=datetime.now, description="Emission time")
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")


class FlowMetrics(BaseModel):
    """Rolling metrics of one flow.

    Attributes:
        execution_count: Finished executions
        success_count: Completed executions
        failure_count: Failed executions
        total_duration_ms: Sum of durations
        average_duration_ms: Mean duration
        min_duration_ms: Shortest duration (inf before the first execution)
        max_duration_ms: Longest duration
        throughput: Executions started during the last minute
        error_rate: Failure percentage
        last_execution_time: When the latest execution finished
    """

    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: float = 0.0
    average_duration_ms: float = 0.0
    min_duration_ms: float = float("inf")
    max_duration_ms: float = 0.0
    throughput: int = 0
    error_rate: float = 0.0
    last_execution_time: Optional[datetime] = None


class FlowStats(BaseModel):
    """Manager-wide execution statistics."""

    total_flows: int = 0
    active_executions: int = 0
    completed_executions: int = 0
    failed_executions: int = 0
    average_execution_time_ms: float = 0.0
    success_rate: float = 0.0
    error_rate: float = 0.0
    throughput: int = 0


class HealthStatus(BaseModel):
    """Manager health report."""

    healthy: bool
    details: dict[str, Any] = Field(default_factory=dict)


class FlowQueryOptions(BaseModel):
    """Filter, sort and pagination options for execution history.

    Attributes:
        flow_id: Only executions of this flow
        status: Only executions with one of these statuses
        user_id: Matches ``metadata.user_id``
        session_id: Matches ``metadata.session_id``
        executed_after: Start time lower bound (inclusive)
        executed_before: Start time upper bound (inclusive)
        sort_by: Sort key
        sort_order: Sort direction
        offset: Results to skip
        limit: Maximum results
    """

    flow_id: Optional[str] = None
    status: Optional[list[FlowStatus]] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    executed_after: Optional[datetime] = None
    executed_before: Optional[datetime] = None
    sort_by: Literal["executed_at", "duration"] = "executed_at"
    sort_order: Literal["asc", "desc"] = "desc"
    offset: int = Field(default=0, ge=0)
    limit: Optional[int] = Field(default=None, ge=0)


class FlowBackup(BaseModel):
    """Serializable snapshot of flow definitions and execution history."""

    version: str = "1.0.0"
    timestamp: datetime = Field(default_factory=datetime.now)
    flows: list[FlowConfig] = Field(default_factory=list)
    executions: list[FlowExecutionResult] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class FlowRestoreOptions(BaseModel):
    """Restore behaviour.

    Attributes:
        overwrite: Replace already-registered flows with the same id
        restore_executions: Also restore execution history
        validate_flows: Skip flows that fail validation
        backup_current: Snapshot the current state before restoring
    """

    overwrite: bool = False
    restore_executions: bool = True
    validate_flows: bool = True
    backup_current: bool = True


class FlowValidationResult(BaseModel):
    """Aggregated validation outcome."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


FlowContext.model_rebuild()
