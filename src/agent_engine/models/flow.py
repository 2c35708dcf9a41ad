"""Flow definition entities.

A FlowConfig is a declarative graph of FlowSteps. Field types are kept
permissive on purpose: structural rules (id patterns, length bounds, retry
bounds, dependency resolution, acyclicity) are checked by the flow validator,
which collects every problem instead of stopping at the first.
"""

from enum import Enum
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class FlowExecutionMode(str, Enum):
    """How the steps of a flow are scheduled."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"
    LOOP = "loop"


class FlowPriority(str, Enum):
    """Flow priority, used for filtering and sorting."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class FlowCondition(BaseModel):
    """Condition gating a step.

    Attributes:
        type: Comparison kind
        variable: Dotted path of the value to check
        value: Expected value
        condition: Predicate over the FlowContext (type=custom)
        operator: How this condition combines with the previous one
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["equals", "not_equals", "greater_than", "less_than", "contains", "exists", "custom"] = Field(
        ..., description="Comparison kind"
    )
    variable: str = Field(default="", description="Dotted path of the checked value")
    value: Any = Field(None, description="Expected value")
    condition: Optional[Callable[[Any], bool]] = Field(None, exclude=True, description="Custom predicate")
    operator: Literal["and", "or"] = Field(default="and", description="Combination with previous condition")


class RetryConfig(BaseModel):
    """Retry policy of a step or flow.

    Attributes:
        max_retries: Retries after the first attempt
        delay_ms: Delay before the first retry
        backoff: Delay growth strategy
        max_delay_ms: Upper bound for the delay
        retry_on: Error class names or codes worth retrying (all when empty)
    """

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, description="Retries after the first attempt")
    delay_ms: int = Field(default=1000, description="Delay before the first retry")
    backoff: Literal["fixed", "linear", "exponential"] = Field(default="exponential", description="Backoff")
    max_delay_ms: Optional[int] = Field(default=60_000, description="Maximum delay")
    retry_on: list[str] = Field(default_factory=list, description="Retryable error names or codes")


class FlowStep(BaseModel):
    """A unit of work inside a flow.

    Attributes:
        id: Step identifier, unique within its flow
        name: Display name
        type: Open step type tag, resolved to an executor at run time
        config: Executor-specific configuration
        inputs: Executor parameter name -> dotted path into the flow context
        outputs: Variable name -> key of the step output
        conditions: Conditions gating execution
        retry: Retry policy
        timeout_ms: Execution timeout
        dependencies: Ids of steps that must finish first
        optional: Whether failure of this step fails the flow
        metadata: Additional data
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Step identifier")
    name: str = Field(default="", description="Display name")
    type: str = Field(default="", description="Step type tag")
    config: Optional[dict[str, Any]] = Field(default_factory=dict, description="Executor configuration")
    inputs: Optional[dict[str, str]] = Field(None, description="Input mapping")
    outputs: Optional[dict[str, str]] = Field(None, description="Output mapping")
    conditions: list[FlowCondition] = Field(default_factory=list, description="Gating conditions")
    retry: Optional[RetryConfig] = Field(None, description="Retry policy")
    timeout_ms: Optional[int] = Field(None, description="Execution timeout in milliseconds")
    dependencies: list[str] = Field(default_factory=list, description="Prerequisite step ids")
    optional: bool = Field(default=False, description="Failure does not fail the flow")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional data")


class FlowConfig(BaseModel):
    """Declarative flow definition. Immutable once built.

    Attributes:
        id: Flow identifier
        name: Display name
        description: Free text
        version: Definition version
        steps: Ordered steps
        mode: Scheduling mode
        priority: Priority
        timeout_ms: Whole-flow timeout
        retry: Default retry policy for steps without their own
        metadata: Additional data
        tags: Labels
        variables: Initial variables of every execution
        input_schema: Optional input JSON schema
        output_schema: Optional output JSON schema
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Flow identifier")
    name: str = Field(default="", description="Display name")
    description: Optional[str] = Field(None, description="Description")
    version: str = Field(default="", description="Definition version")
    steps: list[FlowStep] = Field(default_factory=list, description="Ordered steps")
    mode: FlowExecutionMode = Field(default=FlowExecutionMode.SEQUENTIAL, description="Scheduling mode")
    priority: FlowPriority = Field(default=FlowPriority.NORMAL, description="Priority")
    timeout_ms: Optional[int] = Field(None, description="Flow timeout in milliseconds")
    retry: Optional[RetryConfig] = Field(None, description="Default step retry policy")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional data")
    tags: list[str] = Field(default_factory=list, description="Labels")
    variables: dict[str, Any] = Field(default_factory=dict, description="Initial variables")
    input_schema: Optional[dict[str, Any]] = Field(None, description="Input JSON schema")
    output_schema: Optional[dict[str, Any]] = Field(None, description="Output JSON schema")

    def get_step(self, step_id: str) -> Optional[FlowStep]:
        """Get a step by id.

        Args:
            step_id: Step identifier

        Returns:
            The step, or None if not found
        """
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]

    def structural_dump(self) -> dict[str, Any]:
        """JSON-compatible representation used for backups and comparison."""
        return self.model_dump(mode="json")
