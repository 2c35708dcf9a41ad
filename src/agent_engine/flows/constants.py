"""Flow layer constants: defaults, validation rules and error codes."""

import re

from ..models.flow import RetryConfig

# Timeouts and delays, in milliseconds
FLOW_TIMEOUT_MS = 30 * 60 * 1000
STEP_TIMEOUT_MS = 5 * 60 * 1000
RETRY_DELAY_MS = 1000
MAX_RETRY_DELAY_MS = 60 * 1000

# Limits
MAX_CONCURRENT_EXECUTIONS = 10
MAX_CONCURRENT_STEPS = 5
MAX_RETRY_ATTEMPTS = 3
MAX_LOOP_ITERATIONS = 10
MAX_NESTING_DEPTH = 10

DEFAULT_RETRY_CONFIG = RetryConfig(
    max_retries=MAX_RETRY_ATTEMPTS,
    delay_ms=RETRY_DELAY_MS,
    backoff="exponential",
    max_delay_ms=MAX_RETRY_DELAY_MS,
)

# Validation rules
MIN_NAME_LENGTH = 1
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_TAGS = 20
MAX_TAG_LENGTH = 50
FLOW_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
STEP_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


class StepType:
    """Built-in step type tags."""

    TOOL = "tool"
    AGENT = "agent"
    CONDITION = "condition"
    ASSIGN = "assign"
    TRANSFORM = "transform"
    DELAY = "delay"
    LOG = "log"
    FUNCTION = "function"
    SUBFLOW = "subflow"


BUILT_IN_STEP_TYPES = frozenset(
    {
        StepType.TOOL,
        StepType.AGENT,
        StepType.CONDITION,
        StepType.ASSIGN,
        StepType.TRANSFORM,
        StepType.DELAY,
        StepType.LOG,
        StepType.FUNCTION,
        StepType.SUBFLOW,
    }
)


class FlowErrorCode:
    """Error codes attached to flow-layer errors."""

    FLOW_NOT_FOUND = "FLOW_NOT_FOUND"
    FLOW_VALIDATION_FAILED = "FLOW_VALIDATION_FAILED"
    FLOW_EXECUTION_FAILED = "FLOW_EXECUTION_FAILED"
    FLOW_TIMEOUT = "FLOW_TIMEOUT"
    FLOW_CANCELLED = "FLOW_CANCELLED"
    STEP_NOT_FOUND = "STEP_NOT_FOUND"
    STEP_VALIDATION_FAILED = "STEP_VALIDATION_FAILED"
    STEP_EXECUTION_FAILED = "STEP_EXECUTION_FAILED"
    STEP_TIMEOUT = "STEP_TIMEOUT"
    CONDITION_FAILED = "CONDITION_FAILED"
    DEPENDENCY_NOT_MET = "DEPENDENCY_NOT_MET"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    INVALID_CONFIG = "INVALID_CONFIG"
    RESOURCE_LIMIT_EXCEEDED = "RESOURCE_LIMIT_EXCEEDED"
    EXECUTION_NOT_FOUND = "EXECUTION_NOT_FOUND"
    STORAGE_ERROR = "STORAGE_ERROR"
