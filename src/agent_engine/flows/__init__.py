"""Flow layer: declarative step graphs, execution and management."""

from .conditions import evaluate_condition, evaluate_conditions
from .constants import BUILT_IN_STEP_TYPES, DEFAULT_RETRY_CONFIG, FlowErrorCode, StepType
from .executor import FlowExecutor, build_dependency_graph, get_execution_batches, get_execution_order
from .flow import Flow
from .hooks import FlowLifecycleHooks
from .manager import FlowManager
from .metrics import FlowMetricsTracker
from .steps import (
    AgentStepExecutor,
    AssignStepExecutor,
    ConditionStepExecutor,
    DelayStepExecutor,
    FunctionStepExecutor,
    LogStepExecutor,
    StepExecutor,
    StepExecutorRegistry,
    SubflowStepExecutor,
    ToolStepExecutor,
    TransformStepExecutor,
)
from .storage import FlowStorage, InMemoryFlowStorage
from .validation import detect_circular_dependencies, validate_flow_config

__all__ = [
    # Flows
    "Flow",
    "FlowManager",
    "FlowExecutor",
    "FlowLifecycleHooks",
    "FlowMetricsTracker",
    # Graph
    "build_dependency_graph",
    "get_execution_order",
    "get_execution_batches",
    # Validation
    "validate_flow_config",
    "detect_circular_dependencies",
    # Conditions
    "evaluate_condition",
    "evaluate_conditions",
    # Step executors
    "StepExecutor",
    "StepExecutorRegistry",
    "AssignStepExecutor",
    "LogStepExecutor",
    "DelayStepExecutor",
    "ConditionStepExecutor",
    "TransformStepExecutor",
    "FunctionStepExecutor",
    "ToolStepExecutor",
    "AgentStepExecutor",
    "SubflowStepExecutor",
    # Storage
    "FlowStorage",
    "InMemoryFlowStorage",
    # Constants
    "StepType",
    "FlowErrorCode",
    "BUILT_IN_STEP_TYPES",
    "DEFAULT_RETRY_CONFIG",
]
