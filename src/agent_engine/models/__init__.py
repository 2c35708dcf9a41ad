"""Data models for the agent engine."""

from .content import Content, FunctionCall, FunctionResponse, Part, Role
from .context import InvocationContext
from .events import (
    AgentEndEvent,
    AgentStartEvent,
    BaseEvent,
    ErrorEvent,
    Event,
    EventType,
    IterationEndEvent,
    IterationStartEvent,
    ModelRequestEvent,
    ModelResponseEvent,
    ToolCallEvent,
    ToolResponseEvent,
)
from .execution import (
    FlowBackup,
    FlowContext,
    FlowEvent,
    FlowEventType,
    FlowExecutionResult,
    FlowMetrics,
    FlowQueryOptions,
    FlowRestoreOptions,
    FlowStats,
    FlowStatus,
    FlowStepResult,
    FlowValidationResult,
    HealthStatus,
    StepStatus,
)
from .flow import FlowCondition, FlowConfig, FlowExecutionMode, FlowPriority, FlowStep, RetryConfig
from .llm import ModelRequest, ModelResponse
from .session import SessionState

__all__ = [
    # Content
    "Role",
    "Part",
    "Content",
    "FunctionCall",
    "FunctionResponse",
    # Context and session
    "InvocationContext",
    "SessionState",
    # Model exchange
    "ModelRequest",
    "ModelResponse",
    # Events
    "Event",
    "EventType",
    "BaseEvent",
    "AgentStartEvent",
    "AgentEndEvent",
    "ModelRequestEvent",
    "ModelResponseEvent",
    "ToolCallEvent",
    "ToolResponseEvent",
    "IterationStartEvent",
    "IterationEndEvent",
    "ErrorEvent",
    # Flow definitions
    "FlowConfig",
    "FlowStep",
    "FlowCondition",
    "RetryConfig",
    "FlowExecutionMode",
    "FlowPriority",
    # Flow execution
    "FlowContext",
    "FlowStatus",
    "StepStatus",
    "FlowStepResult",
    "FlowExecutionResult",
    "FlowEvent",
    "FlowEventType",
    "FlowMetrics",
    "FlowStats",
    "HealthStatus",
    "FlowQueryOptions",
    "FlowBackup",
    "FlowRestoreOptions",
    "FlowValidationResult",
]
