"""Agent Engine.

An execution engine that composes LLM-driven and deterministic agents into
event-streaming pipelines, plus a declarative flow layer with validated step
graphs, retries, bounded concurrency and metrics.
"""

from .agents import BaseAgent, LlmAgent, LoopAgent, ModelBackend, OpenAIModel, ParallelAgent, Plugin, SequentialAgent
from .config import (
    FlowExecutorConfig,
    FlowManagerConfig,
    LLMConfig,
    RunnerConfig,
    load_flow_config,
    load_manager_config,
    load_runner_config,
)
from .errors import (
    AgentEngineError,
    ConfigurationError,
    ModelInvocationError,
    NotFoundError,
    ResourceLimitError,
    ToolExecutionError,
    ValidationError,
)
from .flows import Flow, FlowExecutor, FlowManager
from .models import (
    Content,
    Event,
    EventType,
    FlowConfig,
    FlowContext,
    FlowExecutionResult,
    FlowStatus,
    FlowStep,
    InvocationContext,
    Part,
    SessionState,
)
from .runners import Runner, RunnerResult
from .tools import BaseTool, FunctionTool, ToolResult

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Core entities
    "Content",
    "Part",
    "Event",
    "EventType",
    "InvocationContext",
    "SessionState",
    # Agents
    "BaseAgent",
    "LlmAgent",
    "SequentialAgent",
    "ParallelAgent",
    "LoopAgent",
    "ModelBackend",
    "OpenAIModel",
    "Plugin",
    # Tools
    "BaseTool",
    "FunctionTool",
    "ToolResult",
    # Runner
    "Runner",
    "RunnerResult",
    # Flows
    "FlowConfig",
    "FlowStep",
    "FlowContext",
    "FlowExecutionResult",
    "FlowStatus",
    "Flow",
    "FlowExecutor",
    "FlowManager",
    # Configuration
    "LLMConfig",
    "RunnerConfig",
    "FlowExecutorConfig",
    "FlowManagerConfig",
    "load_flow_config",
    "load_manager_config",
    "load_runner_config",
    # Errors
    "AgentEngineError",
    "ConfigurationError",
    "ToolExecutionError",
    "ModelInvocationError",
    "ResourceLimitError",
    "ValidationError",
    "NotFoundError",
]
