"""Agent event entities.

Every agent invocation produces an ordered stream of events. The stream of a
single invocation starts with AGENT_START and ends with exactly one terminal
AGENT_END or ERROR.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from .content import Content, FunctionCall, FunctionResponse
from .context import InvocationContext
from .llm import ModelRequest, ModelResponse


class EventType(str, Enum):
    """Kinds of agent events."""

    AGENT_START = "agent_start"
    AGENT_END = "agent_end"
    MODEL_REQUEST = "model_request"
    MODEL_RESPONSE = "model_response"
    TOOL_CALL = "tool_call"
    TOOL_RESPONSE = "tool_response"
    ITERATION_START = "iteration_start"
    ITERATION_END = "iteration_end"
    ERROR = "error"


class BaseEvent(BaseModel):
    """Fields shared by all events.

    Attributes:
        context: Invocation context of the emitting agent
        timestamp: Emission time
    """

    context: InvocationContext = Field(..., description="Invocation context")
    timestamp: datetime = Field(default_factory=datetime.now, description="Emission time")

    @property
    def is_terminal(self) -> bool:
        return False


class AgentStartEvent(BaseEvent):
    type: Literal[EventType.AGENT_START] = EventType.AGENT_START
    agent_name: str
    message: Content


class AgentEndEvent(BaseEvent):
    type: Literal[EventType.AGENT_END] = EventType.AGENT_END
    agent_name: str
    response: Content
    duration_ms: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return True


class ModelRequestEvent(BaseEvent):
    type: Literal[EventType.MODEL_REQUEST] = EventType.MODEL_REQUEST
    agent_name: str
    request: ModelRequest


class ModelResponseEvent(BaseEvent):
    type: Literal[EventType.MODEL_RESPONSE] = EventType.MODEL_RESPONSE
    agent_name: str
    response: ModelResponse


class ToolCallEvent(BaseEvent):
    type: Literal[EventType.TOOL_CALL] = EventType.TOOL_CALL
    agent_name: str
    tool_call: FunctionCall


class ToolResponseEvent(BaseEvent):
    type: Literal[EventType.TOOL_RESPONSE] = EventType.TOOL_RESPONSE
    agent_name: str
    tool_call: FunctionCall
    response: FunctionResponse


class IterationStartEvent(BaseEvent):
    type: Literal[EventType.ITERATION_START] = EventType.ITERATION_START
    agent_name: str
    iteration: int
    data: dict[str, Any] = Field(default_factory=dict)


class IterationEndEvent(BaseEvent):
    type: Literal[EventType.ITERATION_END] = EventType.ITERATION_END
    agent_name: str
    iteration: int
    data: dict[str, Any] = Field(default_factory=dict)


class ErrorEvent(BaseEvent):
    """Terminal failure of an invocation, or an absorbed sibling failure.

    Attributes:
        error: Error message
        error_type: Exception class name
        source: Name of the agent the failure is attributed to
    """

    type: Literal[EventType.ERROR] = EventType.ERROR
    error: str
    error_type: str = "Exception"
    source: Optional[str] = None

    @classmethod
    def from_exception(cls, error: BaseException, context: InvocationContext, source: str) -> "ErrorEvent":
        return cls(error=str(error), error_type=type(error).__name__, source=source, context=context)

    @property
    def is_terminal(self) -> bool:
        return True


Event = Annotated[
    Union[
        AgentStartEvent,
        AgentEndEvent,
        ModelRequestEvent,
        ModelResponseEvent,
        ToolCallEvent,
        ToolResponseEvent,
        IterationStartEvent,
        IterationEndEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]
