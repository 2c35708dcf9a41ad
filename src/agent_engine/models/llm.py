"""Model request/response entities exchanged with a model backend."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from .content import Content, FunctionCall


class ModelRequest(BaseModel):
    """A single call to a model backend.

    Attributes:
        model: Model identifier
        messages: Conversation sent to the model
        tools: Tool definitions in function-calling format
        tool_choice: Tool selection policy
        system_instruction: System instruction, when not already in messages
        generation_config: Sampling parameters (temperature, max_tokens, ...)
    """

    model: str = Field(..., description="Model identifier")
    messages: list[Content] = Field(default_factory=list, description="Conversation")
    tools: list[dict[str, Any]] = Field(default_factory=list, description="Tool definitions")
    tool_choice: Literal["auto", "none", "required"] = Field(default="auto", description="Tool selection policy")
    system_instruction: Optional[str] = Field(None, description="System instruction")
    generation_config: dict[str, Any] = Field(default_factory=dict, description="Sampling parameters")


class ModelResponse(BaseModel):
    """Generated content returned by a model backend.

    Attributes:
        content: Assistant message, if any text was produced
        tool_calls: Tool invocations requested by the model, in order
        usage: Token usage counters
        finish_reason: Backend-reported stop reason
    """

    content: Optional[Content] = Field(None, description="Assistant message")
    tool_calls: list[FunctionCall] = Field(default_factory=list, description="Requested tool calls")
    usage: dict[str, int] = Field(default_factory=dict, description="Token usage")
    finish_reason: Optional[str] = Field(None, description="Stop reason")

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)
