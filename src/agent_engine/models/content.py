"""Message content entities.

A Content is one message (role + ordered parts). Parts carry text, media
references, or the function-call / function-response records exchanged
between a model and its tools.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ..utils.id import generate_call_id

Role = Literal["user", "assistant", "system", "tool"]


class FunctionCall(BaseModel):
    """Represents a tool invocation requested by the model.

    Attributes:
        name: Tool name
        arguments: Tool parameters
        id: Call ID used to correlate the response
    """

    name: str = Field(..., description="Tool name")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Tool parameters")
    id: str = Field(default_factory=generate_call_id, description="Call ID")


class FunctionResponse(BaseModel):
    """Represents the outcome of a tool invocation.

    Attributes:
        name: Tool name
        content: Rendered result handed back to the model
        id: Call ID of the originating FunctionCall
        error: Error message if the call failed
        pending: Whether the result will arrive out-of-band
    """

    name: str = Field(..., description="Tool name")
    content: str = Field(default="", description="Rendered result")
    id: Optional[str] = Field(None, description="Call ID")
    error: Optional[str] = Field(None, description="Error message if failed")
    pending: bool = Field(default=False, description="Result delivered out-of-band")

    @property
    def is_error(self) -> bool:
        return self.error is not None


class Part(BaseModel):
    """One ordered piece of a message.

    Attributes:
        type: Part kind
        text: Text payload (type=text)
        function_call: Tool call (type=function_call)
        function_response: Tool result (type=function_response)
        data: Media reference or other payload (type=image and friends)
    """

    type: Literal["text", "image", "audio", "video", "function_call", "function_response"] = Field(
        ..., description="Part kind"
    )
    text: Optional[str] = Field(None, description="Text payload")
    function_call: Optional[FunctionCall] = Field(None, description="Tool call")
    function_response: Optional[FunctionResponse] = Field(None, description="Tool result")
    data: dict[str, Any] = Field(default_factory=dict, description="Other payload")

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(type="text", text=text)

    @classmethod
    def from_function_call(cls, call: FunctionCall) -> "Part":
        return cls(type="function_call", function_call=call)

    @classmethod
    def from_function_response(cls, response: FunctionResponse) -> "Part":
        return cls(type="function_response", function_response=response)


class Content(BaseModel):
    """A message in a conversation.

    Attributes:
        role: Message role ("user", "assistant", "system", "tool")
        parts: Ordered content parts
        metadata: Additional context
    """

    role: Role = Field(..., description="Message role")
    parts: list[Part] = Field(default_factory=list, description="Ordered content parts")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional context")

    @classmethod
    def from_text(cls, text: str, role: Role = "user", **metadata: Any) -> "Content":
        """Build a single-part text message.

        Args:
            text: Message text
            role: Message role
            **metadata: Message metadata

        Returns:
            New Content
        """
        return cls(role=role, parts=[Part.from_text(text)], metadata=metadata)

    @classmethod
    def empty(cls, role: Role = "assistant") -> "Content":
        return cls(role=role, parts=[])

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text or "" for part in self.parts if part.type == "text")

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [part.function_call for part in self.parts if part.type == "function_call" and part.function_call]

    def has_function_calls(self) -> bool:
        """Check whether this message still requests tool invocations.

        Returns:
            True if any part is a function call
        """
        return any(part.type == "function_call" for part in self.parts)

    def is_from_assistant(self) -> bool:
        return self.role == "assistant"
