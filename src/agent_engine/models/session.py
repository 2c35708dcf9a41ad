"""Session state entity.

SessionState holds the conversation history and metadata carried across
Runner iterations.
"""

from typing import Any

from pydantic import BaseModel, Field

from .content import Content


class SessionState(BaseModel):
    """Conversation history plus metadata.

    Mutating helpers return new instances so a caller's state is never
    changed behind its back.

    Attributes:
        messages: Ordered conversation history
        metadata: Additional session data
    """

    messages: list[Content] = Field(default_factory=list, description="Conversation history")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Session metadata")

    def add_message(self, message: Content) -> "SessionState":
        """Append a message.

        Args:
            message: The message to add

        Returns:
            Updated state
        """
        return self.model_copy(update={"messages": [*self.messages, message]})

    def trimmed(self, max_size: int) -> "SessionState":
        """Drop the oldest messages beyond ``max_size``.

        Args:
            max_size: Maximum number of retained messages

        Returns:
            Updated state (self if nothing was dropped)
        """
        if max_size < 0 or len(self.messages) <= max_size:
            return self
        return self.model_copy(update={"messages": self.messages[len(self.messages) - max_size :]})

    def copy_state(self) -> "SessionState":
        """Deep copy, used when a Runner takes ownership of a caller's state."""
        return self.model_copy(deep=True)

    def update_metadata(self, **metadata: Any) -> "SessionState":
        return self.model_copy(update={"metadata": {**self.metadata, **metadata}})

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def last_message(self) -> Content | None:
        return self.messages[-1] if self.messages else None
