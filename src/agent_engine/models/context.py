"""Invocation context passed to every agent and tool call."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils.id import generate_request_id


class InvocationContext(BaseModel):
    """Ambient identifiers and services for one invocation.

    Attributes:
        session_id: Conversation session identifier
        user_id: End user identifier
        app_name: Application name
        agent_name: Name of the agent being invoked
        request_id: Unique request identifier
        timestamp: Invocation start time
        metadata: Additional context
        memory_service: Optional memory-search service reference
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str = Field(..., description="Session identifier")
    user_id: str = Field(default="", description="User identifier")
    app_name: str = Field(default="", description="Application name")
    agent_name: str = Field(default="", description="Invoked agent name")
    request_id: str = Field(default_factory=generate_request_id, description="Request identifier")
    timestamp: datetime = Field(default_factory=datetime.now, description="Invocation start time")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional context")
    memory_service: Optional[Any] = Field(None, exclude=True, description="Memory-search service")

    def with_metadata(self, **metadata: Any) -> "InvocationContext":
        """Return a copy with extra metadata merged in.

        Args:
            **metadata: Keys to add or replace

        Returns:
            New InvocationContext
        """
        return self.model_copy(update={"metadata": {**self.metadata, **metadata}})

    def for_agent(self, agent_name: str) -> "InvocationContext":
        return self.model_copy(update={"agent_name": agent_name})
