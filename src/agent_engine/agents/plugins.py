"""Agent plugins.

A Plugin observes an agent's lifecycle through a fixed set of async hooks.
Subclasses override only the hooks they need; agents call every hook
directly and log, then ignore, any hook failure.
"""

from typing import TYPE_CHECKING, Any

from ..models import Content, FunctionCall, FunctionResponse, InvocationContext

if TYPE_CHECKING:
    from .base import BaseAgent


class Plugin:
    """Base plugin with no-op hooks.

    Attributes:
        name: Plugin name used in log messages
    """

    name: str = "plugin"

    async def initialize(self, agent: "BaseAgent") -> None:
        """Called once from ``BaseAgent.initialize``."""

    async def before_agent_run(self, agent: "BaseAgent", message: Content, context: InvocationContext) -> None:
        """Called after AGENT_START, before the first model call."""

    async def after_agent_run(self, agent: "BaseAgent", response: Content, context: InvocationContext) -> None:
        """Called before AGENT_END with the final response."""

    async def before_tool_call(self, call: FunctionCall, context: InvocationContext) -> None:
        """Called before every tool execution."""

    async def after_tool_call(self, call: FunctionCall, response: FunctionResponse, context: InvocationContext) -> None:
        """Called after every tool execution, including failed ones."""

    async def on_error(self, error: BaseException, context: InvocationContext, **details: Any) -> None:
        """Called when a tool call or the agent run fails."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
