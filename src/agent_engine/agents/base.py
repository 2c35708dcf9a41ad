"""Base agent implementation.

Every agent exposes ``run(message, context, session_state)``, an async
generator of Events. The stream of one invocation starts with AGENT_START
and ends with exactly one AGENT_END or ERROR. Subclasses implement
``_run_impl``, which yields the events in between and records the final
response on the AgentRun it is given.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional

from ..errors import ConfigurationError, ToolExecutionError
from ..models import (
    AgentEndEvent,
    AgentStartEvent,
    Content,
    ErrorEvent,
    Event,
    FunctionCall,
    FunctionResponse,
    InvocationContext,
    SessionState,
)
from ..tools import BaseTool, PendingResults, ToolContext, ToolRegistry
from ..utils import get_logger
from .plugins import Plugin

logger = get_logger(__name__)


class AgentRun:
    """Mutable outcome of one ``_run_impl`` call.

    Attributes:
        response: Final response, set by the implementation
    """

    def __init__(self) -> None:
        self.response: Optional[Content] = None


class BaseAgent(ABC):
    """Abstract base class for agents.

    Attributes:
        name: Agent name
        description: Human-readable description
        instruction: Prompt metadata, opaque to the engine
        tools: Tools available to the agent (unique names)
        plugins: Lifecycle hook implementations
        metadata: Additional data
        sub_agents: Nested agents
        parent_agent: Agent this one is nested in, if any
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        instruction: Optional[str] = None,
        tools: Optional[Iterable[BaseTool]] = None,
        plugins: Optional[Iterable[Plugin]] = None,
        metadata: Optional[dict[str, Any]] = None,
        sub_agents: Optional[Iterable["BaseAgent"]] = None,
        pending_results: Optional[PendingResults] = None,
    ) -> None:
        """Initialize the agent.

        Raises:
            ConfigurationError: If the name is empty or tool names collide
        """
        if not name or not name.strip():
            raise ConfigurationError("Agent name is required")

        self.name = name
        self.description = description
        self.instruction = instruction
        self._tool_registry = ToolRegistry(tools)
        self.plugins: tuple[Plugin, ...] = tuple(plugins or ())
        self.metadata = dict(metadata or {})
        self.sub_agents: tuple[BaseAgent, ...] = tuple(sub_agents or ())
        self.parent_agent: Optional[BaseAgent] = None
        self.pending_results = pending_results or PendingResults()

        for sub_agent in self.sub_agents:
            sub_agent.parent_agent = self

    @property
    def tools(self) -> list[BaseTool]:
        return self._tool_registry.list_all()

    @property
    def root_agent(self) -> "BaseAgent":
        agent = self
        while agent.parent_agent is not None:
            agent = agent.parent_agent
        return agent

    def find_agent(self, name: str) -> Optional["BaseAgent"]:
        """Find this agent or a nested sub-agent by name (depth-first).

        Args:
            name: Agent name

        Returns:
            The agent, or None if not found
        """
        if self.name == name:
            return self
        for sub_agent in self.sub_agents:
            found = sub_agent.find_agent(name)
            if found is not None:
                return found
        return None

    def get_tool(self, name: str) -> Optional[BaseTool]:
        return self._tool_registry.get(name)

    async def initialize(self) -> None:
        """Initialize plugins and sub-agents. Plugin failures are logged."""
        logger.info(f"Initializing agent: {self.name}")
        for plugin in self.plugins:
            try:
                await plugin.initialize(self)
                logger.debug(f"Plugin {plugin.name} initialized")
            except Exception as e:
                logger.error(f"Failed to initialize plugin {plugin.name}: {e}")
        for sub_agent in self.sub_agents:
            await sub_agent.initialize()

    def get_info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": type(self).__name__,
            "description": self.description,
            "instruction": self.instruction,
            "tools": self._tool_registry.names(),
            "plugins": [plugin.name for plugin in self.plugins],
            "sub_agents": [sub_agent.name for sub_agent in self.sub_agents],
            "metadata": self.metadata,
        }

    async def run(
        self,
        message: Content,
        context: InvocationContext,
        session_state: Optional[SessionState] = None,
    ) -> AsyncIterator[Event]:
        """Run the agent.

        Args:
            message: Input message
            context: Invocation context
            session_state: Conversation state visible to the agent

        Yields:
            Events, from AGENT_START to the terminal AGENT_END or ERROR

        Raises:
            Exception: Any uncaught failure, after the ERROR event is yielded
        """
        context = context.for_agent(self.name)
        session_state = session_state if session_state is not None else SessionState()
        started = time.perf_counter()

        yield AgentStartEvent(context=context, agent_name=self.name, message=message)

        outcome = AgentRun()
        try:
            await self._notify_plugins("before_agent_run", lambda p: p.before_agent_run(self, message, context))
            async for event in self._run_impl(message, context, session_state, outcome):
                yield event
            response = outcome.response if outcome.response is not None else Content.empty()
            await self._notify_plugins("after_agent_run", lambda p: p.after_agent_run(self, response, context))
        except Exception as e:
            logger.error(f"Agent {self.name} failed: {e}")
            await self._notify_plugins("on_error", lambda p: p.on_error(e, context, agent=self.name))
            yield ErrorEvent.from_exception(e, context, source=self.name)
            raise

        yield AgentEndEvent(
            context=context,
            agent_name=self.name,
            response=response,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    @abstractmethod
    def _run_impl(
        self,
        message: Content,
        context: InvocationContext,
        session_state: SessionState,
        outcome: AgentRun,
    ) -> AsyncIterator[Event]:
        """Yield the events of one invocation and set ``outcome.response``."""

    async def execute_tool(
        self,
        call: FunctionCall,
        context: InvocationContext,
        session_state: Optional[SessionState] = None,
    ) -> FunctionResponse:
        """Execute one tool call. Never raises.

        A missing tool or a failing call yields an error-tagged response.
        Plugin hooks run around the call.

        Args:
            call: Tool call requested by the model
            context: Invocation context
            session_state: Session state handed to the tool

        Returns:
            FunctionResponse for the call
        """
        tool = self.get_tool(call.name)
        if tool is None:
            logger.warning(f"Agent {self.name}: tool not found: {call.name}")
            error = ToolExecutionError(f"Tool '{call.name}' not found", details={"tool": call.name})
            await self._notify_plugins("on_error", lambda p: p.on_error(error, context, tool_call=call))
            return FunctionResponse(name=call.name, id=call.id, error=error.message)

        await self._notify_plugins("before_tool_call", lambda p: p.before_tool_call(call, context))

        tool_context = ToolContext(
            context=context,
            session_state=session_state or SessionState(),
            call_id=call.id,
            pending_results=self.pending_results,
        )
        try:
            result = await tool.call(call.arguments, tool_context)
            response = FunctionResponse(
                name=call.name,
                id=call.id,
                content=result.to_content(),
                pending=result.is_pending,
            )
        except Exception as e:
            logger.error(f"Tool execution error: {call.name} - {e}")
            await self._notify_plugins("on_error", lambda p: p.on_error(e, context, tool_call=call))
            response = FunctionResponse(name=call.name, id=call.id, error=str(e))

        await self._notify_plugins("after_tool_call", lambda p: p.after_tool_call(call, response, context))
        return response

    async def _notify_plugins(self, hook: str, invoke: Callable[[Plugin], Awaitable[None]]) -> None:
        """Run one hook on every plugin, logging and ignoring failures."""
        for plugin in self.plugins:
            try:
                await invoke(plugin)
            except Exception as e:
                logger.error(f"Plugin {plugin.name} hook {hook} failed: {e}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


async def collect_run(
    agent: BaseAgent,
    message: Content,
    context: InvocationContext,
    session_state: Optional[SessionState] = None,
) -> tuple[list[Event], Content]:
    """Drain an agent run.

    Args:
        agent: Agent to run
        message: Input message
        context: Invocation context
        session_state: Session state

    Returns:
        All events and the final response

    Raises:
        Exception: Whatever the run raises
    """
    events: list[Event] = []
    async for event in agent.run(message, context, session_state):
        events.append(event)
    return events, final_response(events, agent.name)


def final_response(events: list[Event], agent_name: Optional[str] = None) -> Content:
    """Return the response of the last AGENT_END event (of ``agent_name`` if given)."""
    for event in reversed(events):
        if isinstance(event, AgentEndEvent) and (agent_name is None or event.agent_name == agent_name):
            return event.response
    return Content.empty()
