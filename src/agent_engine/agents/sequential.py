"""Sequential agent: runs sub-agents one after another."""

from typing import Any, AsyncIterator, Iterable, Optional

from ..errors import ConfigurationError
from ..models import Content, Event, InvocationContext, SessionState
from ..utils import get_logger
from .base import AgentRun, BaseAgent, final_response
from .plugins import Plugin

logger = get_logger(__name__)


class SequentialAgent(BaseAgent):
    """Runs agents in declaration order.

    Every sub-agent event is re-emitted verbatim, in emission order. With
    ``pass_results`` the final response of agent *i* becomes the input of
    agent *i+1*; otherwise every agent receives the original message. The
    combined response holds the parts of each sub-agent response, in order.
    """

    def __init__(
        self,
        name: str,
        agents: Iterable[BaseAgent],
        description: str = "",
        pass_results: bool = True,
        plugins: Optional[Iterable[Plugin]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        agents = tuple(agents)
        if not agents:
            raise ConfigurationError(f"SequentialAgent {name} requires at least one agent")
        super().__init__(name=name, description=description, plugins=plugins, metadata=metadata, sub_agents=agents)
        self.pass_results = pass_results

    async def _run_impl(
        self,
        message: Content,
        context: InvocationContext,
        session_state: SessionState,
        outcome: AgentRun,
    ) -> AsyncIterator[Event]:
        current_input = message
        parts = []

        for index, agent in enumerate(self.sub_agents):
            logger.debug(f"Sequential {self.name}: running {agent.name} ({index + 1}/{len(self.sub_agents)})")
            events: list[Event] = []
            async for event in agent.run(current_input, context, session_state):
                events.append(event)
                yield event

            response = final_response(events, agent.name)
            parts.extend(response.parts)
            if self.pass_results:
                current_input = response

        outcome.response = Content(role="assistant", parts=parts)

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info["pass_results"] = self.pass_results
        return info
