"""Loop agent: re-invokes one wrapped agent."""

import inspect
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional, Union

from ..errors import ConfigurationError
from ..models import (
    Content,
    Event,
    InvocationContext,
    IterationEndEvent,
    IterationStartEvent,
    SessionState,
)
from ..utils import get_logger
from .base import AgentRun, BaseAgent, final_response
from .plugins import Plugin

logger = get_logger(__name__)

NO_RESPONSE_TEXT = "No response generated"

LoopCondition = Callable[[int, Optional[Content], InvocationContext], Union[bool, Awaitable[bool]]]
LoopTransform = Callable[[int, Optional[Content], Content], Union[Content, Awaitable[Content]]]


class LoopAgent(BaseAgent):
    """Runs one agent up to ``max_iterations`` times.

    Before each iteration the optional ``condition(iteration, last_response,
    context)`` decides whether to continue. The optional
    ``transform(iteration, last_response, original_message)`` computes the
    input of each iteration; without it every iteration receives the
    original message. Both callables may be sync or async. Iterations are
    numbered from 0.
    """

    def __init__(
        self,
        name: str,
        agent: BaseAgent,
        description: str = "",
        max_iterations: int = 10,
        condition: Optional[LoopCondition] = None,
        transform: Optional[LoopTransform] = None,
        plugins: Optional[Iterable[Plugin]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        if max_iterations < 0:
            raise ConfigurationError(f"max_iterations must not be negative, got {max_iterations}")
        super().__init__(name=name, description=description, plugins=plugins, metadata=metadata, sub_agents=[agent])
        self.agent = agent
        self.max_iterations = max_iterations
        self.condition = condition
        self.transform = transform

    async def _run_impl(
        self,
        message: Content,
        context: InvocationContext,
        session_state: SessionState,
        outcome: AgentRun,
    ) -> AsyncIterator[Event]:
        last_response: Optional[Content] = None
        current_message = message

        for iteration in range(self.max_iterations):
            if self.condition is not None:
                should_continue = await _resolve(self.condition(iteration, last_response, context))
                if not should_continue:
                    logger.debug(f"Loop {self.name}: condition stopped the loop at iteration {iteration}")
                    break

            if self.transform is not None:
                current_message = await _resolve(self.transform(iteration, last_response, message))

            yield IterationStartEvent(
                context=context,
                agent_name=self.name,
                iteration=iteration,
                data={"message": current_message.model_dump(mode="json")},
            )

            events: list[Event] = []
            async for event in self.agent.run(current_message, context, session_state):
                events.append(event)
                yield event
            last_response = final_response(events, self.agent.name)

            yield IterationEndEvent(
                context=context,
                agent_name=self.name,
                iteration=iteration,
                data={"response": last_response.model_dump(mode="json")},
            )

        outcome.response = last_response or Content.from_text(NO_RESPONSE_TEXT, role="assistant")

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info.update(
            {
                "max_iterations": self.max_iterations,
                "has_condition": self.condition is not None,
                "has_transform": self.transform is not None,
            }
        )
        return info


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
