"""LLM agent.

Drives a model through a bounded reasoning loop. Per invocation the agent
moves between three states: awaiting the model, resolving tool calls, done.
Tool calls of one model response are executed sequentially in the order
the model returned them.
"""

from typing import Any, AsyncIterator, Iterable, Optional

from ..errors import ConfigurationError
from ..models import (
    Content,
    Event,
    FunctionCall,
    InvocationContext,
    ModelRequest,
    ModelRequestEvent,
    ModelResponseEvent,
    Part,
    SessionState,
    ToolCallEvent,
    ToolResponseEvent,
)
from ..tools import BaseTool, PendingResults
from ..utils import get_logger
from .base import AgentRun, BaseAgent
from .model import ModelBackend
from .plugins import Plugin

logger = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class LlmAgent(BaseAgent):
    """Agent that uses a language model to answer and call tools.

    Attributes:
        model: Model backend
        system_instruction: System prompt (defaults to ``instruction``)
        generation_config: Sampling parameters passed to the backend
        max_iterations: Maximum model calls per invocation
        use_session_history: Include prior session messages in requests
    """

    def __init__(
        self,
        name: str,
        model: ModelBackend,
        description: str = "",
        instruction: Optional[str] = None,
        system_instruction: Optional[str] = None,
        tools: Optional[Iterable[BaseTool]] = None,
        plugins: Optional[Iterable[Plugin]] = None,
        metadata: Optional[dict[str, Any]] = None,
        sub_agents: Optional[Iterable[BaseAgent]] = None,
        generation_config: Optional[dict[str, Any]] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        use_session_history: bool = True,
        pending_results: Optional[PendingResults] = None,
    ) -> None:
        super().__init__(
            name=name,
            description=description,
            instruction=instruction,
            tools=tools,
            plugins=plugins,
            metadata=metadata,
            sub_agents=sub_agents,
            pending_results=pending_results,
        )
        if max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be positive, got {max_iterations}")
        self.model = model
        self.system_instruction = system_instruction or instruction
        self.generation_config = dict(generation_config or {})
        self.max_iterations = max_iterations
        self.use_session_history = use_session_history

    async def _run_impl(
        self,
        message: Content,
        context: InvocationContext,
        session_state: SessionState,
        outcome: AgentRun,
    ) -> AsyncIterator[Event]:
        messages = self._build_messages(message, session_state)

        # A continuation message from the Runner still carries unresolved calls.
        pending_calls = message.function_calls if message.is_from_assistant() else []

        iteration = 0
        while True:
            for call in pending_calls:
                yield ToolCallEvent(context=context, agent_name=self.name, tool_call=call)
                tool_response = await self.execute_tool(call, context, session_state)
                yield ToolResponseEvent(context=context, agent_name=self.name, tool_call=call, response=tool_response)
                messages.append(Content(role="tool", parts=[Part.from_function_response(tool_response)]))

            iteration += 1
            logger.debug(f"Agent {self.name} iteration {iteration}/{self.max_iterations}")

            request = ModelRequest(
                model=self.model.model_name,
                messages=list(messages),
                tools=self._tool_registry.to_llm_list(),
                system_instruction=self.system_instruction,
                generation_config=self.generation_config,
            )
            yield ModelRequestEvent(context=context, agent_name=self.name, request=request)
            response = await self.model.generate(request)
            yield ModelResponseEvent(context=context, agent_name=self.name, response=response)

            final_response = self._assistant_message(response.content, response.tool_calls)
            messages.append(final_response)
            pending_calls = response.tool_calls

            if not pending_calls:
                break
            if iteration >= self.max_iterations:
                # Unresolved calls stay on the response so a Runner can continue.
                logger.warning(
                    f"Agent {self.name} reached max iterations ({self.max_iterations}) "
                    f"with {len(pending_calls)} unresolved tool call(s)"
                )
                break

        outcome.response = final_response

    def _build_messages(self, message: Content, session_state: SessionState) -> list[Content]:
        """Assemble the conversation sent to the model.

        The system instruction travels separately on the request.
        """
        history = list(session_state.messages) if self.use_session_history else []
        if not history or history[-1] != message:
            history.append(message)
        return history

    @staticmethod
    def _assistant_message(content: Optional[Content], tool_calls: list[FunctionCall]) -> Content:
        parts = [part for part in content.parts if part.type != "function_call"] if content else []
        parts.extend(Part.from_function_call(call) for call in tool_calls)
        metadata = dict(content.metadata) if content else {}
        return Content(role="assistant", parts=parts, metadata=metadata)

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info.update(
            {
                "model": self.model.model_name,
                "max_iterations": self.max_iterations,
                "use_session_history": self.use_session_history,
            }
        )
        return info
