"""Parallel agent: runs sub-agents concurrently on the same input."""

import asyncio
from typing import Any, AsyncIterator, Iterable, Optional

from ..errors import ConfigurationError
from ..models import Content, ErrorEvent, Event, InvocationContext, SessionState
from ..utils import get_logger
from .base import AgentRun, BaseAgent, final_response
from .plugins import Plugin

logger = get_logger(__name__)


class _SubRun:
    """Events and outcome of one sub-agent run."""

    def __init__(self, agent: BaseAgent) -> None:
        self.agent = agent
        self.events: list[Event] = []
        self.response: Optional[Content] = None
        self.error: Optional[Exception] = None


class ParallelAgent(BaseAgent):
    """Runs all agents concurrently on the same input.

    ``wait_for_all=True`` joins every run: one failure fails the whole
    invocation, the remaining runs are cancelled. On success the events of
    each sub-agent are replayed grouped in registration order.

    ``wait_for_all=False`` isolates failures: each sub-agent's events are
    emitted as it settles (completion order), a failing sub-agent
    contributes only its ERROR event and the invocation still succeeds.

    With ``combine_results`` the response concatenates the parts of all
    successful responses in registration order; otherwise the first
    successful response is returned.
    """

    def __init__(
        self,
        name: str,
        agents: Iterable[BaseAgent],
        description: str = "",
        wait_for_all: bool = True,
        combine_results: bool = True,
        plugins: Optional[Iterable[Plugin]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        agents = tuple(agents)
        if not agents:
            raise ConfigurationError(f"ParallelAgent {name} requires at least one agent")
        super().__init__(name=name, description=description, plugins=plugins, metadata=metadata, sub_agents=agents)
        self.wait_for_all = wait_for_all
        self.combine_results = combine_results

    async def _run_impl(
        self,
        message: Content,
        context: InvocationContext,
        session_state: SessionState,
        outcome: AgentRun,
    ) -> AsyncIterator[Event]:
        runs = [_SubRun(agent) for agent in self.sub_agents]

        if self.wait_for_all:
            await self._join_all(runs, message, context, session_state)
            for run in runs:
                for event in run.events:
                    yield event
        else:
            tasks = [
                asyncio.create_task(self._settle(run, message, context, session_state))
                for run in runs
            ]
            try:
                for next_done in asyncio.as_completed(tasks):
                    run = await next_done
                    if run.error is None:
                        for event in run.events:
                            yield event
                        continue
                    logger.warning(f"Parallel {self.name}: sub-agent {run.agent.name} failed: {run.error}")
                    reported = [event for event in run.events if isinstance(event, ErrorEvent)]
                    yield reported[-1] if reported else ErrorEvent.from_exception(
                        run.error, context, source=run.agent.name
                    )
            finally:
                for task in tasks:
                    task.cancel()

        outcome.response = self._combine([run.response for run in runs if run.response is not None])

    async def _join_all(
        self,
        runs: list[_SubRun],
        message: Content,
        context: InvocationContext,
        session_state: SessionState,
    ) -> None:
        tasks = [asyncio.create_task(self._drain(run, message, context, session_state)) for run in runs]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    @staticmethod
    async def _drain(
        run: _SubRun,
        message: Content,
        context: InvocationContext,
        session_state: SessionState,
    ) -> _SubRun:
        async for event in run.agent.run(message, context, session_state):
            run.events.append(event)
        run.response = final_response(run.events, run.agent.name)
        return run

    @classmethod
    async def _settle(
        cls,
        run: _SubRun,
        message: Content,
        context: InvocationContext,
        session_state: SessionState,
    ) -> _SubRun:
        try:
            await cls._drain(run, message, context, session_state)
        except Exception as e:
            run.error = e
        return run

    def _combine(self, responses: list[Content]) -> Content:
        if not responses:
            return Content.empty()
        if not self.combine_results:
            return responses[0]
        return Content(role="assistant", parts=[part for response in responses for part in response.parts])

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info.update({"wait_for_all": self.wait_for_all, "combine_results": self.combine_results})
        return info
