"""Runner: iteration driver around one root agent.

The Runner owns per-session conversation state, bounds the number of agent
invocations per run, enforces a wall-clock timeout and aggregates metrics.
Runs against the same session id are serialised.
"""

import asyncio
import time
from collections import defaultdict
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Hashable, Optional

from pydantic import BaseModel, Field

from ..agents.base import BaseAgent
from ..config.schemas import RunnerConfig
from ..errors import AgentEngineError, ConfigurationError, SessionError
from ..models import (
    AgentEndEvent,
    Content,
    ErrorEvent,
    Event,
    InvocationContext,
    ModelResponseEvent,
    Part,
    SessionState,
    ToolCallEvent,
    ToolResponseEvent,
)
from ..utils import ALL_EVENTS, ListenerRegistry, get_logger, wait_with_timeout

logger = get_logger(__name__)

NO_RESPONSE_TEXT = "No response generated"

RUN_START = "run_start"
ITERATION_START = "iteration_start"
ITERATION_COMPLETE = "iteration_complete"
ITERATION_ERROR = "iteration_error"
MAX_ITERATIONS_REACHED = "max_iterations_reached"
RUN_COMPLETE = "run_complete"
AGENT_EVENT = "agent_event"
RUN_ERROR = "error"


class RunnerMetrics(BaseModel):
    """Run metrics.

    Attributes:
        runs: Completed or failed runs
        execution_time_ms: Wall-clock time spent running
        iterations: Agent invocations
        tool_calls: Tool calls observed in agent events
        errors: Failed runs
        tokens_used: Tokens reported by the model backend
    """

    runs: int = 0
    execution_time_ms: float = 0.0
    iterations: int = 0
    tool_calls: int = 0
    errors: int = 0
    tokens_used: int = 0

    def merge(self, other: "RunnerMetrics") -> None:
        self.runs += other.runs
        self.execution_time_ms += other.execution_time_ms
        self.iterations += other.iterations
        self.tool_calls += other.tool_calls
        self.errors += other.errors
        self.tokens_used += other.tokens_used


class RunnerEvent(BaseModel):
    """Lifecycle notification of a Runner.

    Attributes:
        type: Lifecycle event name, or ``agent_event`` for a wrapped agent event
        session_id: Session the run belongs to
        iteration: Runner iteration (0-based), if applicable
        data: Event payload
        agent_event: Wrapped agent event
        timestamp: Emission time
    """

    type: str
    session_id: str
    iteration: Optional[int] = None
    data: dict[str, Any] = Field(default_factory=dict)
    agent_event: Optional[Event] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class RunnerResult(BaseModel):
    """Outcome of one run.

    Attributes:
        response: Final agent response
        session_state: Session state after the run
        iterations: Agent invocations performed
        metrics: Metrics of this run
        events: Lifecycle events of this run
    """

    response: Content
    session_state: SessionState
    iterations: int
    metrics: RunnerMetrics
    events: list[RunnerEvent] = Field(default_factory=list)


class _RunRecord:
    """Mutable state shared between a run and its driver."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.started = time.perf_counter()
        self.metrics = RunnerMetrics(runs=1)
        self.events: list[RunnerEvent] = []
        self.result: Optional[RunnerResult] = None


class Runner:
    """Drives a root agent across bounded iterations.

    Each run copies the incoming session state, appends the new message,
    trims history to ``max_history_size`` and invokes the agent with the
    latest message. The run continues while the latest response still
    carries unresolved function calls, up to ``max_iterations`` invocations.
    """

    def __init__(self, agent: BaseAgent, config: Optional[RunnerConfig] = None) -> None:
        """Initialize the runner.

        Args:
            agent: Root agent
            config: Runner settings

        Raises:
            ConfigurationError: If a bound is not positive
        """
        self.agent = agent
        self.config = config or RunnerConfig()
        self._validate_config()

        self._sessions: dict[str, SessionState] = {}
        self._session_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._listeners = ListenerRegistry()
        self._metrics = RunnerMetrics()

    def _validate_config(self) -> None:
        if self.config.max_iterations <= 0:
            raise ConfigurationError("Max iterations must be positive")
        if self.config.timeout_seconds <= 0:
            raise ConfigurationError("Timeout must be positive")
        if self.config.max_history_size <= 0:
            raise ConfigurationError("Max history size must be positive")

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run(
        self,
        message: Content,
        context: InvocationContext,
        session_state: Optional[SessionState] = None,
    ) -> RunnerResult:
        """Run the agent to completion.

        Args:
            message: New input message
            context: Invocation context (``session_id`` required)
            session_state: Starting state; defaults to the stored state of the session

        Returns:
            RunnerResult

        Raises:
            TimeoutError: If the run exceeds ``timeout_seconds``
            SessionError: For invalid input or unclassified failures
            AgentEngineError: Engine failures raised by the agent
        """
        self._validate_context(context)
        record = _RunRecord(context.session_id)

        async def drive() -> None:
            async for _ in self._iterate(message, context, session_state, record):
                pass

        await self._guard(wait_with_timeout(drive(), self.config.timeout_seconds, **self._timeout_error()), record)
        if record.result is None:
            raise SessionError("Run ended without a result", details={"session_id": context.session_id})
        return record.result

    async def run_streaming(
        self,
        message: Content,
        context: InvocationContext,
        session_state: Optional[SessionState] = None,
    ) -> AsyncIterator[RunnerEvent]:
        """Run the agent, yielding lifecycle events and wrapped agent events.

        The last event is ``run_complete``; its ``data["result"]`` holds the
        RunnerResult. The same wall-clock timeout as ``run`` applies to the
        whole stream.
        """
        self._validate_context(context)
        record = _RunRecord(context.session_id)
        deadline = time.monotonic() + self.config.timeout_seconds
        stream = self._iterate(message, context, session_state, record)
        try:
            while True:
                remaining = max(deadline - time.monotonic(), 0.0)
                try:
                    event = await self._guard(
                        wait_with_timeout(stream.__anext__(), remaining, **self._timeout_error()), record
                    )
                except StopAsyncIteration:
                    break
                yield event
        finally:
            await stream.aclose()

    async def _guard(self, awaitable: Any, record: _RunRecord) -> Any:
        """Await a run step, classifying failures."""
        try:
            return await awaitable
        except StopAsyncIteration:
            raise
        except AgentEngineError as e:
            self._record_failure(e, record)
            raise
        except Exception as e:
            self._record_failure(e, record)
            raise SessionError(
                f"Runner execution failed: {e}",
                details={"agent": self.agent.name, "session_id": record.session_id, "error_type": type(e).__name__},
            ) from e

    def _record_failure(self, error: Exception, record: _RunRecord) -> None:
        logger.error(f"Runner for agent {self.agent.name} failed: {error}")
        if self.config.enable_metrics:
            record.metrics.errors += 1
            record.metrics.execution_time_ms = (time.perf_counter() - record.started) * 1000
            self._metrics.merge(record.metrics)
        self._emit(RunnerEvent(type=RUN_ERROR, session_id=record.session_id, data={"error": str(error)}), record)

    def _timeout_error(self) -> dict[str, Any]:
        return {
            "message": f"Runner execution timed out after {self.config.timeout_seconds} seconds",
            "code": "RUNNER_TIMEOUT",
        }

    async def _iterate(
        self,
        message: Content,
        context: InvocationContext,
        session_state: Optional[SessionState],
        record: _RunRecord,
    ) -> AsyncIterator[RunnerEvent]:
        session_id = context.session_id
        async with self._session_locks[session_id]:
            start_event = RunnerEvent(
                type=RUN_START,
                session_id=session_id,
                data={"agent_name": self.agent.name, "message": message.model_dump(mode="json")},
            )
            self._emit(start_event, record)
            yield start_event

            if session_state is None:
                session_state = self._sessions.get(session_id) or SessionState()
            state = self._trim(session_state.copy_state().add_message(message))

            response: Optional[Content] = None
            iteration = 0
            while iteration < self.config.max_iterations:
                latest = state.messages[-1]
                event = RunnerEvent(
                    type=ITERATION_START,
                    session_id=session_id,
                    iteration=iteration,
                    data={"messages_count": state.message_count},
                )
                self._emit(event, record)
                yield event

                iteration_context = context.with_metadata(iteration=iteration)
                # Calls left unresolved by the previous iteration; their answers join the history.
                pending_ids = {call.id for call in latest.function_calls} if latest.is_from_assistant() else set()
                last_event: Optional[Event] = None
                try:
                    async for agent_event in self.agent.run(latest, iteration_context, state):
                        last_event = agent_event
                        self._observe(agent_event, record)
                        if isinstance(agent_event, ToolResponseEvent) and agent_event.tool_call.id in pending_ids:
                            tool_message = Content(role="tool", parts=[Part.from_function_response(agent_event.response)])
                            state = state.add_message(tool_message)
                        wrapped = RunnerEvent(
                            type=AGENT_EVENT,
                            session_id=session_id,
                            iteration=iteration,
                            data={"event_type": agent_event.type.value},
                            agent_event=agent_event,
                        )
                        self._emit(wrapped, record)
                        yield wrapped
                except Exception as e:
                    error_event = RunnerEvent(
                        type=ITERATION_ERROR, session_id=session_id, iteration=iteration, data={"error": str(e)}
                    )
                    self._emit(error_event, record)
                    yield error_event
                    raise

                if isinstance(last_event, AgentEndEvent):
                    response = last_event.response
                else:
                    response = Content.from_text(NO_RESPONSE_TEXT, role="assistant")
                state = state.add_message(response)
                iteration += 1

                has_tool_calls = response.has_function_calls()
                event = RunnerEvent(
                    type=ITERATION_COMPLETE,
                    session_id=session_id,
                    iteration=iteration - 1,
                    data={"has_tool_calls": has_tool_calls, "response": response.model_dump(mode="json")},
                )
                self._emit(event, record)
                yield event

                if not has_tool_calls:
                    break
            else:
                logger.warning(f"Reached maximum iterations ({self.config.max_iterations})")
                event = RunnerEvent(
                    type=MAX_ITERATIONS_REACHED,
                    session_id=session_id,
                    data={"max_iterations": self.config.max_iterations},
                )
                self._emit(event, record)
                yield event

            if response is None:
                raise SessionError("No response generated from agent", details={"session_id": session_id})

            state = self._trim(state).update_metadata(
                last_updated=datetime.now().isoformat(),
                message_count=state.message_count,
                iterations=iteration,
            )
            if self.config.persist_state:
                self._sessions[session_id] = state

            record.metrics.iterations = iteration
            record.metrics.execution_time_ms = (time.perf_counter() - record.started) * 1000
            if self.config.enable_metrics:
                self._metrics.merge(record.metrics)

            record.result = RunnerResult(
                response=response,
                session_state=state,
                iterations=iteration,
                metrics=record.metrics.model_copy(),
                events=list(record.events),
            )
            complete = RunnerEvent(
                type=RUN_COMPLETE,
                session_id=session_id,
                data={
                    "iterations": iteration,
                    "messages_count": state.message_count,
                    "execution_time_ms": record.metrics.execution_time_ms,
                    "result": record.result,
                },
            )
            self._emit(complete, record)
            yield complete

    def _observe(self, event: Event, record: _RunRecord) -> None:
        if isinstance(event, ToolCallEvent):
            record.metrics.tool_calls += 1
        elif isinstance(event, ModelResponseEvent):
            record.metrics.tokens_used += event.response.total_tokens
        elif isinstance(event, ErrorEvent):
            logger.debug(f"Agent error event from {event.source}: {event.error}")

    def _trim(self, state: SessionState) -> SessionState:
        excess = state.message_count - self.config.max_history_size
        if excess > 0:
            logger.warning(f"Trimmed {excess} messages from session history")
            return state.trimmed(self.config.max_history_size)
        return state

    def _validate_context(self, context: InvocationContext) -> None:
        if not context.session_id:
            raise SessionError("Session ID is required")

    def _emit(self, event: RunnerEvent, record: _RunRecord) -> None:
        record.events.append(event)
        logger.debug(f"Runner event: {event.type}")
        self._listeners.emit(event.type, event)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_session_state(self, session_id: str) -> Optional[SessionState]:
        """Get a copy of the stored state of a session."""
        state = self._sessions.get(session_id)
        return state.copy_state() if state is not None else None

    def set_session_state(self, session_id: str, state: SessionState) -> None:
        self._sessions[session_id] = self._trim(state.copy_state())

    def clear_session_state(self, session_id: str) -> bool:
        """Forget a session.

        Returns:
            True if the session existed
        """
        self._session_locks.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def clear_all_sessions(self) -> None:
        self._sessions.clear()
        self._session_locks.clear()

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Listeners and metrics
    # ------------------------------------------------------------------

    def add_listener(self, listener: Callable[[RunnerEvent], Any], event_type: Hashable = ALL_EVENTS) -> None:
        """Subscribe to runner events. Listener failures are logged, never raised."""
        self._listeners.add(event_type, listener)

    def remove_listener(self, listener: Callable[[RunnerEvent], Any], event_type: Hashable = ALL_EVENTS) -> bool:
        return self._listeners.remove(event_type, listener)

    def get_metrics(self) -> RunnerMetrics:
        return self._metrics.model_copy()

    def reset_metrics(self) -> None:
        self._metrics = RunnerMetrics()

    def get_info(self) -> dict[str, Any]:
        return {
            "agent_name": self.agent.name,
            "max_iterations": self.config.max_iterations,
            "timeout_seconds": self.config.timeout_seconds,
            "max_history_size": self.config.max_history_size,
            "sessions": self.session_count,
            "metrics": self._metrics.model_dump(),
            "metadata": dict(self.config.metadata),
        }
