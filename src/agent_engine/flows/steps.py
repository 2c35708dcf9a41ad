"""Step executors.

A step's ``type`` is an open tag. It is resolved at run time through a
StepExecutorRegistry, where every type must be registered explicitly; a step
whose type has no executor fails when it runs.
"""

import asyncio
import inspect
import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from ..agents import BaseAgent, collect_run
from ..errors import ConfigurationError, StepExecutionError
from ..models import Content, FlowCondition, FlowContext, FlowStep, InvocationContext, SessionState
from ..tools import BaseTool, PendingResults, ToolContext, ToolRegistry
from ..utils import generate_call_id, generate_execution_id, get_logger
from .conditions import evaluate_conditions
from .constants import MAX_NESTING_DEPTH, FlowErrorCode, StepType

logger = get_logger(__name__)

FlowResolver = Callable[[str], Any]


class StepExecutor(ABC):
    """Executes steps of one type."""

    @abstractmethod
    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        """Execute a step.

        Args:
            step: Step definition
            inputs: Step inputs resolved from the step's input mapping
            context: Flow context of the execution

        Returns:
            Step output

        Raises:
            Exception: On failure; the flow executor records and may retry it
        """


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _step_error(step: FlowStep, message: str) -> StepExecutionError:
    return StepExecutionError(message, step_id=step.id, code=FlowErrorCode.STEP_EXECUTION_FAILED)


class AssignStepExecutor(StepExecutor):
    """Sets flow variables.

    Config:
        values: Variable name -> literal value

    Resolved inputs are assigned as variables as well.
    """

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        assigned = {**(step.config or {}).get("values", {}), **inputs}
        context.variables.update(assigned)
        return assigned


class _FormatValues(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class LogStepExecutor(StepExecutor):
    """Writes a message to the engine log.

    Config:
        message: Text with ``{name}`` placeholders filled from inputs and variables
        level: Log level name (default "info")
    """

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        config = step.config or {}
        template = str(config.get("message", ""))
        message = template.format_map(_FormatValues({**context.variables, **inputs}))
        level = str(config.get("level", "info")).lower()
        log = getattr(logger, level, None)
        if not callable(log):
            log = logger.info
        log(f"[{context.flow_id}/{step.id}] {message}")
        return {"message": message}


class DelayStepExecutor(StepExecutor):
    """Sleeps for ``duration_ms`` (config or input)."""

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        duration_ms = inputs.get("duration_ms", (step.config or {}).get("duration_ms", 0))
        if not isinstance(duration_ms, (int, float)) or duration_ms < 0:
            raise _step_error(step, f"Invalid delay duration: {duration_ms!r}")
        await asyncio.sleep(duration_ms / 1000)
        return {"delayed_ms": duration_ms}


class ConditionStepExecutor(StepExecutor):
    """Evaluates conditions and optionally stores the outcome.

    Config:
        conditions: List of condition definitions
        variable: Variable receiving the boolean result
    """

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        config = step.config or {}
        conditions = [
            condition if isinstance(condition, FlowCondition) else FlowCondition.model_validate(condition)
            for condition in config.get("conditions", [])
        ]
        result = evaluate_conditions(conditions, context)
        variable = config.get("variable")
        if variable:
            context.variables[variable] = result
        return {"result": result}


class TransformStepExecutor(StepExecutor):
    """Builds a new value from the flow context.

    Config:
        mapping: Output key -> dotted path resolved in the flow context
        fn: Optional callable ``fn(data, context)`` applied to the mapped data
    """

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        config = step.config or {}
        data = dict(inputs)
        for key, path in (config.get("mapping") or {}).items():
            data[key] = context.resolve(path)

        fn = config.get("fn")
        if fn is None:
            return data
        if not callable(fn):
            raise _step_error(step, "Transform 'fn' must be callable")
        return await _maybe_await(fn(data, context))


class FunctionStepExecutor(StepExecutor):
    """Calls a registered Python function.

    Config:
        function: Registered function name
        arguments: Static keyword arguments, overridden by inputs

    A function that declares a ``flow_context`` parameter also receives the
    FlowContext.
    """

    def __init__(self, functions: Optional[dict[str, Callable[..., Any]]] = None) -> None:
        self.functions: dict[str, Callable[..., Any]] = dict(functions or {})

    def register(self, name: str, func: Callable[..., Any]) -> None:
        self.functions[name] = func

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        config = step.config or {}
        name = config.get("function")
        func = self.functions.get(name) if name else None
        if func is None:
            raise _step_error(step, f"Function not registered: {name}")

        kwargs = {**config.get("arguments", {}), **inputs}
        if "flow_context" in inspect.signature(func).parameters:
            kwargs["flow_context"] = context
        return await _maybe_await(func(**kwargs))


class ToolStepExecutor(StepExecutor):
    """Calls a tool.

    Config:
        tool: Tool name
        arguments: Static arguments, overridden by inputs
        wait: Wait for pending results of long-running tools (default True)
    """

    def __init__(
        self,
        tools: Optional[Iterable[BaseTool]] = None,
        pending_results: Optional[PendingResults] = None,
    ) -> None:
        self.tools = ToolRegistry(tools)
        self.pending_results = pending_results or PendingResults()

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        config = step.config or {}
        name = config.get("tool", "")
        tool = self.tools.get(name)
        if tool is None:
            raise _step_error(step, f"Tool '{name}' not found")

        tool_context = ToolContext(
            context=_invocation_context(step, context),
            call_id=generate_call_id(),
            pending_results=self.pending_results,
            metadata={"flow_id": context.flow_id, "step_id": step.id},
        )
        result = await tool.call({**config.get("arguments", {}), **inputs}, tool_context)

        if result.is_pending and config.get("wait", True):
            return await self.pending_results.wait(result.correlation_id)
        if result.is_pending:
            return {"pending": True, "correlation_id": result.correlation_id}
        return result.value


class AgentStepExecutor(StepExecutor):
    """Runs an agent and returns its final response text.

    Config:
        agent: Agent name
        message: Message text, used when no ``message`` input is mapped
    """

    def __init__(self, agents: Optional[Iterable[BaseAgent]] = None) -> None:
        self.agents: dict[str, BaseAgent] = {agent.name: agent for agent in agents or ()}

    def register(self, agent: BaseAgent) -> None:
        self.agents[agent.name] = agent

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        config = step.config or {}
        name = config.get("agent", "")
        agent = self.agents.get(name)
        if agent is None:
            raise _step_error(step, f"Agent '{name}' not found")

        text = inputs.get("message", config.get("message"))
        if text is None:
            text = json.dumps(inputs, default=str)
        message = Content.from_text(str(text))

        _, response = await collect_run(agent, message, _invocation_context(step, context), SessionState())
        return response.text


class SubflowStepExecutor(StepExecutor):
    """Runs another registered flow as a nested execution.

    Config:
        flow_id: Nested flow id
        input: Static nested input, overridden by inputs

    The nested FlowContext is linked to the current one as a child.
    """

    def __init__(self, resolve_flow: FlowResolver) -> None:
        self.resolve_flow = resolve_flow

    async def execute(self, step: FlowStep, inputs: dict[str, Any], context: FlowContext) -> Any:
        config = step.config or {}
        flow_id = config.get("flow_id", "")
        flow = self.resolve_flow(flow_id)
        if flow is None:
            raise StepExecutionError(
                f"Flow with ID '{flow_id}' not found", step_id=step.id, code=FlowErrorCode.FLOW_NOT_FOUND
            )

        depth = 0
        parent = context.parent
        while parent is not None:
            depth += 1
            parent = parent.parent
        if depth + 1 >= MAX_NESTING_DEPTH:
            raise _step_error(step, f"Maximum flow nesting depth ({MAX_NESTING_DEPTH}) exceeded")

        child = context.create_child(
            execution_id=generate_execution_id(),
            flow_id=flow_id,
            input={**config.get("input", {}), **inputs},
        )
        result = await flow.execute(child)
        return result.output


def _invocation_context(step: FlowStep, context: FlowContext) -> InvocationContext:
    return InvocationContext(
        session_id=context.session_id or context.execution_id,
        user_id=context.user_id or "",
        app_name=context.flow_id,
        metadata={"flow_id": context.flow_id, "execution_id": context.execution_id, "step_id": step.id},
    )


class StepExecutorRegistry:
    """Step type -> executor mapping."""

    def __init__(self) -> None:
        self._executors: dict[str, StepExecutor] = {}

    def register(self, step_type: str, executor: StepExecutor, replace: bool = False) -> None:
        """Register an executor for a step type.

        Args:
            step_type: Step type tag
            executor: Executor instance
            replace: Allow replacing an existing registration

        Raises:
            ConfigurationError: If the type is already registered and replace is False
        """
        if not step_type:
            raise ConfigurationError("Step type is required")
        if step_type in self._executors and not replace:
            raise ConfigurationError(f"Executor already registered for step type: {step_type}")
        self._executors[step_type] = executor
        logger.debug(f"Registered step executor: {step_type}")

    def unregister(self, step_type: str) -> bool:
        return self._executors.pop(step_type, None) is not None

    def get(self, step_type: str) -> Optional[StepExecutor]:
        return self._executors.get(step_type)

    def has(self, step_type: str) -> bool:
        return step_type in self._executors

    def types(self) -> list[str]:
        return list(self._executors)

    @classmethod
    def with_builtins(
        cls,
        functions: Optional[dict[str, Callable[..., Any]]] = None,
        tools: Optional[Iterable[BaseTool]] = None,
        agents: Optional[Iterable[BaseAgent]] = None,
        resolve_flow: Optional[FlowResolver] = None,
    ) -> "StepExecutorRegistry":
        """Create a registry with the built-in executors.

        The subflow executor is only registered when a flow resolver is given.

        Args:
            functions: Callables for ``function`` steps, by name
            tools: Tools for ``tool`` steps
            agents: Agents for ``agent`` steps
            resolve_flow: Looks up a Flow by id for ``subflow`` steps

        Returns:
            Populated registry
        """
        registry = cls()
        registry.register(StepType.ASSIGN, AssignStepExecutor())
        registry.register(StepType.LOG, LogStepExecutor())
        registry.register(StepType.DELAY, DelayStepExecutor())
        registry.register(StepType.CONDITION, ConditionStepExecutor())
        registry.register(StepType.TRANSFORM, TransformStepExecutor())
        registry.register(StepType.FUNCTION, FunctionStepExecutor(functions))
        registry.register(StepType.TOOL, ToolStepExecutor(tools))
        registry.register(StepType.AGENT, AgentStepExecutor(agents))
        if resolve_flow is not None:
            registry.register(StepType.SUBFLOW, SubflowStepExecutor(resolve_flow))
        return registry
