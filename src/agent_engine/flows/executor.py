"""Flow executor.

Schedules the steps of a flow according to its execution mode:

- SEQUENTIAL: dependency-respecting topological order, ties broken by
  declaration order.
- CONDITIONAL: as sequential, but a step whose dependency was skipped is
  skipped as well, so a failed condition prunes its whole branch.
- PARALLEL: topological generations; the steps of one generation run
  concurrently, bounded by ``max_concurrent_steps``.
- LOOP: the sequential pass repeated until the variable ``loop_exit`` is
  truthy or ``metadata.max_iterations`` passes ran.

Every step goes through the same pipeline: conditions, input mapping,
hooks and events, retries with backoff, per-step timeout, output mapping.
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import networkx as nx

from ..config.schemas import FlowExecutorConfig
from ..errors import ConfigurationError, FlowExecutionError, StepExecutionError
from ..models import (
    FlowConfig,
    FlowContext,
    FlowEvent,
    FlowEventType,
    FlowExecutionMode,
    FlowExecutionResult,
    FlowStatus,
    FlowStep,
    FlowStepResult,
    RetryConfig,
    StepStatus,
)
from ..utils import compute_backoff_delay, get_logger, wait_with_timeout
from .conditions import evaluate_conditions
from .constants import FlowErrorCode
from .hooks import FlowLifecycleHooks
from .steps import StepExecutorRegistry

logger = get_logger(__name__)

EventSink = Callable[[FlowEvent], None]

LOOP_EXIT_VARIABLE = "loop_exit"
LOOP_ITERATION_VARIABLE = "loop_iteration"


def build_dependency_graph(steps: list[FlowStep]) -> nx.DiGraph:
    """Build the step graph. Edges point from a dependency to its dependent.

    Args:
        steps: Flow steps

    Returns:
        Directed graph whose nodes carry the declaration ``index``
    """
    graph = nx.DiGraph()
    for index, step in enumerate(steps):
        graph.add_node(step.id, index=index)
    for step in steps:
        for dep_id in step.dependencies:
            if dep_id in graph:
                graph.add_edge(dep_id, step.id)
    return graph


def get_execution_order(steps: list[FlowStep]) -> list[str]:
    """Topological order of the steps, ties broken by declaration order.

    Raises:
        FlowExecutionError: If the dependency graph has a cycle
    """
    graph = build_dependency_graph(steps)
    try:
        return list(nx.lexicographical_topological_sort(graph, key=lambda node: graph.nodes[node]["index"]))
    except nx.NetworkXUnfeasible:
        raise FlowExecutionError(
            "Circular dependencies detected in flow steps", code=FlowErrorCode.CIRCULAR_DEPENDENCY
        ) from None


def get_execution_batches(steps: list[FlowStep]) -> list[list[str]]:
    """Group steps into generations that can run concurrently.

    Steps in each batch only depend on steps of earlier batches. Inside a
    batch, steps keep their declaration order.

    Raises:
        FlowExecutionError: If the dependency graph has a cycle
    """
    graph = build_dependency_graph(steps)
    try:
        generations = list(nx.topological_generations(graph))
    except nx.NetworkXUnfeasible:
        raise FlowExecutionError(
            "Circular dependencies detected in flow steps", code=FlowErrorCode.CIRCULAR_DEPENDENCY
        ) from None
    return [sorted(generation, key=lambda node: graph.nodes[node]["index"]) for generation in generations]


class FlowExecutor:
    """Runs flow definitions against a FlowContext."""

    def __init__(
        self,
        registry: Optional[StepExecutorRegistry] = None,
        config: Optional[FlowExecutorConfig] = None,
    ) -> None:
        """Initialize the executor.

        Args:
            registry: Step executors by type (built-ins when omitted)
            config: Executor settings
        """
        self.registry = registry or StepExecutorRegistry.with_builtins()
        self.config = config or FlowExecutorConfig()

    async def execute(
        self,
        flow: FlowConfig,
        context: FlowContext,
        hooks: Optional[FlowLifecycleHooks] = None,
        emit: Optional[EventSink] = None,
        result: Optional[FlowExecutionResult] = None,
    ) -> FlowExecutionResult:
        """Execute a flow.

        Step results are appended to ``result.step_results`` as steps finish,
        so a caller that passes its own result object keeps partial results
        even if the execution is cancelled.

        Args:
            flow: Flow definition
            context: Execution context
            hooks: Step hooks
            emit: Receives step events
            result: Result object to fill in (created when omitted)

        Returns:
            The COMPLETED result

        Raises:
            FlowExecutionError: If a non-optional step failed; the result is
                left RUNNING for the caller to mark
        """
        if result is None:
            result = FlowExecutionResult(
                execution_id=context.execution_id,
                flow_id=flow.id,
                input=dict(context.input),
                metadata=dict(context.metadata),
            )
        if result.status == FlowStatus.PENDING:
            result.mark_running()

        for name, value in flow.variables.items():
            context.variables.setdefault(name, value)

        run = _FlowRun(self, flow, context, hooks or FlowLifecycleHooks(), emit, result)
        logger.info(f"Executing flow {flow.id} ({flow.mode.value}) execution={context.execution_id}")

        try:
            if flow.mode == FlowExecutionMode.PARALLEL:
                await run.run_parallel()
            elif flow.mode == FlowExecutionMode.LOOP:
                await run.run_loop()
            else:
                await run.run_sequential(prune_skipped=flow.mode == FlowExecutionMode.CONDITIONAL)
        except StepExecutionError as e:
            raise FlowExecutionError(
                f"Step '{e.step_id}' failed: {e.message}",
                step_results=result.step_results,
                code=e.code or FlowErrorCode.STEP_EXECUTION_FAILED,
                details={"step_id": e.step_id},
            ) from e

        result.mark_completed(dict(context.output))
        logger.info(f"Flow {flow.id} completed in {result.duration_ms:.0f}ms")
        return result

    def resolve_retry(self, step: FlowStep, flow: FlowConfig) -> Optional[RetryConfig]:
        """Retry policy of a step: its own, else the flow's, else the executor default."""
        if not self.config.enable_retry:
            return None
        return step.retry or flow.retry or self.config.default_step_retry


class _FlowRun:
    """State of one flow execution inside the executor."""

    def __init__(
        self,
        executor: FlowExecutor,
        flow: FlowConfig,
        context: FlowContext,
        hooks: FlowLifecycleHooks,
        emit: Optional[EventSink],
        result: FlowExecutionResult,
    ) -> None:
        self.executor = executor
        self.flow = flow
        self.context = context
        self.hooks = hooks
        self.emit_event = emit
        self.result = result
        self.statuses: dict[str, StepStatus] = {}
        self._semaphore = asyncio.Semaphore(executor.config.max_concurrent_steps)

    async def run_sequential(self, prune_skipped: bool = False, iteration: Optional[int] = None) -> None:
        for step_id in get_execution_order(self.flow.steps):
            step = self.flow.get_step(step_id)
            await self.run_step(step, prune_skipped=prune_skipped, iteration=iteration)

    async def run_parallel(self) -> None:
        batches = get_execution_batches(self.flow.steps)
        logger.debug(f"Flow {self.flow.id}: {len(self.flow.steps)} steps in {len(batches)} batches")

        async def run_bounded(step: FlowStep) -> FlowStepResult:
            async with self._semaphore:
                return await self.run_step(step)

        for batch in batches:
            outcomes = await asyncio.gather(
                *[run_bounded(self.flow.get_step(step_id)) for step_id in batch],
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

    async def run_loop(self) -> None:
        max_iterations = self.flow.metadata.get("max_iterations", self.executor.config.max_loop_iterations)
        if not isinstance(max_iterations, int) or max_iterations < 1:
            raise ConfigurationError(
                f"Flow '{self.flow.id}' max_iterations must be a positive integer",
                code=FlowErrorCode.INVALID_CONFIG,
            )

        for iteration in range(max_iterations):
            self.context.variables[LOOP_ITERATION_VARIABLE] = iteration
            self.statuses.clear()
            await self.run_sequential(iteration=iteration)
            if self.context.resolve(LOOP_EXIT_VARIABLE):
                logger.debug(f"Flow {self.flow.id} loop exited after {iteration + 1} passes")
                return
        logger.warning(f"Flow {self.flow.id} reached max loop iterations ({max_iterations})")

    async def run_step(
        self,
        step: FlowStep,
        prune_skipped: bool = False,
        iteration: Optional[int] = None,
    ) -> FlowStepResult:
        """Run one step through the full pipeline.

        Raises:
            StepExecutionError: If a non-optional step failed
        """
        step_result = FlowStepResult(step_id=step.id, step_name=step.name)
        if iteration is not None:
            step_result.metadata["iteration"] = iteration

        skip_reason = self._skip_reason(step, prune_skipped)
        if skip_reason is not None:
            step_result.status = StepStatus.SKIPPED
            step_result.end_time = datetime.now()
            step_result.metadata["reason"] = skip_reason
            self._record(step, step_result)
            self._emit(FlowEventType.STEP_SKIPPED, step, {"reason": skip_reason})
            return step_result

        step_result.input = {name: self.context.resolve(path) for name, path in (step.inputs or {}).items()}
        step_result.status = StepStatus.RUNNING
        self.statuses[step.id] = StepStatus.RUNNING
        self._emit(FlowEventType.STEP_STARTED, step, {"input": step_result.input})
        await self._call_hook("before_step", self.hooks.before_step(step, self.context))

        try:
            output = await self._execute_with_retry(step, step_result)
        except Exception as e:
            step_result.status = StepStatus.FAILED
            step_result.error = str(e)
            step_result.error_code = getattr(e, "code", None) or FlowErrorCode.STEP_EXECUTION_FAILED
            step_result.end_time = datetime.now()
            self._record(step, step_result)
            logger.error(f"Step {step.id} failed: {e}")
            await self._call_hook("on_step_error", self.hooks.on_step_error(step, e, self.context))
            self._emit(FlowEventType.STEP_FAILED, step, {"error": str(e), "optional": step.optional})

            if step.optional:
                logger.warning(f"Optional step {step.id} failed, continuing")
                return step_result
            if isinstance(e, StepExecutionError):
                raise
            raise StepExecutionError(str(e), step_id=step.id, code=step_result.error_code) from e

        step_result.status = StepStatus.COMPLETED
        step_result.output = output
        step_result.end_time = datetime.now()
        self.context.step_outputs[step.id] = output
        self._apply_outputs(step, output)
        self._record(step, step_result)
        await self._call_hook("after_step", self.hooks.after_step(step, step_result, self.context))
        self._emit(FlowEventType.STEP_COMPLETED, step, {"output": output, "duration_ms": step_result.duration_ms})
        return step_result

    def _skip_reason(self, step: FlowStep, prune_skipped: bool) -> Optional[str]:
        if prune_skipped:
            for dep_id in step.dependencies:
                if self.statuses.get(dep_id) == StepStatus.SKIPPED:
                    return f"dependency '{dep_id}' was skipped"
        if step.conditions and not evaluate_conditions(step.conditions, self.context):
            return "conditions not met"
        return None

    async def _execute_with_retry(self, step: FlowStep, step_result: FlowStepResult) -> Any:
        step_executor = self.executor.registry.get(step.type)
        if step_executor is None:
            raise StepExecutionError(
                f"No executor registered for step type: {step.type}",
                step_id=step.id,
                code=FlowErrorCode.STEP_EXECUTION_FAILED,
            )

        policy = self.executor.resolve_retry(step, self.flow)
        max_retries = max(policy.max_retries, 0) if policy else 0
        timeout_ms = step.timeout_ms or self.executor.config.step_timeout_ms

        attempt = 0
        while True:
            try:
                return await wait_with_timeout(
                    step_executor.execute(step, step_result.input, self.context),
                    timeout_ms / 1000,
                    message=f"Step '{step.id}' timed out after {timeout_ms}ms",
                    code=FlowErrorCode.STEP_TIMEOUT,
                )
            except Exception as e:
                if attempt >= max_retries or not _is_retryable(e, policy):
                    raise
                attempt += 1
                step_result.retry_attempts = attempt
                delay_ms = compute_backoff_delay(attempt, policy.delay_ms, policy.backoff, policy.max_delay_ms)
                logger.warning(
                    f"Step {step.id} failed (attempt {attempt}/{max_retries + 1}): {e}. "
                    f"Retrying in {delay_ms:.0f}ms..."
                )
                await asyncio.sleep(delay_ms / 1000)

    def _apply_outputs(self, step: FlowStep, output: Any) -> None:
        if not step.outputs:
            self.context.output[step.id] = output
            return
        for name, key in step.outputs.items():
            value = _extract(output, key)
            self.context.variables[name] = value
            self.context.output[name] = value

    def _record(self, step: FlowStep, step_result: FlowStepResult) -> None:
        self.statuses[step.id] = step_result.status
        self.result.step_results.append(step_result)

    def _emit(self, event_type: FlowEventType, step: FlowStep, data: dict[str, Any]) -> None:
        if self.emit_event is None:
            return
        self.emit_event(
            FlowEvent(
                type=event_type,
                flow_id=self.flow.id,
                execution_id=self.context.execution_id,
                step_id=step.id,
                data=data,
            )
        )

    async def _call_hook(self, name: str, hook_call: Awaitable[None]) -> None:
        try:
            await hook_call
        except Exception as e:
            logger.error(f"Flow hook {name} failed: {e}")


def _is_retryable(error: Exception, policy: Optional[RetryConfig]) -> bool:
    if policy is None:
        return False
    if not policy.retry_on:
        return True
    code = getattr(error, "code", None)
    return type(error).__name__ in policy.retry_on or (code is not None and code in policy.retry_on)


def _extract(output: Any, key: str) -> Any:
    """Read a dotted key from a step output. An empty key selects the whole output."""
    if not key:
        return output
    value = output
    for segment in key.split("."):
        if isinstance(value, dict):
            value = value.get(segment)
        elif isinstance(value, (list, tuple)) and segment.isdigit() and int(segment) < len(value):
            value = value[int(segment)]
        else:
            value = getattr(value, segment, None)
        if value is None:
            return None
    return value
