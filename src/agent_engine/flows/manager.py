"""Flow manager.

Registry and scheduler for flows. The manager validates and registers flow
definitions, executes them under a concurrency ceiling, keeps a bounded
execution history with per-flow metrics, fans lifecycle events out to
listeners and snapshots everything for backup and restore.

Precondition failures (unknown flow, concurrency limit, invalid or duplicate
definition) raise before an execution starts. Anything that fails once an
execution is running is recorded as a FAILED result and returned.
"""

import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Optional, Union

from ..config.schemas import FlowManagerConfig
from ..errors import AgentEngineError, ConfigurationError, NotFoundError, ResourceLimitError, ValidationError
from ..models import (
    FlowBackup,
    FlowConfig,
    FlowContext,
    FlowEvent,
    FlowEventType,
    FlowExecutionResult,
    FlowMetrics,
    FlowQueryOptions,
    FlowRestoreOptions,
    FlowStats,
    FlowStatus,
    HealthStatus,
)
from ..utils import ListenerRegistry, get_logger, wait_with_timeout
from .constants import FlowErrorCode, StepType
from .executor import FlowExecutor
from .flow import Flow
from .hooks import FlowLifecycleHooks
from .metrics import FlowMetricsTracker
from .steps import StepExecutorRegistry, SubflowStepExecutor
from .storage import FlowStorage, InMemoryFlowStorage

logger = get_logger(__name__)

FlowListener = Callable[[FlowEvent], Any]

UNHEALTHY_ERROR_RATE = 50.0


class _ActiveExecution:
    """Bookkeeping record of a running execution."""

    def __init__(self, flow_id: str, context: FlowContext, result: FlowExecutionResult) -> None:
        self.flow_id = flow_id
        self.context = context
        self.result = result
        self.cancel_requested = False


class FlowManager:
    """Registers, executes and tracks flows.

    Attributes:
        config: Manager configuration
        storage: Optional persistence backend
        hooks: Execution and step lifecycle hooks
        step_registry: Step executors shared by flows registered as configs
        executor: Executor bound to ``step_registry``
        last_backup: Snapshot taken by the latest ``backup_flows`` call
    """

    def __init__(
        self,
        config: Optional[FlowManagerConfig] = None,
        storage: Optional[FlowStorage] = None,
        hooks: Optional[FlowLifecycleHooks] = None,
        step_registry: Optional[StepExecutorRegistry] = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Manager configuration
            storage: Persistence backend; an in-memory one is created when
                ``config.enable_persistence`` is set and none is given
            hooks: Lifecycle hooks
            step_registry: Step executors (built-ins when omitted). A
                ``subflow`` executor resolving flows of this manager is
                added when the registry has none.
        """
        self.config = config or FlowManagerConfig()
        if storage is None and self.config.enable_persistence:
            storage = InMemoryFlowStorage()
        self.storage = storage
        self.hooks = hooks or FlowLifecycleHooks()

        self.step_registry = step_registry or StepExecutorRegistry.with_builtins()
        if not self.step_registry.has(StepType.SUBFLOW):
            self.step_registry.register(StepType.SUBFLOW, SubflowStepExecutor(self.get_flow))
        self.executor = FlowExecutor(self.step_registry, self.config.executor)

        self._flows: dict[str, Flow] = {}
        self._executions: OrderedDict[str, FlowExecutionResult] = OrderedDict()
        self._active: dict[str, _ActiveExecution] = {}
        self._listeners = ListenerRegistry()
        self._metrics = FlowMetricsTracker()
        self._initialized = False
        self.last_backup: Optional[FlowBackup] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def active_execution_ids(self) -> list[str]:
        return list(self._active)

    async def initialize(self) -> None:
        """Load flows from storage. Idempotent."""
        if self._initialized:
            return
        if self.storage is not None:
            await self._load_flows_from_storage()
        self._initialized = True
        logger.info(f"Flow manager initialized with {len(self._flows)} flows")

    async def shutdown(self) -> None:
        """Cancel active executions and clear all state."""
        for execution_id in list(self._active):
            self.cancel_execution(execution_id)

        self._flows.clear()
        self._executions.clear()
        self._active.clear()
        self._listeners.clear()
        self._metrics = FlowMetricsTracker()
        self._initialized = False
        logger.info("Flow manager shut down")

    # Registry

    async def register_flow(self, flow: Union[Flow, FlowConfig], validate: bool = True) -> Flow:
        """Register a flow.

        Args:
            flow: Flow, or a definition to bind to the manager's executor
            validate: Validate the definition first

        Returns:
            The registered Flow

        Raises:
            ValidationError: If validation fails (code FLOW_VALIDATION_FAILED)
            ConfigurationError: If the flow id is already registered
        """
        if isinstance(flow, FlowConfig):
            flow = Flow(flow, executor=self.executor)

        if validate:
            validation = flow.validate()
            if not validation.valid:
                raise ValidationError(
                    f"Flow validation failed: {', '.join(validation.errors)}",
                    errors=validation.errors,
                    code=FlowErrorCode.FLOW_VALIDATION_FAILED,
                    details={"flow_id": flow.id, "warnings": validation.warnings},
                )
            for warning in validation.warnings:
                logger.warning(f"Flow {flow.id}: {warning}")

        if flow.id in self._flows:
            raise ConfigurationError(
                f"Flow with ID '{flow.id}' already exists", code=FlowErrorCode.INVALID_CONFIG
            )

        self._flows[flow.id] = flow
        self._metrics.initialize_flow(flow.id)
        if self.storage is not None:
            await self.storage.save_flow(flow.config)

        logger.info(f"Registered flow: {flow.id}")
        self._emit(FlowEvent(type=FlowEventType.FLOW_REGISTERED, flow_id=flow.id, data={"name": flow.config.name}))
        return flow

    async def unregister_flow(self, flow_id: str) -> None:
        """Unregister a flow, cancelling its active executions.

        Raises:
            NotFoundError: If the flow is not registered
        """
        if flow_id not in self._flows:
            raise NotFoundError(f"Flow with ID '{flow_id}' not found", code=FlowErrorCode.FLOW_NOT_FOUND)

        for execution_id, active in list(self._active.items()):
            if active.flow_id == flow_id:
                self.cancel_execution(execution_id)

        del self._flows[flow_id]
        self._metrics.remove_flow(flow_id)
        if self.storage is not None:
            await self.storage.delete_flow(flow_id)

        logger.info(f"Unregistered flow: {flow_id}")
        self._emit(FlowEvent(type=FlowEventType.FLOW_UNREGISTERED, flow_id=flow_id))

    def get_flow(self, flow_id: str) -> Optional[Flow]:
        return self._flows.get(flow_id)

    def list_flows(self) -> list[Flow]:
        return list(self._flows.values())

    # Execution

    async def execute_flow(
        self,
        flow_id: str,
        input: Optional[dict[str, Any]] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> FlowExecutionResult:
        """Execute a registered flow.

        Args:
            flow_id: Flow identifier
            input: Execution input
            context: FlowContext field overrides (user_id, session_id,
                variables, metadata, execution_id, ...). An ``input`` entry
                is merged over ``input``; a ``flow_id`` entry is ignored.

        Returns:
            The execution result, COMPLETED or FAILED

        Raises:
            NotFoundError: If the flow is not registered
            ResourceLimitError: If the concurrency ceiling is reached
        """
        flow = self._flows.get(flow_id)
        if flow is None:
            raise NotFoundError(f"Flow with ID '{flow_id}' not found", code=FlowErrorCode.FLOW_NOT_FOUND)

        limit = self.config.max_concurrent_executions
        if len(self._active) >= limit:
            raise ResourceLimitError(
                f"Maximum concurrent executions ({limit}) exceeded",
                code=FlowErrorCode.RESOURCE_LIMIT_EXCEEDED,
                details={"active": len(self._active), "limit": limit},
            )

        overrides = dict(context or {})
        # The flow id is fixed by the registration; an input override merges into the input.
        overrides.pop("flow_id", None)
        merged_input = {**(input or {}), **(overrides.pop("input", None) or {})}
        flow_context = flow.create_context(merged_input, **overrides)
        result = FlowExecutionResult(
            execution_id=flow_context.execution_id,
            flow_id=flow_id,
            input=dict(flow_context.input),
            metadata=self._result_metadata(flow_context),
        )

        # Claim the slot before the first suspension point.
        active = _ActiveExecution(flow_id, flow_context, result)
        self._active[flow_context.execution_id] = active
        self._metrics.record_start(flow_id)

        try:
            await self._run_execution(flow, flow_context, result)
        finally:
            self._active.pop(flow_context.execution_id, None)

        if active.cancel_requested:
            result.metadata["cancel_requested"] = True

        self._store_execution(result)
        if self.storage is not None:
            await self.storage.save_execution(result)
        if self.config.enable_metrics:
            self._metrics.record_execution(result)
        return result

    async def _run_execution(self, flow: Flow, context: FlowContext, result: FlowExecutionResult) -> None:
        timeout_ms = flow.config.timeout_ms or self.config.default_timeout_ms
        try:
            await self.hooks.before_execution(context)
            self._emit(
                FlowEvent(
                    type=FlowEventType.FLOW_STARTED,
                    flow_id=flow.id,
                    execution_id=context.execution_id,
                    data={"input": context.input},
                )
            )
            await wait_with_timeout(
                flow.execute(context, hooks=self.hooks, emit=self._emit, result=result),
                timeout_ms / 1000,
                message=f"Flow '{flow.id}' timed out after {timeout_ms}ms",
                code=FlowErrorCode.FLOW_TIMEOUT,
            )
        except Exception as e:
            code = e.code if isinstance(e, AgentEngineError) and e.code else FlowErrorCode.FLOW_EXECUTION_FAILED
            logger.error(f"Flow {flow.id} execution {context.execution_id} failed: {e}")
            result.mark_failed(str(e), code)
            try:
                await self.hooks.on_error(e, context)
            except Exception as hook_error:
                logger.error(f"Flow hook on_error failed: {hook_error}")
            self._emit(
                FlowEvent(
                    type=FlowEventType.FLOW_FAILED,
                    flow_id=flow.id,
                    execution_id=context.execution_id,
                    data={"error": str(e), "code": code, "duration_ms": result.duration_ms},
                )
            )
            return

        try:
            await self.hooks.after_execution(result)
        except Exception as e:
            logger.error(f"Flow hook after_execution failed: {e}")
        self._emit(
            FlowEvent(
                type=FlowEventType.FLOW_COMPLETED,
                flow_id=flow.id,
                execution_id=context.execution_id,
                data={"output": result.output, "duration_ms": result.duration_ms},
            )
        )

    def cancel_execution(self, execution_id: str) -> None:
        """Cancel an active execution.

        Cancellation is bookkeeping only: the execution leaves the active set
        and FLOW_CANCELLED is emitted, but in-flight step work is not
        interrupted. The eventual result is marked ``cancel_requested``.

        Raises:
            NotFoundError: If no active execution has this id
        """
        active = self._active.pop(execution_id, None)
        if active is None:
            raise NotFoundError(
                f"Active execution with ID '{execution_id}' not found",
                code=FlowErrorCode.EXECUTION_NOT_FOUND,
            )
        active.cancel_requested = True
        logger.info(f"Cancelled execution {execution_id} of flow {active.flow_id}")
        self._emit(
            FlowEvent(
                type=FlowEventType.FLOW_CANCELLED,
                flow_id=active.flow_id,
                execution_id=execution_id,
                data={"reason": "manual_cancellation"},
            )
        )

    def get_execution(self, execution_id: str) -> Optional[FlowExecutionResult]:
        return self._executions.get(execution_id)

    def list_executions(self, options: Optional[FlowQueryOptions] = None, **filters: Any) -> list[FlowExecutionResult]:
        """List execution results.

        Args:
            options: Filter, sort and pagination options
            **filters: FlowQueryOptions fields, used when ``options`` is omitted

        Returns:
            Matching results
        """
        if options is None:
            options = FlowQueryOptions(**filters)

        executions = [e for e in self._executions.values() if _matches(e, options)]

        if options.sort_by == "duration":
            executions.sort(key=lambda e: e.duration_ms or 0.0, reverse=options.sort_order == "desc")
        else:
            executions.sort(key=lambda e: e.start_time, reverse=options.sort_order == "desc")

        end = options.offset + options.limit if options.limit is not None else None
        return executions[options.offset : end]

    def _store_execution(self, result: FlowExecutionResult) -> None:
        self._executions[result.execution_id] = result
        self._executions.move_to_end(result.execution_id)
        while len(self._executions) > self.config.max_execution_history:
            self._executions.popitem(last=False)

    @staticmethod
    def _result_metadata(context: FlowContext) -> dict[str, Any]:
        metadata = dict(context.metadata)
        if context.user_id is not None:
            metadata["user_id"] = context.user_id
        if context.session_id is not None:
            metadata["session_id"] = context.session_id
        return metadata

    # Metrics and health

    def get_flow_stats(self) -> FlowStats:
        """Compute manager-wide statistics over the execution history."""
        executions = list(self._executions.values())
        total = len(executions)
        completed = sum(1 for e in executions if e.status == FlowStatus.COMPLETED)
        failed = sum(1 for e in executions if e.status == FlowStatus.FAILED)
        durations = [e.duration_ms for e in executions if e.duration_ms is not None]
        one_minute_ago = datetime.fromtimestamp(time.time() - 60)

        return FlowStats(
            total_flows=len(self._flows),
            active_executions=len(self._active),
            completed_executions=completed,
            failed_executions=failed,
            average_execution_time_ms=sum(durations) / len(durations) if durations else 0.0,
            success_rate=completed / total * 100 if total else 0.0,
            error_rate=failed / total * 100 if total else 0.0,
            throughput=sum(1 for e in executions if e.start_time > one_minute_ago),
        )

    def get_flow_metrics(self, flow_id: str) -> Optional[FlowMetrics]:
        return self._metrics.get(flow_id)

    def get_all_flow_metrics(self) -> dict[str, FlowMetrics]:
        return self._metrics.get_all()

    def get_health_status(self) -> HealthStatus:
        """Report health: initialized and error rate below 50%."""
        stats = self.get_flow_stats()
        return HealthStatus(
            healthy=self._initialized and stats.error_rate < UNHEALTHY_ERROR_RATE,
            details={
                "initialized": self._initialized,
                "stats": stats.model_dump(),
                "active_executions": len(self._active),
                "registered_flows": len(self._flows),
                "total_executions": len(self._executions),
                "config": self.config.model_dump(mode="json"),
            },
        )

    # Events

    def add_event_listener(self, event_type: FlowEventType | str, listener: FlowListener) -> None:
        """Subscribe to flow events. ``"*"`` receives every event."""
        self._listeners.add(_event_key(event_type), listener)

    def remove_event_listener(self, event_type: FlowEventType | str, listener: FlowListener) -> bool:
        return self._listeners.remove(_event_key(event_type), listener)

    def _emit(self, event: FlowEvent) -> None:
        if not self.config.enable_events:
            return
        self._listeners.emit(event.type.value, event)

    # Backup and restore

    async def backup_flows(self) -> FlowBackup:
        """Snapshot flow definitions and execution history.

        Returns:
            The backup, also kept as ``last_backup``
        """
        flows = [flow.config for flow in self._flows.values()]
        executions = [result.model_copy(deep=True) for result in self._executions.values()]
        backup = FlowBackup(
            flows=flows,
            executions=executions,
            metadata={
                "total_flows": len(flows),
                "total_executions": len(executions),
                "manager_config": self.config.model_dump(mode="json"),
            },
        )
        self.last_backup = backup
        logger.info(f"Backed up {len(flows)} flows and {len(executions)} executions")
        return backup

    async def restore_flows(
        self,
        backup: Union[FlowBackup, dict[str, Any]],
        options: Optional[FlowRestoreOptions] = None,
    ) -> int:
        """Restore flows and executions from a backup.

        Invalid flows, and existing flows when ``overwrite`` is off, are
        skipped with a warning. A flow that fails to register is logged and
        skipped.

        Args:
            backup: Backup object or its JSON-compatible dump
            options: Restore behaviour

        Returns:
            Number of restored flows
        """
        if not isinstance(backup, FlowBackup):
            backup = FlowBackup.model_validate(backup)
        options = options or FlowRestoreOptions()

        if options.backup_current:
            await self.backup_flows()

        restored = 0
        for config in backup.flows:
            flow = Flow(config, executor=self.executor)
            if options.validate_flows:
                validation = flow.validate()
                if not validation.valid:
                    logger.warning(f"Skipping invalid flow '{config.id}': {', '.join(validation.errors)}")
                    continue

            if config.id in self._flows:
                if not options.overwrite:
                    logger.warning(f"Skipping existing flow '{config.id}' (overwrite disabled)")
                    continue
                await self.unregister_flow(config.id)

            try:
                await self.register_flow(flow, validate=False)
            except AgentEngineError as e:
                logger.error(f"Failed to restore flow '{config.id}': {e}")
                continue
            restored += 1

        if options.restore_executions:
            for result in backup.executions:
                self._store_execution(result.model_copy(deep=True))
                if self.storage is not None:
                    await self.storage.save_execution(result)

        logger.info(f"Restored {restored} of {len(backup.flows)} flows")
        return restored

    # Configuration

    def get_configuration(self) -> FlowManagerConfig:
        return self.config.model_copy(deep=True)

    def update_configuration(self, **updates: Any) -> FlowManagerConfig:
        """Merge configuration updates.

        Args:
            **updates: FlowManagerConfig fields

        Returns:
            The new configuration

        Raises:
            ConfigurationError: If the merged configuration is invalid
        """
        merged = {**self.config.model_dump(), **updates}
        try:
            self.config = FlowManagerConfig.model_validate(merged)
        except ValueError as e:
            raise ConfigurationError(f"Invalid flow manager configuration: {e}", code=FlowErrorCode.INVALID_CONFIG) from e
        self.executor.config = self.config.executor
        return self.get_configuration()

    async def _load_flows_from_storage(self) -> None:
        try:
            configs = await self.storage.list_flows()
        except Exception as e:
            logger.error(f"Failed to load flows from storage: {e}")
            return
        for config in configs:
            self._flows[config.id] = Flow(config, executor=self.executor)
            self._metrics.initialize_flow(config.id)
        logger.debug(f"Loaded {len(configs)} flows from storage")


def _event_key(event_type: FlowEventType | str) -> str:
    return event_type.value if isinstance(event_type, FlowEventType) else event_type


def _matches(result: FlowExecutionResult, options: FlowQueryOptions) -> bool:
    if options.flow_id is not None and result.flow_id != options.flow_id:
        return False
    if options.status and result.status not in options.status:
        return False
    if options.user_id is not None and result.metadata.get("user_id") != options.user_id:
        return False
    if options.session_id is not None and result.metadata.get("session_id") != options.session_id:
        return False
    if options.executed_after is not None and result.start_time < options.executed_after:
        return False
    if options.executed_before is not None and result.start_time > options.executed_before:
        return False
    return True
