"""Unit tests for the flow manager."""

import asyncio
import time

import pytest

from agent_engine.config import FlowManagerConfig
from agent_engine.errors import ConfigurationError, NotFoundError, ResourceLimitError, ValidationError
from agent_engine.flows import (
    Flow,
    FlowLifecycleHooks,
    FlowManager,
    FlowMetricsTracker,
    InMemoryFlowStorage,
    StepExecutorRegistry,
)
from agent_engine.models import (
    FlowBackup,
    FlowConfig,
    FlowEventType,
    FlowQueryOptions,
    FlowRestoreOptions,
    FlowStatus,
    FlowStep,
)


def boom():
    raise ValueError("boom")


def make_manager(**config):
    registry = StepExecutorRegistry.with_builtins(functions={"double": lambda value: value * 2, "boom": boom})
    hooks = config.pop("hooks", None)
    storage = config.pop("storage", None)
    return FlowManager(FlowManagerConfig(**config), storage=storage, hooks=hooks, step_registry=registry)


def failing_flow(flow_id="failing-flow"):
    return FlowConfig(
        id=flow_id,
        name="Failing",
        version="1.0.0",
        steps=[FlowStep(id="explode", name="Explode", type="function", config={"function": "boom"})],
    )


def slow_flow(flow_id="slow-flow", duration_ms=100, **fields):
    return FlowConfig(
        id=flow_id,
        name="Slow",
        version="1.0.0",
        steps=[FlowStep(id="wait", name="Wait", type="delay", config={"duration_ms": duration_ms})],
        **fields,
    )


class RecordingHooks(FlowLifecycleHooks):
    """Hooks that record execution lifecycle calls."""

    def __init__(self, fail_before=False):
        self.calls = []
        self.fail_before = fail_before

    async def before_execution(self, context):
        self.calls.append("before_execution")
        if self.fail_before:
            raise RuntimeError("not allowed")

    async def after_execution(self, result):
        self.calls.append("after_execution")

    async def on_error(self, error, context):
        self.calls.append(f"on_error:{type(error).__name__}")


@pytest.mark.asyncio
class TestFlowRegistry:
    """Tests for flow registration."""

    async def test_register_and_lookup(self, sample_flow_config):
        """Test registering a definition."""
        manager = make_manager()

        flow = await manager.register_flow(sample_flow_config)

        assert isinstance(flow, Flow)
        assert manager.get_flow("sample-flow") is flow
        assert [f.id for f in manager.list_flows()] == ["sample-flow"]
        assert manager.get_flow_metrics("sample-flow").execution_count == 0

    async def test_duplicate_id(self, sample_flow_config):
        """Test that ids are unique."""
        manager = make_manager()
        await manager.register_flow(sample_flow_config)

        with pytest.raises(ConfigurationError, match="Flow with ID 'sample-flow' already exists") as exc_info:
            await manager.register_flow(sample_flow_config)
        assert exc_info.value.code == "INVALID_CONFIG"

    async def test_invalid_flow_rejected(self, cyclic_flow_config):
        """Test that invalid definitions are not registered."""
        manager = make_manager()

        with pytest.raises(ValidationError) as exc_info:
            await manager.register_flow(cyclic_flow_config)

        assert exc_info.value.code == "FLOW_VALIDATION_FAILED"
        assert exc_info.value.errors == ["Circular dependencies detected: A -> B -> A"]
        assert manager.get_flow("cyclic-flow") is None

    async def test_unregister(self, sample_flow_config):
        """Test unregistering flows."""
        manager = make_manager()
        events = []
        manager.add_event_listener(FlowEventType.FLOW_UNREGISTERED, events.append)
        await manager.register_flow(sample_flow_config)

        await manager.unregister_flow("sample-flow")

        assert manager.get_flow("sample-flow") is None
        assert manager.get_flow_metrics("sample-flow") is None
        assert [e.flow_id for e in events] == ["sample-flow"]
        with pytest.raises(NotFoundError) as exc_info:
            await manager.unregister_flow("sample-flow")
        assert exc_info.value.code == "FLOW_NOT_FOUND"


@pytest.mark.asyncio
class TestFlowExecution:
    """Tests for executing flows through the manager."""

    async def test_execute(self, sample_flow_config):
        """Test a successful execution."""
        manager = make_manager()
        await manager.register_flow(sample_flow_config)

        result = await manager.execute_flow("sample-flow", {"x": 1}, {"user_id": "u1", "session_id": "s1"})

        assert result.status == FlowStatus.COMPLETED
        assert result.output["doubled"] == 4
        assert result.input == {"x": 1}
        assert result.metadata == {"user_id": "u1", "session_id": "s1"}
        assert manager.get_execution(result.execution_id) is result
        assert manager.active_execution_ids == []

    async def test_input_and_flow_id_overrides(self, sample_flow_config):
        """Test that an input override merges and a flow_id override is ignored."""
        manager = make_manager()
        await manager.register_flow(sample_flow_config)

        result = await manager.execute_flow(
            "sample-flow", {"a": 1, "b": 0}, {"input": {"b": 2}, "flow_id": "other-flow", "user_id": "u1"}
        )

        assert result.status == FlowStatus.COMPLETED
        assert result.input == {"a": 1, "b": 2}
        assert result.flow_id == "sample-flow"
        assert result.metadata["user_id"] == "u1"

    async def test_unknown_flow(self):
        """Test that unknown flows raise before any execution."""
        manager = make_manager()

        with pytest.raises(NotFoundError) as exc_info:
            await manager.execute_flow("missing")

        assert exc_info.value.code == "FLOW_NOT_FOUND"
        assert manager.list_executions() == []

    async def test_failure_is_returned(self):
        """Test that step failures produce a FAILED result."""
        hooks = RecordingHooks()
        manager = make_manager(hooks=hooks)
        events = []
        manager.add_event_listener(FlowEventType.FLOW_FAILED, events.append)
        await manager.register_flow(failing_flow())

        result = await manager.execute_flow("failing-flow")

        assert result.status == FlowStatus.FAILED
        assert result.error == "Step 'explode' failed: boom"
        assert result.error_code == "STEP_EXECUTION_FAILED"
        assert result.duration_ms is not None
        assert hooks.calls == ["before_execution", "on_error:FlowExecutionError"]
        assert events[0].data["code"] == "STEP_EXECUTION_FAILED"

    async def test_hook_failure_fails_execution(self, sample_flow_config):
        """Test that a failing before_execution hook fails the execution."""
        manager = make_manager(hooks=RecordingHooks(fail_before=True))
        await manager.register_flow(sample_flow_config)

        result = await manager.execute_flow("sample-flow")

        assert result.status == FlowStatus.FAILED
        assert result.error == "not allowed"
        assert result.error_code == "FLOW_EXECUTION_FAILED"
        assert result.step_results == []

    async def test_flow_timeout(self):
        """Test the whole-flow timeout."""
        manager = make_manager()
        await manager.register_flow(slow_flow(duration_ms=1000, timeout_ms=20))

        result = await manager.execute_flow("slow-flow")

        assert result.status == FlowStatus.FAILED
        assert result.error_code == "FLOW_TIMEOUT"

    async def test_concurrency_limit(self):
        """Test that the concurrency ceiling is enforced."""
        manager = make_manager(max_concurrent_executions=1)
        await manager.register_flow(slow_flow())

        task = asyncio.create_task(manager.execute_flow("slow-flow"))
        await asyncio.sleep(0)

        with pytest.raises(ResourceLimitError) as exc_info:
            await manager.execute_flow("slow-flow")
        assert exc_info.value.code == "RESOURCE_LIMIT_EXCEEDED"

        result = await task
        assert result.status == FlowStatus.COMPLETED
        assert len(manager.list_executions()) == 1

    async def test_cancel_execution(self):
        """Test bookkeeping-only cancellation."""
        manager = make_manager()
        events = []
        manager.add_event_listener("flow_cancelled", events.append)
        await manager.register_flow(slow_flow(duration_ms=20))

        task = asyncio.create_task(manager.execute_flow("slow-flow"))
        await asyncio.sleep(0)
        (execution_id,) = manager.active_execution_ids

        manager.cancel_execution(execution_id)

        assert manager.active_execution_ids == []
        assert events[0].execution_id == execution_id
        with pytest.raises(NotFoundError) as exc_info:
            manager.cancel_execution(execution_id)
        assert exc_info.value.code == "EXECUTION_NOT_FOUND"

        result = await task
        assert result.metadata["cancel_requested"] is True

    async def test_history_bounded(self, sample_flow_config):
        """Test that only the most recent executions are kept."""
        manager = make_manager(max_execution_history=2)
        await manager.register_flow(sample_flow_config)

        results = [await manager.execute_flow("sample-flow") for _ in range(3)]

        assert manager.get_execution(results[0].execution_id) is None
        assert len(manager.list_executions()) == 2


@pytest.mark.asyncio
class TestExecutionQueries:
    """Tests for execution history queries."""

    async def _populate(self, sample_flow_config):
        manager = make_manager()
        await manager.register_flow(sample_flow_config)
        await manager.register_flow(failing_flow())
        results = [
            await manager.execute_flow("sample-flow", context={"user_id": "alice"}),
            await manager.execute_flow("failing-flow", context={"user_id": "bob"}),
            await manager.execute_flow("sample-flow", context={"user_id": "bob", "session_id": "s9"}),
        ]
        return manager, results

    async def test_filters(self, sample_flow_config):
        """Test filtering by flow, status, user and session."""
        manager, results = await self._populate(sample_flow_config)

        assert len(manager.list_executions(flow_id="sample-flow")) == 2
        assert manager.list_executions(status=[FlowStatus.FAILED]) == [results[1]]
        assert {r.execution_id for r in manager.list_executions(user_id="bob")} == {
            results[1].execution_id,
            results[2].execution_id,
        }
        assert manager.list_executions(session_id="s9") == [results[2]]

    async def test_date_bounds_inclusive(self, sample_flow_config):
        """Test that executed_after and executed_before include their bounds."""
        manager, results = await self._populate(sample_flow_config)
        middle = results[1].start_time

        assert results[1] in manager.list_executions(executed_after=middle, executed_before=middle)
        assert len(manager.list_executions(executed_after=middle)) == 2

    async def test_sort_and_paginate(self, sample_flow_config):
        """Test ordering and pagination."""
        manager, results = await self._populate(sample_flow_config)

        newest_first = manager.list_executions()
        assert newest_first == list(reversed(results))

        options = FlowQueryOptions(sort_order="asc", offset=1, limit=1)
        assert manager.list_executions(options) == [results[1]]

        by_duration = manager.list_executions(sort_by="duration", sort_order="asc")
        durations = [r.duration_ms for r in by_duration]
        assert durations == sorted(durations)


@pytest.mark.asyncio
class TestStatsAndHealth:
    """Tests for statistics, metrics and health."""

    async def test_stats_and_metrics(self, sample_flow_config):
        """Test aggregated statistics and per-flow metrics."""
        manager = make_manager()
        await manager.initialize()
        await manager.register_flow(sample_flow_config)
        await manager.register_flow(failing_flow())

        await manager.execute_flow("sample-flow")
        await manager.execute_flow("sample-flow")
        await manager.execute_flow("failing-flow")

        stats = manager.get_flow_stats()
        assert stats.total_flows == 2
        assert stats.completed_executions == 2
        assert stats.failed_executions == 1
        assert stats.throughput == 3
        assert round(stats.success_rate) == 67

        metrics = manager.get_flow_metrics("sample-flow")
        assert metrics.execution_count == 2
        assert metrics.success_count == 2
        assert metrics.error_rate == 0
        assert metrics.throughput == 2
        assert metrics.min_duration_ms <= metrics.average_duration_ms <= metrics.max_duration_ms
        assert manager.get_all_flow_metrics()["failing-flow"].failure_count == 1

    async def test_health(self):
        """Test health requires initialization and a low error rate."""
        manager = make_manager()
        assert not manager.get_health_status().healthy

        await manager.initialize()
        assert manager.get_health_status().healthy

        await manager.register_flow(failing_flow())
        await manager.execute_flow("failing-flow")
        health = manager.get_health_status()
        assert not health.healthy
        assert health.details["stats"]["error_rate"] == 100

    async def test_metrics_disabled(self, sample_flow_config):
        """Test that disabled metrics stay at zero."""
        manager = make_manager(enable_metrics=False)
        await manager.register_flow(sample_flow_config)

        await manager.execute_flow("sample-flow")

        assert manager.get_flow_metrics("sample-flow").execution_count == 0

class TestMetricsTracker:
    """Tests for the per-flow metrics tracker."""

    def test_start_window_trimmed_on_record(self):
        """Test that starts older than a minute are dropped when a new one is recorded."""
        tracker = FlowMetricsTracker()
        tracker.initialize_flow("flow-1")
        now = time.time()
        for offset in (300, 200, 120):
            tracker.record_start("flow-1", now - offset)

        tracker.record_start("flow-1")

        assert len(tracker._starts["flow-1"]) == 1
        assert tracker.get("flow-1").throughput == 1

    def test_untracked_flow_ignored(self):
        """Test that starts of unknown flows are not kept."""
        tracker = FlowMetricsTracker()
        tracker.record_start("ghost")
        assert "ghost" not in tracker
        assert tracker.get("ghost") is None



@pytest.mark.asyncio
class TestEvents:
    """Tests for lifecycle events."""

    async def test_event_sequence(self, sample_flow_config):
        """Test the events of one execution."""
        manager = make_manager()
        seen = []
        manager.add_event_listener("*", lambda event: seen.append(event.type))
        await manager.register_flow(sample_flow_config)

        await manager.execute_flow("sample-flow")

        assert seen[0] == FlowEventType.FLOW_REGISTERED
        assert seen[1] == FlowEventType.FLOW_STARTED
        assert seen[-1] == FlowEventType.FLOW_COMPLETED
        assert seen.count(FlowEventType.STEP_COMPLETED) == 3

    async def test_events_disabled(self, sample_flow_config):
        """Test that no events are emitted when disabled."""
        manager = make_manager(enable_events=False)
        seen = []
        manager.add_event_listener("*", seen.append)
        await manager.register_flow(sample_flow_config)

        await manager.execute_flow("sample-flow")

        assert seen == []

    async def test_remove_listener(self, sample_flow_config):
        """Test unsubscribing."""
        manager = make_manager()
        seen = []
        manager.add_event_listener(FlowEventType.FLOW_REGISTERED, seen.append)

        assert manager.remove_event_listener(FlowEventType.FLOW_REGISTERED, seen.append)
        await manager.register_flow(sample_flow_config)

        assert seen == []


@pytest.mark.asyncio
class TestBackupRestore:
    """Tests for backup and restore."""

    async def test_round_trip(self, sample_flow_config):
        """Test restoring a backup into a fresh manager."""
        source = make_manager()
        await source.register_flow(sample_flow_config)
        result = await source.execute_flow("sample-flow")
        backup = await source.backup_flows()

        assert source.last_backup is backup
        assert backup.metadata["total_flows"] == 1
        assert backup.metadata["total_executions"] == 1

        target = make_manager()
        restored = await target.restore_flows(backup.model_dump(mode="json"))

        assert restored == 1
        assert target.get_flow("sample-flow").config.structural_dump() == sample_flow_config.structural_dump()
        assert target.get_execution(result.execution_id).status == FlowStatus.COMPLETED
        assert (await target.execute_flow("sample-flow")).output["doubled"] == 4

    async def test_existing_flows(self, sample_flow_config):
        """Test overwrite handling."""
        manager = make_manager()
        await manager.register_flow(sample_flow_config)
        renamed = sample_flow_config.model_copy(update={"name": "Renamed"})
        backup = FlowBackup(flows=[renamed])

        assert await manager.restore_flows(backup, FlowRestoreOptions(overwrite=False)) == 0
        assert manager.get_flow("sample-flow").config.name == "Sample Flow"

        assert await manager.restore_flows(backup, FlowRestoreOptions(overwrite=True)) == 1
        assert manager.get_flow("sample-flow").config.name == "Renamed"

    async def test_invalid_flows_skipped(self, sample_flow_config, cyclic_flow_config):
        """Test that invalid flows are skipped unless validation is off."""
        backup = FlowBackup(flows=[sample_flow_config, cyclic_flow_config])

        manager = make_manager()
        assert await manager.restore_flows(backup) == 1
        assert manager.get_flow("cyclic-flow") is None

        unchecked = make_manager()
        assert await unchecked.restore_flows(backup, FlowRestoreOptions(validate_flows=False)) == 2


@pytest.mark.asyncio
class TestLifecycleAndConfiguration:
    """Tests for initialization, persistence and configuration."""

    async def test_persistence(self, sample_flow_config):
        """Test that flows and executions reach storage and are reloaded."""
        storage = InMemoryFlowStorage()
        manager = make_manager(storage=storage)
        await manager.register_flow(sample_flow_config)
        result = await manager.execute_flow("sample-flow")

        assert [c.id for c in await storage.list_flows()] == ["sample-flow"]
        assert (await storage.load_execution(result.execution_id)).status == FlowStatus.COMPLETED

        reloaded = make_manager(storage=storage)
        await reloaded.initialize()
        assert reloaded.get_flow("sample-flow").config == sample_flow_config

    async def test_persistence_flag_creates_storage(self):
        """Test the in-memory default store."""
        assert isinstance(make_manager(enable_persistence=True).storage, InMemoryFlowStorage)
        assert make_manager().storage is None

    async def test_shutdown(self, sample_flow_config):
        """Test that shutdown clears state."""
        manager = make_manager()
        await manager.initialize()
        await manager.register_flow(sample_flow_config)
        await manager.execute_flow("sample-flow")

        await manager.shutdown()

        assert not manager.is_initialized
        assert manager.list_flows() == []
        assert manager.list_executions() == []

    def test_update_configuration(self):
        """Test merging configuration updates."""
        manager = make_manager()

        updated = manager.update_configuration(max_concurrent_executions=3, executor={"max_concurrent_steps": 2})

        assert updated.max_concurrent_executions == 3
        assert manager.executor.config.max_concurrent_steps == 2
        assert manager.get_configuration() is not manager.config

        with pytest.raises(ConfigurationError):
            manager.update_configuration(max_concurrent_executions=0)
        assert manager.config.max_concurrent_executions == 3
