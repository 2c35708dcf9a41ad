"""Per-flow execution metrics.

Tracks rolling counts and durations per flow id. Throughput (executions
started during the last minute) is kept in a window trimmed on every write
and read.
"""

import time
from collections import defaultdict, deque
from typing import Optional

from ..models import FlowExecutionResult, FlowMetrics, FlowStatus
from ..utils import get_logger

logger = get_logger(__name__)

THROUGHPUT_WINDOW_SECONDS = 60.0


class FlowMetricsTracker:
    """Collects FlowMetrics for every registered flow."""

    def __init__(self) -> None:
        self._metrics: dict[str, FlowMetrics] = {}
        self._starts: dict[str, deque[float]] = defaultdict(deque)

    def initialize_flow(self, flow_id: str) -> None:
        """Start tracking a flow with zeroed metrics."""
        self._metrics[flow_id] = FlowMetrics()
        self._starts.pop(flow_id, None)

    def remove_flow(self, flow_id: str) -> None:
        self._metrics.pop(flow_id, None)
        self._starts.pop(flow_id, None)

    def record_start(self, flow_id: str, timestamp: Optional[float] = None) -> None:
        """Record that an execution of a flow started.

        Args:
            flow_id: Flow identifier
            timestamp: Start time as a ``time.time()`` value (now when omitted)
        """
        if flow_id not in self._metrics:
            return
        starts = self._starts[flow_id]
        self._trim(starts)
        starts.append(timestamp if timestamp is not None else time.time())

    def record_execution(self, result: FlowExecutionResult) -> None:
        """Fold a finished execution into its flow's metrics.

        Args:
            result: Finished execution result
        """
        metrics = self._metrics.get(result.flow_id)
        if metrics is None:
            return

        metrics.execution_count += 1
        if result.status == FlowStatus.COMPLETED:
            metrics.success_count += 1
        elif result.status == FlowStatus.FAILED:
            metrics.failure_count += 1

        duration = result.duration_ms
        if duration is not None:
            metrics.total_duration_ms += duration
            metrics.average_duration_ms = (
                metrics.average_duration_ms * (metrics.execution_count - 1) + duration
            ) / metrics.execution_count
            metrics.min_duration_ms = min(metrics.min_duration_ms, duration)
            metrics.max_duration_ms = max(metrics.max_duration_ms, duration)

        metrics.error_rate = metrics.failure_count / metrics.execution_count * 100
        metrics.last_execution_time = result.end_time
        logger.debug(f"Recorded execution of {result.flow_id}: {result.status.value} ({duration}ms)")

    def get(self, flow_id: str) -> Optional[FlowMetrics]:
        """Get a copy of a flow's metrics with current throughput.

        Returns:
            Metrics, or None if the flow is not tracked
        """
        metrics = self._metrics.get(flow_id)
        if metrics is None:
            return None
        metrics.throughput = self._throughput(flow_id)
        return metrics.model_copy()

    def get_all(self) -> dict[str, FlowMetrics]:
        return {flow_id: self.get(flow_id) for flow_id in self._metrics}

    def reset(self) -> None:
        """Zero the metrics of every tracked flow."""
        for flow_id in list(self._metrics):
            self.initialize_flow(flow_id)

    def _throughput(self, flow_id: str) -> int:
        starts = self._starts.get(flow_id)
        if not starts:
            return 0
        self._trim(starts)
        return len(starts)

    @staticmethod
    def _trim(starts: deque[float]) -> None:
        cutoff = time.time() - THROUGHPUT_WINDOW_SECONDS
        while starts and starts[0] <= cutoff:
            starts.popleft()

    def __contains__(self, flow_id: object) -> bool:
        return flow_id in self._metrics
