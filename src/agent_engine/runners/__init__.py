"""Runners drive agents across iterations and own session state."""

from .runner import (
    AGENT_EVENT,
    ITERATION_COMPLETE,
    ITERATION_ERROR,
    ITERATION_START,
    MAX_ITERATIONS_REACHED,
    RUN_COMPLETE,
    RUN_ERROR,
    RUN_START,
    Runner,
    RunnerEvent,
    RunnerMetrics,
    RunnerResult,
)

__all__ = [
    "Runner",
    "RunnerEvent",
    "RunnerMetrics",
    "RunnerResult",
    # Lifecycle event names
    "RUN_START",
    "ITERATION_START",
    "ITERATION_COMPLETE",
    "ITERATION_ERROR",
    "MAX_ITERATIONS_REACHED",
    "RUN_COMPLETE",
    "RUN_ERROR",
    "AGENT_EVENT",
]
