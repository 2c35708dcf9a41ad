"""Configuration schemas for the agent engine.

This module defines Pydantic models for validating configuration data.
Durations follow the unit in their name: ``*_seconds`` for the Runner and
model backend, ``*_ms`` for the flow layer.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from ..models.flow import RetryConfig


class RetryPolicy(BaseModel):
    """Retry policy for model backend calls."""

    max_attempts: int = Field(default=3, ge=1, description="Maximum number of attempts")
    base_delay: float = Field(default=1.0, ge=0, description="Initial delay in seconds")
    max_delay: float = Field(default=60.0, ge=0, description="Maximum delay between retries")
    exponential_base: float = Field(default=2.0, ge=1, description="Backoff growth factor")
    jitter: bool = Field(default=True, description="Add random jitter to delays")


class LLMConfig(BaseModel):
    """Configuration for an OpenAI-compatible model endpoint."""

    endpoint: str | None = Field(None, description="API base URL (None uses the provider default)")
    model: str = Field(..., description="Model identifier")
    api_key_env: str = Field(default="OPENAI_API_KEY", description="Environment variable name containing API key")
    api_type: Literal["openai", "deepseek", "glm", "ollama", "custom"] = Field(
        default="openai", description="API type"
    )
    temperature: float | None = Field(default=None, ge=0, le=2, description="Sampling temperature")
    max_tokens: int | None = Field(default=None, ge=1, description="Maximum tokens to generate")
    timeout_seconds: float = Field(default=60.0, gt=0, description="Request timeout")
    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Transient failure retries")


class RunnerConfig(BaseModel):
    """Configuration of a Runner.

    Bounds are checked by the Runner itself, which raises ConfigurationError.
    """

    max_iterations: int = Field(default=10, description="Maximum agent invocations per run")
    timeout_seconds: float = Field(default=300.0, description="Wall-clock limit of one run")
    max_history_size: int = Field(default=1000, description="Maximum retained session messages")
    persist_state: bool = Field(default=True, description="Store session state between runs")
    enable_metrics: bool = Field(default=True, description="Collect run metrics")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional data")


class FlowExecutorConfig(BaseModel):
    """Configuration of the flow executor."""

    max_concurrent_steps: int = Field(default=5, ge=1, description="Concurrent steps in parallel mode")
    step_timeout_ms: int = Field(default=5 * 60 * 1000, gt=0, description="Default step timeout")
    enable_retry: bool = Field(default=True, description="Honour step retry policies")
    default_step_retry: RetryConfig | None = Field(None, description="Retry policy for steps without one")
    max_loop_iterations: int = Field(default=10, ge=1, description="Default pass count in loop mode")


class FlowManagerConfig(BaseModel):
    """Configuration of the flow manager."""

    max_concurrent_executions: int = Field(default=10, ge=1, description="Concurrent execution ceiling")
    default_timeout_ms: int = Field(default=30 * 60 * 1000, gt=0, description="Default flow timeout")
    default_retry: RetryConfig = Field(
        default_factory=lambda: RetryConfig(max_retries=3, delay_ms=1000, backoff="exponential", max_delay_ms=60_000),
        description="Default retry policy",
    )
    enable_persistence: bool = Field(default=False, description="Persist flows and executions to storage")
    enable_metrics: bool = Field(default=True, description="Track per-flow metrics")
    enable_events: bool = Field(default=True, description="Emit lifecycle events")
    max_execution_history: int = Field(default=1000, ge=1, description="Retained execution results")
    executor: FlowExecutorConfig = Field(default_factory=FlowExecutorConfig, description="Executor settings")


def validate_flow_manager_config(data: dict[str, Any]) -> FlowManagerConfig:
    """Validate flow manager configuration data.

    Args:
        data: Raw configuration dictionary

    Returns:
        Validated FlowManagerConfig

    Raises:
        pydantic.ValidationError: If the data is invalid
    """
    return FlowManagerConfig.model_validate(data)


def validate_runner_config(data: dict[str, Any]) -> RunnerConfig:
    return RunnerConfig.model_validate(data)
