"""Configuration management for the agent engine."""

from .loader import (
    load_config_file,
    load_flow_config,
    load_flow_configs,
    load_llm_config,
    load_manager_config,
    load_runner_config,
)
from .paths import get_default_config_dir, get_flows_dir, resolve_flow_path
from .schemas import FlowExecutorConfig, FlowManagerConfig, LLMConfig, RetryPolicy, RunnerConfig

__all__ = [
    # Loader
    "load_config_file",
    "load_flow_config",
    "load_flow_configs",
    "load_manager_config",
    "load_runner_config",
    "load_llm_config",
    # Paths
    "get_default_config_dir",
    "get_flows_dir",
    "resolve_flow_path",
    # Schemas
    "LLMConfig",
    "RetryPolicy",
    "RunnerConfig",
    "FlowExecutorConfig",
    "FlowManagerConfig",
]
