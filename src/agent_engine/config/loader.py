"""Configuration loader for the agent engine.

This module provides functionality for loading YAML and JSON configurations
with environment variable expansion support.
"""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml

from ..models.flow import FlowConfig
from .paths import get_flows_dir
from .schemas import (
    FlowManagerConfig,
    LLMConfig,
    RunnerConfig,
    validate_flow_manager_config,
    validate_runner_config,
)

# Pattern for environment variable substitution: ${VAR_NAME} or ${VAR_NAME:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


def _expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in a value.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: The value to expand (can be str, dict, list)

    Returns:
        The value with environment variables expanded
    """
    if isinstance(value, str):
        def replace_env_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default)

        return ENV_VAR_PATTERN.sub(replace_env_var, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def load_yaml_file(file_path: str | Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dictionary.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is not valid YAML
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config_file(
    file_path: str | Path,
    config_type: str = "auto",
    expand_env: bool = True,
) -> dict[str, Any]:
    """Load a configuration file (YAML or JSON) with optional environment variable expansion.

    Args:
        file_path: Path to the configuration file
        config_type: Type of config ("yaml", "json", or "auto" to detect from extension)
        expand_env: Whether to expand environment variables

    Returns:
        Dictionary containing the configuration

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file type is unsupported or invalid
    """
    path = Path(file_path)

    if config_type == "auto":
        suffix = path.suffix.lower()
        if suffix in [".yaml", ".yml"]:
            config_type = "yaml"
        elif suffix == ".json":
            config_type = "json"
        else:
            raise ValueError(f"Cannot detect config type from extension: {suffix}")

    if config_type == "yaml":
        config = load_yaml_file(path)
    elif config_type == "json":
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    else:
        raise ValueError(f"Unsupported config type: {config_type}")

    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be a mapping: {file_path}")

    if expand_env:
        config = _expand_env_vars(config)

    return config


def load_flow_config(file_path: str | Path) -> FlowConfig:
    """Load a flow definition file.

    The file holds a single flow, optionally under a top-level ``flow`` key.
    Structural rules are not checked here; register the flow with a
    FlowManager (or call ``Flow.validate``) for that.

    Args:
        file_path: Path to the flow file

    Returns:
        FlowConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        pydantic.ValidationError: If the data does not describe a flow
    """
    data = load_config_file(file_path)
    if "flow" in data and isinstance(data["flow"], dict):
        data = data["flow"]
    return FlowConfig.model_validate(data)


def load_flow_configs(directory: str | Path | None = None) -> list[FlowConfig]:
    """Load every flow definition file in a directory.

    Args:
        directory: Directory to scan (default: ~/.agent-engine/flows/)

    Returns:
        FlowConfigs sorted by file name
    """
    flows_dir = Path(directory) if directory is not None else get_flows_dir()
    if not flows_dir.is_dir():
        raise FileNotFoundError(f"Flow directory not found: {flows_dir}")

    return [
        load_flow_config(path)
        for path in sorted(flows_dir.iterdir())
        if path.is_file() and path.suffix.lower() in CONFIG_SUFFIXES
    ]


def load_manager_config(file_path: str | Path) -> FlowManagerConfig:
    """Load flow manager settings, optionally under a ``flow_manager`` key."""
    data = load_config_file(file_path)
    return validate_flow_manager_config(data.get("flow_manager", data))


def load_runner_config(file_path: str | Path) -> RunnerConfig:
    """Load Runner settings, optionally under a ``runner`` key."""
    data = load_config_file(file_path)
    return validate_runner_config(data.get("runner", data))


def load_llm_config(file_path: str | Path) -> LLMConfig:
    """Load model endpoint settings, optionally under an ``llm`` key."""
    data = load_config_file(file_path)
    return LLMConfig.model_validate(data.get("llm", data))
