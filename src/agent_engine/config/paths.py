"""Path utilities for agent engine configuration."""

from pathlib import Path


def get_default_config_dir() -> Path:
    """Get the default configuration directory path.

    Returns ~/.agent-engine/ directory, creating it if it doesn't exist.

    Returns:
        Path to the default configuration directory
    """
    config_dir = Path.home() / ".agent-engine"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_flows_dir(config_dir: Path | None = None) -> Path:
    """Get the flow definitions directory.

    Args:
        config_dir: Base configuration directory (default: ~/.agent-engine/)

    Returns:
        Path to the flows directory
    """
    if config_dir is None:
        config_dir = get_default_config_dir()
    flows_dir = config_dir / "flows"
    flows_dir.mkdir(parents=True, exist_ok=True)
    return flows_dir


def resolve_flow_path(flow_name: str, config_dir: Path | None = None) -> Path:
    """Resolve a flow definition file by name.

    Args:
        flow_name: Flow file name, with or without extension
        config_dir: Base configuration directory

    Returns:
        Resolved path to the flow file

    Raises:
        FileNotFoundError: If no matching file exists
    """
    flows_dir = get_flows_dir(config_dir)

    for ext in [".yaml", ".yml", ".json"]:
        path = flows_dir / f"{flow_name}{ext}"
        if path.exists():
            return path

    path = flows_dir / flow_name
    if path.exists():
        return path

    raise FileNotFoundError(f"Flow configuration not found: {flow_name} in {flows_dir}")
