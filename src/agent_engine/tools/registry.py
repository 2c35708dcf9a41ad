"""Tool registry.

Holds the tool set of an agent and exports it in function-calling format.
"""

from typing import Any, Iterable, Optional

from ..errors import ConfigurationError
from .base import BaseTool


class ToolRegistry:
    """Name-keyed set of tools. Names are unique."""

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None):
        """Initialize the registry.

        Args:
            tools: Initial tools

        Raises:
            ConfigurationError: If two tools share a name
        """
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Register a tool instance.

        Args:
            tool: Tool to add

        Raises:
            ConfigurationError: If a tool with the same name is already registered
        """
        if not isinstance(tool, BaseTool):
            raise ConfigurationError(f"Not a tool: {tool!r}")
        if tool.name in self._tools:
            raise ConfigurationError(f"Duplicate tool name: {tool.name}", details={"tool": tool.name})
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[BaseTool]:
        """Get tool by exact name.

        Args:
            name: Tool name

        Returns:
            Tool instance or None if not found
        """
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def list_all(self) -> list[BaseTool]:
        return list(self._tools.values())

    def to_llm_list(self) -> list[dict[str, Any]]:
        """Export all tools in function-calling format (OpenAI compatible).

        Returns:
            One ``{"type": "function", "function": {...}}`` entry per tool
        """
        return [tool.get_definition() for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self):
        return iter(self._tools.values())
