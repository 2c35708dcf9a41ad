"""Tools: base classes, results and registry."""

from .base import TOOL_NAME_PATTERN, BaseTool, FunctionTool, ToolContext
from .pending import PendingResults
from .registry import ToolRegistry
from .result import ToolResult

__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolContext",
    "TOOL_NAME_PATTERN",
    "ToolResult",
    "PendingResults",
    "ToolRegistry",
]
