"""Base tool abstractions.

A tool is a named capability with a JSON-schema parameter descriptor. Agents
call tools through ``BaseTool.call``, which validates arguments, runs
``execute`` and normalises the outcome into a ToolResult.
"""

import asyncio
import inspect
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ConfigurationError, ToolExecutionError
from ..models import InvocationContext, SessionState
from ..utils import generate_call_id, get_logger
from .pending import PendingResults
from .result import ToolResult

logger = get_logger(__name__)

TOOL_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_JSON_TYPES: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool) and v == v,
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
    "null": lambda v: v is None,
}

_PYTHON_TO_JSON: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


class ToolContext(BaseModel):
    """Context handed to a tool execution.

    Attributes:
        context: Invocation context of the calling agent
        session_state: Session state visible to the tool
        call_id: Id of the originating function call
        pending_results: Side channel for long-running results
        metadata: Additional data
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    context: InvocationContext
    session_state: SessionState = Field(default_factory=SessionState)
    call_id: Optional[str] = None
    pending_results: Optional[PendingResults] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class BaseTool(ABC):
    """Abstract base class for tools.

    Attributes:
        name: Tool name (identifier pattern)
        description: What the tool does, shown to the model
        parameters: JSON schema of the arguments
        metadata: Additional data
        is_long_running: Whether results are delivered out-of-band
    """

    def __init__(
        self,
        name: str,
        description: str,
        parameters: Optional[dict[str, Any]] = None,
        metadata: Optional[dict[str, Any]] = None,
        is_long_running: bool = False,
    ) -> None:
        self.name = name
        self.description = description
        self.parameters = parameters or {"type": "object", "properties": {}, "required": []}
        self.metadata = metadata or {}
        self.is_long_running = is_long_running
        self._validate_config()

    @abstractmethod
    async def execute(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        """Run the tool.

        Args:
            args: Validated arguments
            tool_context: Execution context

        Returns:
            A plain value or a ToolResult
        """

    async def call(self, args: dict[str, Any], tool_context: ToolContext) -> ToolResult:
        """Validate arguments, execute and normalise the result.

        Args:
            args: Arguments from the model
            tool_context: Execution context

        Returns:
            ToolResult

        Raises:
            ToolExecutionError: On invalid arguments or execution failure
        """
        self.validate_arguments(args)
        try:
            result = await self.execute(args, tool_context)
        except ToolExecutionError:
            raise
        except Exception as e:
            logger.error(f"Tool {self.name} execution failed: {e}")
            raise ToolExecutionError(
                f"Tool {self.name} execution failed: {e}",
                details={"tool": self.name, "error_type": type(e).__name__},
            ) from e

        if isinstance(result, ToolResult):
            return result
        return ToolResult.completed(result)

    def get_definition(self) -> dict[str, Any]:
        """Export the tool in function-calling format (OpenAI compatible)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_arguments(self, args: dict[str, Any]) -> None:
        """Check required parameters and basic JSON types.

        Raises:
            ToolExecutionError: On the first violation found
        """
        for required in self.parameters.get("required") or []:
            if required not in args:
                raise ToolExecutionError(
                    f"Missing required parameter: {required}",
                    details={"tool": self.name, "parameter": required},
                )

        properties = self.parameters.get("properties") or {}
        for key, value in args.items():
            expected = (properties.get(key) or {}).get("type")
            check = _JSON_TYPES.get(expected) if isinstance(expected, str) else None
            if check is not None and not check(value):
                raise ToolExecutionError(
                    f"Invalid type for parameter {key}. Expected {expected}, got {type(value).__name__}",
                    details={"tool": self.name, "parameter": key, "expected_type": expected},
                )

    def get_info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "metadata": self.metadata,
            "is_long_running": self.is_long_running,
        }

    def _validate_config(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("Tool name is required")
        if not self.description or not self.description.strip():
            raise ConfigurationError(f"Tool '{self.name}' requires a description")
        if not TOOL_NAME_PATTERN.match(self.name):
            raise ConfigurationError(
                f"Tool name '{self.name}' must be a valid identifier "
                "(letters, numbers, underscore, starting with letter or underscore)"
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class FunctionTool(BaseTool):
    """Tool backed by a plain sync or async callable.

    Arguments are passed as keyword arguments. A callable that declares a
    ``tool_context`` parameter also receives the ToolContext. When no
    parameter schema is given, one is derived from the signature.

    A long-running FunctionTool returns a pending result immediately and
    delivers the callable's value through ``tool_context.pending_results``,
    keyed by the call id.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
        metadata: Optional[dict[str, Any]] = None,
        is_long_running: bool = False,
    ) -> None:
        self.func = func
        self._accepts_context = "tool_context" in inspect.signature(func).parameters
        self._background: set[asyncio.Task[Any]] = set()
        super().__init__(
            name=name or func.__name__,
            description=description or inspect.getdoc(func) or "",
            parameters=parameters or self._schema_from_signature(func),
            metadata=metadata,
            is_long_running=is_long_running,
        )

    async def execute(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        if self.is_long_running:
            return self._start_long_running(args, tool_context)
        return await self._invoke(args, tool_context)

    async def _invoke(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        kwargs = dict(args)
        if self._accepts_context:
            kwargs["tool_context"] = tool_context
        result = self.func(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _start_long_running(self, args: dict[str, Any], tool_context: ToolContext) -> ToolResult:
        correlation_id = tool_context.call_id or generate_call_id()
        pending = tool_context.pending_results
        if pending is None:
            raise ToolExecutionError(
                f"Long-running tool {self.name} requires a pending-results channel",
                details={"tool": self.name},
            )
        pending.register(correlation_id)

        async def deliver() -> None:
            try:
                value = await self._invoke(args, tool_context)
            except Exception as e:
                logger.error(f"Long-running tool {self.name} failed: {e}")
                pending.fail(correlation_id, str(e))
            else:
                pending.resolve(correlation_id, value)

        task = asyncio.create_task(deliver())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return ToolResult.pending(correlation_id)

    @staticmethod
    def _schema_from_signature(func: Callable[..., Any]) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        required: list[str] = []
        for param in inspect.signature(func).parameters.values():
            if param.name == "tool_context" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            json_type = _PYTHON_TO_JSON.get(param.annotation)
            properties[param.name] = {"type": json_type} if json_type else {}
            if param.default is inspect.Parameter.empty:
                required.append(param.name)
        return {"type": "object", "properties": properties, "required": required}
