"""Error taxonomy for the agent engine.

All errors raised by the engine derive from AgentEngineError so callers can
catch engine failures without catching unrelated exceptions.
"""

from typing import Any, Optional


class AgentEngineError(Exception):
    """Base class for all engine errors.

    Attributes:
        message: Human-readable error message
        code: Optional machine-readable error code
        details: Additional structured context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigurationError(AgentEngineError):
    """Raised at construction or registration time for invalid configuration."""


class ToolExecutionError(AgentEngineError):
    """Raised by a tool call; agents convert it into an error response."""


class ModelInvocationError(AgentEngineError):
    """Raised when the model backend fails. Ends the run."""


class ContextLimitError(ModelInvocationError):
    """Raised when the model context window is exceeded."""


class ResourceLimitError(AgentEngineError):
    """Raised when a concurrency or capacity ceiling is hit. Never retried."""


class ValidationError(AgentEngineError):
    """Raised when a validated object is rejected.

    Attributes:
        errors: All collected validation errors
    """

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.errors = list(errors or [])


class TimeoutError(AgentEngineError):
    """Raised when a wall-clock limit is exceeded."""


class NotFoundError(AgentEngineError):
    """Raised for an unknown flow, step, execution or session id."""


class SessionError(AgentEngineError):
    """Classified failure raised by the Runner."""


class StepExecutionError(AgentEngineError):
    """Raised when a flow step fails.

    Attributes:
        step_id: Failing step id
    """

    def __init__(
        self,
        message: str,
        step_id: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.step_id = step_id


class FlowExecutionError(AgentEngineError):
    """Raised when a flow execution fails.

    Attributes:
        step_results: Step results collected before the failure
    """

    def __init__(
        self,
        message: str,
        step_results: Optional[list[Any]] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.step_results = list(step_results or [])
