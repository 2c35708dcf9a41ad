"""Flow lifecycle hooks.

Subclass FlowLifecycleHooks and override the hooks you need. Execution
hooks are called by the FlowManager, step hooks by the FlowExecutor.
"""

from ..models import FlowContext, FlowExecutionResult, FlowStep, FlowStepResult


class FlowLifecycleHooks:
    """Base class for flow lifecycle hooks. Every hook is a no-op."""

    async def before_execution(self, context: FlowContext) -> None:
        """Called before a flow execution starts."""

    async def after_execution(self, result: FlowExecutionResult) -> None:
        """Called after a flow execution completed successfully."""

    async def on_error(self, error: Exception, context: FlowContext) -> None:
        """Called when a flow execution fails."""

    async def before_step(self, step: FlowStep, context: FlowContext) -> None:
        pass

    async def after_step(self, step: FlowStep, result: FlowStepResult, context: FlowContext) -> None:
        pass

    async def on_step_error(self, step: FlowStep, error: Exception, context: FlowContext) -> None:
        pass
