"""Test configuration and fixtures for agent engine tests.

This module provides shared fixtures and configuration for all tests.
"""

import asyncio

import pytest
from dotenv import load_dotenv

from agent_engine.agents import AgentRun, BaseAgent, ModelBackend
from agent_engine.models import (
    Content,
    FlowConfig,
    FlowStep,
    FunctionCall,
    InvocationContext,
    ModelRequest,
    ModelResponse,
    Part,
)

# Load environment variables
load_dotenv()


class ScriptedModel(ModelBackend):
    """Model backend that replays scripted responses in order."""

    def __init__(self, responses, name="scripted-model"):
        self._responses = list(responses)
        self._name = name
        self.requests: list[ModelRequest] = []

    @property
    def model_name(self) -> str:
        return self._name

    async def generate(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if not self._responses:
            return text_response("done")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class EchoAgent(BaseAgent):
    """Agent that answers with its prefix followed by the input text."""

    def __init__(self, name, prefix="", delay=0.0, **kwargs):
        super().__init__(name=name, **kwargs)
        self.prefix = prefix
        self.delay = delay
        self.inputs: list[Content] = []

    async def _run_impl(self, message, context, session_state, outcome: AgentRun):
        self.inputs.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome.response = Content.from_text(f"{self.prefix}{message.text}", role="assistant")
        return
        yield


class FailingAgent(BaseAgent):
    """Agent that always raises."""

    def __init__(self, name, error=None, delay=0.0, **kwargs):
        super().__init__(name=name, **kwargs)
        self.error = error or RuntimeError(f"{name} failed")
        self.delay = delay

    async def _run_impl(self, message, context, session_state, outcome: AgentRun):
        if self.delay:
            await asyncio.sleep(self.delay)
        raise self.error
        yield


def text_response(text: str, total_tokens: int = 0) -> ModelResponse:
    """Build a model response with text only."""
    return ModelResponse(
        content=Content(role="assistant", parts=[Part.from_text(text)]),
        usage={"total_tokens": total_tokens} if total_tokens else {},
        finish_reason="stop",
    )


def tool_call_response(*calls: FunctionCall) -> ModelResponse:
    """Build a model response requesting tool calls."""
    return ModelResponse(tool_calls=list(calls), finish_reason="tool_calls")


@pytest.fixture
def context():
    """Create an invocation context."""
    return InvocationContext(session_id="session-1", user_id="user-1", app_name="test-app")


@pytest.fixture
def scripted_model():
    """Factory for scripted model backends."""
    return ScriptedModel


@pytest.fixture
def echo_agent():
    """Factory for echo agents."""
    return EchoAgent


@pytest.fixture
def failing_agent():
    """Factory for failing agents."""
    return FailingAgent


@pytest.fixture
def sample_flow_config():
    """Create a valid three-step sequential flow."""
    return FlowConfig(
        id="sample-flow",
        name="Sample Flow",
        version="1.0.0",
        description="Assigns, doubles and logs a value",
        steps=[
            FlowStep(id="init", name="Init", type="assign", config={"values": {"count": 2}}),
            FlowStep(
                id="double",
                name="Double",
                type="function",
                config={"function": "double"},
                inputs={"value": "variables.count"},
                outputs={"doubled": ""},
                dependencies=["init"],
            ),
            FlowStep(
                id="report",
                name="Report",
                type="log",
                config={"message": "doubled={doubled}"},
                dependencies=["double"],
            ),
        ],
    )


@pytest.fixture
def cyclic_flow_config():
    """Create a flow whose steps depend on each other."""
    return FlowConfig(
        id="cyclic-flow",
        name="Cyclic Flow",
        version="1.0.0",
        steps=[
            FlowStep(id="A", name="A", type="log", config={}, dependencies=["B"]),
            FlowStep(id="B", name="B", type="log", config={}, dependencies=["A"]),
        ],
    )


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test location."""
    for item in items:
        # Mark integration tests
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        # Mark unit tests
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
