"""Integration tests: flows combining tools, agents and nested flows."""

import pytest

from agent_engine.agents import LlmAgent
from agent_engine.flows import FlowManager, StepExecutorRegistry
from agent_engine.models import (
    Content,
    FlowConfig,
    FlowExecutionMode,
    FlowStatus,
    FlowStep,
    ModelResponse,
    Part,
    StepStatus,
)
from agent_engine.tools import FunctionTool


def lookup(key: str) -> str:
    """Look up a value by key."""
    return f"value-of-{key}"


def answer(text):
    return ModelResponse(content=Content(role="assistant", parts=[Part.from_text(text)]))


def enrich_flow():
    return FlowConfig(
        id="enrich",
        name="Enrich",
        version="1.0.0",
        steps=[
            FlowStep(id="fetch", name="Fetch", type="tool", config={"tool": "lookup"}, inputs={"key": "input.topic"}),
            FlowStep(
                id="summarize",
                name="Summarize",
                type="agent",
                config={"agent": "writer"},
                inputs={"message": "steps.fetch"},
                outputs={"summary": ""},
                dependencies=["fetch"],
            ),
        ],
    )


def make_manager(model):
    registry = StepExecutorRegistry.with_builtins(
        tools=[FunctionTool(lookup)],
        agents=[LlmAgent(name="writer", model=model, use_session_history=False)],
    )
    return FlowManager(step_registry=registry)


@pytest.mark.asyncio
class TestFlowManagerEndToEnd:
    """FlowManager with tool, agent and subflow steps."""

    async def test_tool_then_agent(self, scripted_model):
        """Test a tool result feeding an agent step."""
        model = scripted_model([answer("Summary of value-of-weather")])
        manager = make_manager(model)
        await manager.register_flow(enrich_flow())

        result = await manager.execute_flow("enrich", {"topic": "weather"})

        assert result.status == FlowStatus.COMPLETED
        assert result.output == {"fetch": "value-of-weather", "summary": "Summary of value-of-weather"}
        assert model.requests[0].messages[-1].text == "value-of-weather"
        assert [s.status for s in result.step_results] == [StepStatus.COMPLETED, StepStatus.COMPLETED]

    async def test_subflow(self, scripted_model):
        """Test a registered flow called as a nested step."""
        manager = make_manager(scripted_model([answer("nested summary")]))
        await manager.register_flow(enrich_flow())
        await manager.register_flow(
            FlowConfig(
                id="report",
                name="Report",
                version="1.0.0",
                mode=FlowExecutionMode.PARALLEL,
                steps=[
                    FlowStep(
                        id="run",
                        name="Run enrich",
                        type="subflow",
                        config={"flow_id": "enrich"},
                        inputs={"topic": "input.topic"},
                    ),
                    FlowStep(
                        id="note",
                        name="Note",
                        type="log",
                        config={"message": "report for {topic}"},
                        inputs={"topic": "input.topic"},
                    ),
                ],
            )
        )
        events = []
        manager.add_event_listener("*", lambda event: events.append(event.type.value))

        result = await manager.execute_flow("report", {"topic": "rain"})

        assert result.status == FlowStatus.COMPLETED
        assert result.output["run"] == {"fetch": "value-of-rain", "summary": "nested summary"}
        assert result.output["note"] == {"message": "report for rain"}
        assert events[0] == "flow_started"
        assert events[-1] == "flow_completed"
        assert events.count("step_completed") == 2

    async def test_agent_failure(self, scripted_model):
        """Test a failing model recorded as a failed execution."""
        manager = make_manager(scripted_model([RuntimeError("model down")]))
        await manager.register_flow(enrich_flow())

        result = await manager.execute_flow("enrich", {"topic": "weather"})

        assert result.status == FlowStatus.FAILED
        assert "model down" in result.error
        assert result.error_code == "STEP_EXECUTION_FAILED"
        assert [s.status for s in result.step_results] == [StepStatus.COMPLETED, StepStatus.FAILED]

        stats = manager.get_flow_stats()
        assert stats.failed_executions == 1
        assert manager.get_flow_metrics("enrich").failure_count == 1
