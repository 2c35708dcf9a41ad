"""Unit tests for agents."""

import pytest

from agent_engine.agents import LlmAgent, LoopAgent, ParallelAgent, Plugin, SequentialAgent, collect_run
from agent_engine.errors import ConfigurationError, ModelInvocationError
from agent_engine.models import (
    AgentEndEvent,
    AgentStartEvent,
    Content,
    ErrorEvent,
    EventType,
    FunctionCall,
    IterationEndEvent,
    IterationStartEvent,
    ModelResponse,
    Part,
    ToolResponseEvent,
)
from agent_engine.tools import FunctionTool


def add(a: int, b: int) -> int:
    """Add two integers."""
    return a + b


def answer(text):
    return ModelResponse(content=Content(role="assistant", parts=[Part.from_text(text)]), finish_reason="stop")


def call(name, call_id, **arguments):
    return ModelResponse(tool_calls=[FunctionCall(name=name, arguments=arguments, id=call_id)], finish_reason="tool_calls")


class RecordingPlugin(Plugin):
    """Plugin that records hook names."""

    name = "recording"

    def __init__(self):
        self.calls = []

    async def before_agent_run(self, agent, message, context):
        self.calls.append("before_agent_run")

    async def after_agent_run(self, agent, response, context):
        self.calls.append("after_agent_run")

    async def before_tool_call(self, call, context):
        self.calls.append(f"before_tool_call:{call.name}")

    async def after_tool_call(self, call, response, context):
        self.calls.append(f"after_tool_call:{call.name}")

    async def on_error(self, error, context, **details):
        self.calls.append("on_error")


class BrokenPlugin(Plugin):
    """Plugin whose hooks always raise."""

    name = "broken"

    async def before_agent_run(self, agent, message, context):
        raise RuntimeError("plugin failure")

    async def after_agent_run(self, agent, response, context):
        raise RuntimeError("plugin failure")


class TestBaseAgent:
    """Tests for shared agent behaviour."""

    def test_duplicate_tools_rejected(self, scripted_model):
        """Test that tool names must be unique per agent."""
        with pytest.raises(ConfigurationError, match="Duplicate tool name: add"):
            LlmAgent("calc", scripted_model([]), tools=[FunctionTool(add), FunctionTool(add)])

    def test_empty_name_rejected(self, echo_agent):
        """Test that a name is required."""
        with pytest.raises(ConfigurationError):
            echo_agent("  ")

    def test_sub_agent_links(self, echo_agent):
        """Test parent links and lookup of nested agents."""
        inner = echo_agent("inner")
        outer = SequentialAgent("outer", [inner])
        assert inner.parent_agent is outer
        assert inner.root_agent is outer
        assert outer.find_agent("inner") is inner
        assert outer.find_agent("missing") is None


@pytest.mark.asyncio
class TestLlmAgent:
    """Tests for LlmAgent."""

    async def test_plain_answer(self, scripted_model, context):
        """Test a single model call without tools."""
        model = scripted_model([answer("Hello!")])
        agent = LlmAgent("assistant", model, instruction="Be nice")

        events, response = await collect_run(agent, Content.from_text("Hi"), context)

        assert [e.type for e in events] == [
            EventType.AGENT_START,
            EventType.MODEL_REQUEST,
            EventType.MODEL_RESPONSE,
            EventType.AGENT_END,
        ]
        assert response.text == "Hello!"
        assert model.requests[0].system_instruction == "Be nice"
        assert events[0].context.agent_name == "assistant"

    async def test_tool_loop(self, scripted_model, context):
        """Test that tool results are fed back to the model."""
        model = scripted_model([call("add", "c1", a=1, b=2), answer("The sum is 3")])
        agent = LlmAgent("calc", model, tools=[FunctionTool(add)])

        events, response = await collect_run(agent, Content.from_text("1+2?"), context)

        assert [e.type for e in events] == [
            EventType.AGENT_START,
            EventType.MODEL_REQUEST,
            EventType.MODEL_RESPONSE,
            EventType.TOOL_CALL,
            EventType.TOOL_RESPONSE,
            EventType.MODEL_REQUEST,
            EventType.MODEL_RESPONSE,
            EventType.AGENT_END,
        ]
        tool_response = next(e for e in events if isinstance(e, ToolResponseEvent)).response
        assert tool_response.content == "3"
        assert tool_response.id == "c1"

        second_request = model.requests[1]
        assert [m.role for m in second_request.messages] == ["user", "assistant", "tool"]
        assert second_request.tools[0]["function"]["name"] == "add"
        assert response.text == "The sum is 3"
        assert not response.has_function_calls()

    async def test_missing_tool_becomes_error_response(self, scripted_model, context):
        """Test that an unknown tool does not fail the run."""
        model = scripted_model([call("nope", "c1"), answer("sorry")])
        agent = LlmAgent("assistant", model)

        events, response = await collect_run(agent, Content.from_text("go"), context)

        tool_response = next(e for e in events if isinstance(e, ToolResponseEvent)).response
        assert tool_response.is_error
        assert tool_response.error == "Tool 'nope' not found"
        assert response.text == "sorry"

    async def test_tool_failure_becomes_error_response(self, scripted_model, context):
        """Test that invalid arguments produce an error response."""
        model = scripted_model([call("add", "c1", a=1), answer("failed")])
        agent = LlmAgent("calc", model, tools=[FunctionTool(add)])

        events, _ = await collect_run(agent, Content.from_text("go"), context)

        tool_response = next(e for e in events if isinstance(e, ToolResponseEvent)).response
        assert "Missing required parameter: b" in tool_response.error

    async def test_max_iterations_leaves_calls_unresolved(self, scripted_model, context):
        """Test that the iteration cap returns the pending tool calls."""
        model = scripted_model([call("add", f"c{i}", a=i, b=i) for i in range(5)])
        agent = LlmAgent("calc", model, tools=[FunctionTool(add)], max_iterations=2)

        events, response = await collect_run(agent, Content.from_text("loop"), context)

        assert len(model.requests) == 2
        assert response.has_function_calls()
        assert response.function_calls[0].id == "c1"
        assert isinstance(events[-1], AgentEndEvent)

    async def test_continuation_resolves_pending_calls(self, scripted_model, context):
        """Test that an assistant message with calls is resolved first."""
        model = scripted_model([answer("4")])
        agent = LlmAgent("calc", model, tools=[FunctionTool(add)])
        continuation = Content(
            role="assistant",
            parts=[Part.from_function_call(FunctionCall(name="add", arguments={"a": 2, "b": 2}, id="c7"))],
        )

        events, response = await collect_run(agent, continuation, context)

        assert events[1].type == EventType.TOOL_CALL
        assert events[2].response.content == "4"
        assert response.text == "4"

    async def test_model_failure_ends_with_error(self, scripted_model, context):
        """Test that a backend failure yields ERROR and re-raises."""
        model = scripted_model([ModelInvocationError("backend down")])
        agent = LlmAgent("assistant", model)

        events = []
        with pytest.raises(ModelInvocationError):
            async for event in agent.run(Content.from_text("Hi"), context):
                events.append(event)

        assert isinstance(events[0], AgentStartEvent)
        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].error == "backend down"
        assert events[-1].source == "assistant"

    async def test_plugins(self, scripted_model, context):
        """Test plugin hooks run and plugin failures are ignored."""
        recording = RecordingPlugin()
        model = scripted_model([call("add", "c1", a=1, b=1), answer("2")])
        agent = LlmAgent("calc", model, tools=[FunctionTool(add)], plugins=[BrokenPlugin(), recording])

        _, response = await collect_run(agent, Content.from_text("1+1"), context)

        assert response.text == "2"
        assert recording.calls == [
            "before_agent_run",
            "before_tool_call:add",
            "after_tool_call:add",
            "after_agent_run",
        ]

    def test_invalid_max_iterations(self, scripted_model):
        """Test that max_iterations must be positive."""
        with pytest.raises(ConfigurationError):
            LlmAgent("calc", scripted_model([]), max_iterations=0)


@pytest.mark.asyncio
class TestSequentialAgent:
    """Tests for SequentialAgent."""

    async def test_pass_results(self, echo_agent, context):
        """Test that each response becomes the next input."""
        first, second = echo_agent("first", prefix="A:"), echo_agent("second", prefix="B:")
        agent = SequentialAgent("pipeline", [first, second])

        events, response = await collect_run(agent, Content.from_text("hi"), context)

        assert second.inputs[0].text == "A:hi"
        assert [p.text for p in response.parts] == ["A:hi", "B:A:hi"]
        starts = [e.agent_name for e in events if isinstance(e, AgentStartEvent)]
        assert starts == ["pipeline", "first", "second"]

    async def test_without_pass_results(self, echo_agent, context):
        """Test that every agent receives the original message."""
        first, second = echo_agent("first", prefix="A:"), echo_agent("second", prefix="B:")
        agent = SequentialAgent("pipeline", [first, second], pass_results=False)

        _, response = await collect_run(agent, Content.from_text("hi"), context)

        assert second.inputs[0].text == "hi"
        assert response.text == "A:hiB:hi"

    async def test_failure_stops_pipeline(self, echo_agent, failing_agent, context):
        """Test that a failing sub-agent fails the sequence."""
        last = echo_agent("last")
        agent = SequentialAgent("pipeline", [failing_agent("boom"), last])

        with pytest.raises(RuntimeError, match="boom failed"):
            await collect_run(agent, Content.from_text("hi"), context)
        assert last.inputs == []

    def test_requires_agents(self):
        """Test that at least one agent is required."""
        with pytest.raises(ConfigurationError):
            SequentialAgent("empty", [])


@pytest.mark.asyncio
class TestParallelAgent:
    """Tests for ParallelAgent."""

    async def test_wait_for_all_groups_events(self, echo_agent, context):
        """Test events are grouped in registration order."""
        slow, fast = echo_agent("slow", prefix="S:", delay=0.02), echo_agent("fast", prefix="F:")
        agent = ParallelAgent("fanout", [slow, fast])

        events, response = await collect_run(agent, Content.from_text("x"), context)

        names = [e.agent_name for e in events if isinstance(e, AgentEndEvent)]
        assert names == ["slow", "fast", "fanout"]
        assert response.text == "S:xF:x"

    async def test_wait_for_all_failure(self, echo_agent, failing_agent, context):
        """Test that one failure fails the whole invocation."""
        agent = ParallelAgent("fanout", [echo_agent("ok"), failing_agent("bad")])

        with pytest.raises(RuntimeError, match="bad failed"):
            await collect_run(agent, Content.from_text("x"), context)

    async def test_best_effort_isolates_failures(self, echo_agent, failing_agent, context):
        """Test that failures are reported and the others still answer."""
        agent = ParallelAgent(
            "fanout",
            [echo_agent("one", prefix="1:"), failing_agent("bad"), echo_agent("two", prefix="2:")],
            wait_for_all=False,
        )

        events, response = await collect_run(agent, Content.from_text("x"), context)

        errors = [e for e in events if isinstance(e, ErrorEvent)]
        assert len(errors) == 1
        assert errors[0].source == "bad"
        starts = [e.agent_name for e in events if isinstance(e, AgentStartEvent)]
        assert "bad" not in starts
        assert sorted(starts) == ["fanout", "one", "two"]
        assert [p.text for p in response.parts] == ["1:x", "2:x"]
        assert isinstance(events[-1], AgentEndEvent)
        assert events[-1].agent_name == "fanout"

    async def test_first_response_without_combine(self, echo_agent, context):
        """Test that the first response is returned without combining."""
        agent = ParallelAgent(
            "fanout", [echo_agent("one", prefix="1:"), echo_agent("two", prefix="2:")], combine_results=False
        )

        _, response = await collect_run(agent, Content.from_text("x"), context)

        assert response.text == "1:x"


@pytest.mark.asyncio
class TestLoopAgent:
    """Tests for LoopAgent."""

    async def test_runs_max_iterations(self, echo_agent, context):
        """Test one iteration event pair per iteration."""
        inner = echo_agent("inner", prefix=">")
        agent = LoopAgent("loop", inner, max_iterations=3)

        events, response = await collect_run(agent, Content.from_text("hi"), context)

        starts = [e.iteration for e in events if isinstance(e, IterationStartEvent)]
        ends = [e.iteration for e in events if isinstance(e, IterationEndEvent)]
        assert starts == [0, 1, 2]
        assert ends == [0, 1, 2]
        assert [m.text for m in inner.inputs] == ["hi", "hi", "hi"]
        assert response.text == ">hi"

    async def test_condition_and_transform(self, echo_agent, context):
        """Test that the condition stops and the transform chains inputs."""
        inner = echo_agent("inner", prefix=">")

        async def keep_going(iteration, last_response, ctx):
            return iteration < 2

        agent = LoopAgent(
            "loop",
            inner,
            max_iterations=5,
            condition=keep_going,
            transform=lambda iteration, last, original: last or original,
        )

        _, response = await collect_run(agent, Content.from_text("hi"), context)

        assert [m.text for m in inner.inputs] == ["hi", ">hi"]
        assert response.text == ">>hi"

    async def test_zero_iterations(self, echo_agent, context):
        """Test the placeholder response when nothing ran."""
        agent = LoopAgent("loop", echo_agent("inner"), max_iterations=0)

        _, response = await collect_run(agent, Content.from_text("hi"), context)

        assert response.text == "No response generated"
