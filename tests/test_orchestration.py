"""Tests for the orchestration loop."""

import json
from datetime import datetime

import pytest
from conftest import EndlessToolCallClient, ScriptedCompletionClient, reply, tool_call

from clinicbot.errors import CompletionError
from clinicbot.graphs.edges import route_completion_output, route_dispatch_output
from clinicbot.graphs.orchestration import OrchestrationLoop, get_system_prompt
from clinicbot.graphs.state import LoopState
from clinicbot.models.llm import CompletionOutcome, LLMUsage
from clinicbot.models.messages import Message, ToolCallRequest

DR_LEE_ARGS = {"doctor_id": "dr_lee", "appointment_date": "2025-03-02T10:00:00"}


def user(text: str) -> Message:
    return Message(role="user", content=text)


class TestSingleIteration:
    """Turns answered without any tool calls."""

    @pytest.mark.asyncio
    async def test_content_only_reply_finishes_in_one_call(self, registry):
        """Test that a content-only completion ends the turn immediately."""
        client = ScriptedCompletionClient([reply("Hello! How can I help?")])
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("hi"), [])

        assert len(client.calls) == 1
        assert result.finish_reason == "reply"
        assert result.completion_calls == 1
        assert result.iterations == 0
        assert result.reply.content == "Hello! How can I help?"
        assert [m.role for m in result.messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_prior_context_precedes_new_turn(self, registry):
        """Test that prior context is sent before the new user message."""
        client = ScriptedCompletionClient([reply("Sure")])
        loop = OrchestrationLoop(client, registry)
        prior = [user("earlier question"), Message(role="assistant", content="earlier answer")]

        await loop.run("conv_1", user("new question"), prior)

        sent = client.calls[0]["messages"]
        assert [m.content for m in sent] == ["earlier question", "earlier answer", "new question"]

    @pytest.mark.asyncio
    async def test_tool_catalogue_and_system_prompt_are_sent(self, registry):
        """Test that every call advertises the registry's tools."""
        client = ScriptedCompletionClient([reply("Sure")])
        loop = OrchestrationLoop(client, registry)

        await loop.run("conv_1", user("hi"), [])

        assert [tool.name for tool in client.calls[0]["tools"]] == ["get_availability"]
        assert "get_availability" in client.calls[0]["system_prompt"]

    @pytest.mark.asyncio
    async def test_empty_completion_produces_no_reply(self, registry):
        """Test that a completion with neither content nor tool calls ends without a reply."""
        client = ScriptedCompletionClient([CompletionOutcome()])
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("hi"), [])

        assert result.finish_reason == "no_reply"
        assert result.reply is None
        assert [m.role for m in result.messages] == ["user"]


class TestToolIterations:
    """Turns that go through tool dispatch."""

    @pytest.mark.asyncio
    async def test_tool_call_then_reply(self, registry, availability_stub):
        """Test the tool call, tool result, final reply sequence."""
        client = ScriptedCompletionClient(
            [
                tool_call("get_availability", DR_LEE_ARGS),
                reply("Dr. Lee is available tomorrow at 10:00."),
            ]
        )
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("book me with Dr. Lee tomorrow"), [])

        assert [m.role for m in result.messages] == ["user", "assistant", "tool", "assistant"]
        assert result.messages[1].tool_calls[0].name == "get_availability"
        assert result.messages[2].tool_call_id == "toolu_1"
        assert json.loads(result.messages[2].content) == {"available": True}
        assert result.reply.content == "Dr. Lee is available tomorrow at 10:00."
        assert result.finish_reason == "reply"
        assert result.iterations == 1
        assert availability_stub.calls[0].doctor_id == "dr_lee"

    @pytest.mark.asyncio
    async def test_tool_results_are_fed_back_to_the_model(self, registry):
        """Test that the second completion call sees the assistant call and its result."""
        client = ScriptedCompletionClient([tool_call("get_availability", DR_LEE_ARGS), reply("Done")])
        loop = OrchestrationLoop(client, registry)

        await loop.run("conv_1", user("book me"), [])

        second_call = client.calls[1]["messages"]
        assert [m.role for m in second_call] == ["user", "assistant", "tool"]
        assert second_call[1].tool_calls[0].id == second_call[2].tool_call_id

    @pytest.mark.asyncio
    async def test_content_and_tool_calls_share_one_message(self, registry):
        """Test that commentary alongside tool calls is kept on the same assistant message."""
        client = ScriptedCompletionClient(
            [tool_call("get_availability", DR_LEE_ARGS, content="Let me check."), reply("He is free.")]
        )
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("is Dr. Lee free?"), [])

        assert result.messages[1].content == "Let me check."
        assert result.messages[1].has_tool_calls
        assert result.reply.content == "He is free."

    @pytest.mark.asyncio
    async def test_empty_tool_call_list_is_a_final_reply(self, registry, availability_stub):
        """Test that an empty tool call list behaves like no tool calls."""
        client = ScriptedCompletionClient([CompletionOutcome(content="All set.", tool_calls=[])])
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("thanks"), [])

        assert result.finish_reason == "reply"
        assert availability_stub.calls == []

    @pytest.mark.asyncio
    async def test_multiple_tool_calls_keep_request_order(self, registry):
        """Test that one tool message is appended per call in request order."""
        outcome = CompletionOutcome(
            tool_calls=[
                ToolCallRequest(id="toolu_a", name="get_availability", arguments=DR_LEE_ARGS),
                ToolCallRequest(id="toolu_b", name="get_prescriptions", arguments={}),
                ToolCallRequest(
                    id="toolu_c",
                    name="get_availability",
                    arguments={"doctor_id": "dr_patel", "appointment_date": "2025-03-02T14:00:00"},
                ),
            ]
        )
        client = ScriptedCompletionClient([outcome, reply("Here is what I found.")])
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("check both doctors"), [])

        tool_messages = [m for m in result.messages if m.role == "tool"]
        assert [m.tool_call_id for m in tool_messages] == ["toolu_a", "toolu_b", "toolu_c"]
        assert json.loads(tool_messages[1].content)["error"] == "unknown tool"
        assert [m.is_error for m in tool_messages] == [False, True, False]
        assert result.reply.content == "Here is what I found."

    @pytest.mark.asyncio
    async def test_usage_is_accumulated_across_calls(self, registry):
        """Test that token usage from every completion call is summed."""
        first = tool_call("get_availability", DR_LEE_ARGS)
        first.usage = LLMUsage(input_tokens=100, output_tokens=20, cache_read_input_tokens=80)
        client = ScriptedCompletionClient([first, reply("ok", LLMUsage(input_tokens=150, output_tokens=10))])
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("hi"), [])

        assert result.usage.input_tokens == 250
        assert result.usage.output_tokens == 30
        assert result.usage.cache_read_input_tokens == 80
        assert result.usage.total_tokens == 280


class TestTermination:
    """Early exits of the loop."""

    @pytest.mark.asyncio
    async def test_iteration_bound_stops_endless_tool_calls(self, registry, availability_stub):
        """Test termination at the bound when the model never stops calling tools."""
        client = EndlessToolCallClient()
        loop = OrchestrationLoop(client, registry, max_iterations=3)

        result = await loop.run("conv_1", user("hi"), [])

        assert client.calls == 3
        assert result.finish_reason == "iteration_bound"
        assert result.reply is None
        # The final batch of tool calls is not dispatched
        assert len(availability_stub.calls) == 2
        assert result.messages[-1].role == "assistant"
        assert result.messages[-1].has_tool_calls

    @pytest.mark.asyncio
    async def test_default_iteration_bound(self, registry):
        """Test that the default bound allows ten completion calls."""
        client = EndlessToolCallClient()
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("hi"), [])

        assert client.calls == 10
        assert result.completion_calls == 10
        assert result.finish_reason == "iteration_bound"

    @pytest.mark.asyncio
    async def test_iteration_bound_keeps_earlier_content_as_reply(self, registry):
        """Test that content sent alongside tool calls survives a bounded exit."""
        client = EndlessToolCallClient(content="Let me check that for you.")
        loop = OrchestrationLoop(client, registry, max_iterations=2)

        result = await loop.run("conv_1", user("hi"), [])

        assert result.finish_reason == "iteration_bound"
        assert result.reply.content == "Let me check that for you."

    @pytest.mark.asyncio
    async def test_bound_of_one_allows_a_single_completion(self, registry, availability_stub):
        """Test that a bound of one never dispatches tools."""
        client = EndlessToolCallClient()
        loop = OrchestrationLoop(client, registry, max_iterations=1)

        result = await loop.run("conv_1", user("hi"), [])

        assert client.calls == 1
        assert availability_stub.calls == []
        assert result.finish_reason == "iteration_bound"

    @pytest.mark.asyncio
    async def test_completion_error_on_first_call(self, registry):
        """Test that a failing first call ends the turn without a reply."""
        client = ScriptedCompletionClient([CompletionError("Completion service error: overloaded", status_code=529)])
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("hi"), [])

        assert result.finish_reason == "completion_error"
        assert result.reply is None
        assert [m.role for m in result.messages] == ["user"]

    @pytest.mark.asyncio
    async def test_completion_error_after_tool_dispatch(self, registry):
        """Test that messages produced before a failure are kept."""
        client = ScriptedCompletionClient(
            [tool_call("get_availability", DR_LEE_ARGS), CompletionError("Completion service call failed")]
        )
        loop = OrchestrationLoop(client, registry)

        result = await loop.run("conv_1", user("hi"), [])

        assert result.finish_reason == "completion_error"
        assert [m.role for m in result.messages] == ["user", "assistant", "tool"]
        assert result.reply is None

    def test_invalid_bound_rejected(self, registry):
        """Test that a bound below one is rejected."""
        with pytest.raises(ValueError, match="max_iterations must be at least 1"):
            OrchestrationLoop(ScriptedCompletionClient([]), registry, max_iterations=0)


class TestRouting:
    """Tests for graph edge functions."""

    def _state(self, **kwargs) -> LoopState:
        return LoopState(conversation_id="conv_1", system_prompt="prompt", **kwargs)

    def test_completion_routes_to_dispatch_when_calls_pending(self):
        """Test that pending tool calls lead to dispatch."""
        state = self._state(pending_tool_calls=[ToolCallRequest(id="t1", name="get_availability")])
        assert route_completion_output(state) == "dispatch"

    def test_completion_routes_to_end_when_finished(self):
        """Test that a finished turn ends the graph."""
        assert route_completion_output(self._state(finished=True, finish_reason="reply")) == "end"
        assert route_completion_output(self._state()) == "end"

    def test_dispatch_routes_back_to_completion(self):
        """Test that dispatch returns to the model unless the bound was hit."""
        assert route_dispatch_output(self._state()) == "complete"
        assert route_dispatch_output(self._state(finished=True, finish_reason="iteration_bound")) == "end"


class TestSystemPrompt:
    """Tests for system prompt generation."""

    def test_lists_tools_and_date(self, registry):
        """Test that the prompt names each tool and today's date."""
        prompt = get_system_prompt(registry, now=datetime(2025, 3, 1, 9, 30))

        assert "- get_availability: Check whether a doctor is free" in prompt
        assert "Today is Saturday, 2025-03-01 09:30." in prompt
        assert "reply in the language used by the user" in prompt
