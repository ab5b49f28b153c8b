"""Node implementations for the orchestration graph."""

from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from clinicbot.errors import CompletionError
from clinicbot.graphs.state import LoopState
from clinicbot.models.llm import LLMToolDefinition
from clinicbot.models.messages import Message
from clinicbot.services.completion import CompletionClient
from clinicbot.services.dispatcher import ToolDispatcher
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)

Node = Callable[[LoopState], Awaitable[dict[str, Any]]]


def create_completion_node(completion_client: CompletionClient, tools: list[LLMToolDefinition]) -> Node:
    async def completion_node(state: LoopState) -> dict[str, Any]:
        """Ask the model for the next step.

        This node:
        1. Sends prior context plus this turn's messages to the model
        2. Records the assistant message, if the model produced one
        3. Finishes the turn unless tool calls are pending
        """
        completion_calls = state.completion_calls + 1
        logger.info(f"Completion call {completion_calls} for conversation {state.conversation_id}")

        try:
            outcome = await completion_client.complete(
                state.system_prompt,
                [*state.prior_context, *state.new_turn_messages],
                tools,
            )
        except CompletionError as e:
            logger.error(f"Completion failed for conversation {state.conversation_id}: {e}")
            return {
                "completion_calls": completion_calls,
                "pending_tool_calls": [],
                "finished": True,
                "finish_reason": "completion_error",
            }

        usage = replace(state.usage)
        usage.add(outcome.usage)
        updates: dict[str, Any] = {"completion_calls": completion_calls, "usage": usage}

        if outcome.has_tool_calls:
            logger.info(f"Model requested {len(outcome.tool_calls)} tool calls")
            assistant_message = Message(role="assistant", content=outcome.content, tool_calls=outcome.tool_calls)
            return {
                **updates,
                "new_turn_messages": [assistant_message],
                "pending_tool_calls": outcome.tool_calls,
            }

        if outcome.content:
            return {
                **updates,
                "new_turn_messages": [Message(role="assistant", content=outcome.content)],
                "pending_tool_calls": [],
                "finished": True,
                "finish_reason": "reply",
            }

        logger.warning(f"Model returned neither content nor tool calls for conversation {state.conversation_id}")
        return {**updates, "pending_tool_calls": [], "finished": True, "finish_reason": "no_reply"}

    return completion_node


def create_dispatch_node(dispatcher: ToolDispatcher, max_iterations: int) -> Node:
    async def dispatch_node(state: LoopState) -> dict[str, Any]:
        """Run pending tool calls, or stop the turn once the iteration bound is hit."""
        iterations = state.iterations + 1

        if iterations >= max_iterations:
            logger.warning(
                f"Iteration bound ({max_iterations}) reached for conversation {state.conversation_id}; "
                f"{len(state.pending_tool_calls)} tool calls left undispatched"
            )
            return {
                "iterations": iterations,
                "pending_tool_calls": [],
                "finished": True,
                "finish_reason": "iteration_bound",
            }

        results = await dispatcher.dispatch(state.pending_tool_calls)
        return {
            "iterations": iterations,
            "new_turn_messages": [Message.from_tool_result(result) for result in results],
            "pending_tool_calls": [],
        }

    return dispatch_node
