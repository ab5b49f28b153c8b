"""State definitions for the orchestration graph."""

import operator
from dataclasses import dataclass
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from clinicbot.models.llm import LLMUsage
from clinicbot.models.messages import Message, ToolCallRequest, final_reply

FinishReason = Literal["reply", "no_reply", "completion_error", "iteration_bound"]


class LoopState(BaseModel):
    """State of one turn as it moves through the graph.

    Built fresh for every inbound message and discarded when the turn ends.
    """

    conversation_id: str
    system_prompt: str

    # Context replayed to the model, never modified
    prior_context: list[Message] = Field(default_factory=list)

    # Messages produced during this turn, starting with the user message
    new_turn_messages: Annotated[list[Message], operator.add] = Field(default_factory=list)

    # Tool calls from the latest assistant message awaiting dispatch
    pending_tool_calls: list[ToolCallRequest] = Field(default_factory=list)

    # Control flow
    iterations: int = 0
    completion_calls: int = 0
    finished: bool = False
    finish_reason: FinishReason | None = None

    # Token usage summed over the turn's completion calls
    usage: LLMUsage = Field(default_factory=LLMUsage)


@dataclass
class LoopResult:
    """Outcome of running one turn through the orchestration loop."""

    messages: list[Message]
    finish_reason: FinishReason
    iterations: int
    completion_calls: int
    usage: LLMUsage

    @property
    def reply(self) -> Message | None:
        """The last assistant message with content, which is sent to the user."""
        return final_reply(self.messages)

    @classmethod
    def from_state(cls, state: LoopState) -> "LoopResult":
        return cls(
            messages=list(state.new_turn_messages),
            finish_reason=state.finish_reason or "no_reply",
            iterations=state.iterations,
            completion_calls=state.completion_calls,
            usage=state.usage,
        )
