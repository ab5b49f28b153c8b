"""Shared fixtures and test doubles."""

from typing import Any

import pytest

from clinicbot.errors import SendFailure
from clinicbot.graphs.orchestration import OrchestrationLoop
from clinicbot.models.llm import CompletionOutcome, LLMUsage
from clinicbot.models.messages import Message, ToolCallRequest
from clinicbot.services.conversation_store import InMemoryConversationStore
from clinicbot.services.gateway import MessageGateway
from clinicbot.tools.availability import GetAvailabilityInput
from clinicbot.tools.base import ToolDefinition
from clinicbot.tools.registry import ToolsRegistry


def reply(text: str, usage: LLMUsage | None = None) -> CompletionOutcome:
    """Completion outcome carrying only content."""
    return CompletionOutcome(content=text, stop_reason="end_turn", usage=usage)


def tool_call(name: str, arguments: dict[str, Any], call_id: str = "toolu_1", content: str | None = None):
    """Completion outcome requesting a single tool call."""
    return CompletionOutcome(
        content=content,
        tool_calls=[ToolCallRequest(id=call_id, name=name, arguments=arguments)],
        stop_reason="tool_use",
    )


class ScriptedCompletionClient:
    """Completion client returning a fixed sequence of outcomes.

    An exception in the script is raised instead of returned.
    """

    def __init__(self, outcomes: list[CompletionOutcome | Exception]):
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def complete(self, system_prompt, prior_messages, tools, pending_tool_results=None):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "messages": [message.model_copy(deep=True) for message in prior_messages],
                "tools": list(tools),
            }
        )
        if len(self.calls) > len(self.outcomes):
            raise AssertionError(f"Unexpected completion call #{len(self.calls)}")

        step = self.outcomes[len(self.calls) - 1]
        if isinstance(step, Exception):
            raise step
        return step


class EndlessToolCallClient:
    """Completion client that asks for a new tool call every time."""

    def __init__(self, content: str | None = None):
        self.content = content
        self.calls = 0

    async def complete(self, system_prompt, prior_messages, tools, pending_tool_results=None):
        self.calls += 1
        return tool_call(
            "get_availability",
            {"doctor_id": "dr_lee", "appointment_date": "2025-03-02T10:00:00"},
            call_id=f"toolu_{self.calls}",
            content=self.content,
        )


class RecordingSender:
    """Outbound channel that records sends and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.attempts: list[tuple[str, str]] = []
        self.sent: list[tuple[str, str]] = []

    async def send_message(self, phone_number: str, message: str) -> None:
        self.attempts.append((phone_number, message))
        if self.fail:
            raise SendFailure("Failed to send message: 500, upstream error", status_code=500)
        self.sent.append((phone_number, message))


class AvailabilityStub:
    """Availability handler returning a fixed payload and recording its inputs."""

    def __init__(self, payload: dict[str, Any] | None = None):
        self.payload = payload if payload is not None else {"available": True}
        self.calls: list[GetAvailabilityInput] = []

    async def __call__(self, params: GetAvailabilityInput) -> dict[str, Any]:
        self.calls.append(params)
        return self.payload


@pytest.fixture
def availability_stub():
    """Stubbed get_availability handler."""
    return AvailabilityStub()


@pytest.fixture
def registry(availability_stub):
    """Registry with a stubbed get_availability tool."""
    return ToolsRegistry(
        [
            ToolDefinition(
                name="get_availability",
                description="Check whether a doctor is free at a given date and time.",
                input_schema_class=GetAvailabilityInput,
                handler=availability_stub,
            )
        ]
    )


@pytest.fixture
def store():
    """Empty in-memory conversation store."""
    return InMemoryConversationStore()


@pytest.fixture
def sender():
    """Recording outbound sender."""
    return RecordingSender()


@pytest.fixture
def make_gateway(store, registry, sender):
    """Build a gateway around a given completion client."""

    def _make(completion_client, max_iterations: int = 10, context_limit: int = 5) -> MessageGateway:
        loop = OrchestrationLoop(completion_client, registry, max_iterations=max_iterations)
        return MessageGateway(store=store, loop=loop, sender=sender, context_limit=context_limit)

    return _make


def stored_message(role: str, content: str | None = None, **kwargs) -> Message:
    """Build a message for seeding the store."""
    return Message(role=role, content=content, **kwargs)
