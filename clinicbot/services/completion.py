"""Completion client translating conversation messages to the Anthropic wire format."""

from anthropic import APIError, APIStatusError

from clinicbot.clients.anthropic import AnthropicClient, AnthropicMessage, AnthropicTool, CacheControl
from clinicbot.errors import CompletionError
from clinicbot.models.llm import (
    CompletionOutcome,
    ContentBlock,
    LLMToolDefinition,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from clinicbot.models.messages import Message, ToolCallRequest, ToolResult
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)


class CompletionClient:
    """Stateless adapter between domain messages and the completion service."""

    def __init__(self, client: AnthropicClient, temperature: float = 0.3):
        """Initialize completion client.

        Args:
            client: Low-level Anthropic client
            temperature: Sampling temperature for every request
        """
        self.client = client
        self.temperature = temperature

    async def complete(
        self,
        system_prompt: str,
        prior_messages: list[Message],
        tools: list[LLMToolDefinition],
        pending_tool_results: list[ToolResult] | None = None,
    ) -> CompletionOutcome:
        """Ask the model for the next step of the conversation.

        Args:
            system_prompt: System prompt for this turn
            prior_messages: Ordered context followed by this turn's messages
            tools: Tool catalogue advertised to the model
            pending_tool_results: Tool results not yet present in ``prior_messages``

        Returns:
            The model's content and/or tool call requests

        Raises:
            CompletionError: If the completion service call fails
        """
        messages = list(prior_messages)
        if pending_tool_results:
            messages.extend(Message.from_tool_result(result) for result in pending_tool_results)

        wire_messages, extra_system = to_wire_messages(messages)
        if extra_system:
            system_prompt = "\n\n".join([system_prompt, *extra_system])

        try:
            response = await self.client.create_message(
                messages=wire_messages,
                system_prompt=system_prompt,
                tools=to_wire_tools(tools),
                temperature=self.temperature,
            )
        except APIStatusError as e:
            logger.error(f"Completion service returned {e.status_code}: {e.message}")
            raise CompletionError(f"Completion service error: {e.message}", status_code=e.status_code) from e
        except APIError as e:
            logger.error(f"Completion service call failed: {e}")
            raise CompletionError(f"Completion service call failed: {e}") from e

        outcome = CompletionOutcome(stop_reason=response.stop_reason, usage=response.usage)
        texts = []
        for block in response.content:
            if isinstance(block, TextBlock):
                texts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                outcome.tool_calls.append(ToolCallRequest(id=block.id, name=block.name, arguments=block.input))

        content = "\n\n".join(text for text in texts if text.strip())
        outcome.content = content or None

        logger.debug(
            f"Completion outcome from {response.model} - stop reason: {outcome.stop_reason}, "
            f"content: {bool(outcome.content)}, tool calls: {len(outcome.tool_calls)}"
        )
        return outcome


def to_wire_messages(messages: list[Message]) -> tuple[list[AnthropicMessage], list[str]]:
    """Convert domain messages to alternating Anthropic turns.

    Tool results travel as ``tool_result`` blocks inside a user turn, and
    consecutive turns with the same role are merged into one. System
    messages are returned separately so they can join the system prompt.

    Returns:
        Wire messages and any system message texts found in the input
    """
    turns: list[tuple[str, list[ContentBlock]]] = []
    system_texts: list[str] = []

    for message in messages:
        if message.role == "system":
            if message.has_content:
                system_texts.append(message.content)
            continue

        blocks = _to_blocks(message)
        if not blocks:
            continue

        role = "assistant" if message.role == "assistant" else "user"
        if turns and turns[-1][0] == role:
            turns[-1][1].extend(blocks)
        else:
            turns.append((role, blocks))

    # The Messages API requires the first turn to come from the user
    while turns and turns[0][0] != "user":
        turns.pop(0)

    return [AnthropicMessage(role=role, content=blocks) for role, blocks in turns], system_texts


def _to_blocks(message: Message) -> list[ContentBlock]:
    if message.role == "tool":
        return [
            ToolResultBlock(tool_use_id=message.tool_call_id, content=message.content or "", is_error=message.is_error)
        ]

    blocks: list[ContentBlock] = []
    if message.has_content:
        blocks.append(TextBlock(text=message.content))
    if message.role == "assistant":
        for call in message.tool_calls or []:
            blocks.append(ToolUseBlock(id=call.id, name=call.name, input=call.arguments))
    return blocks


def to_wire_tools(tools: list[LLMToolDefinition]) -> list[AnthropicTool]:
    """Convert the tool catalogue, caching it via the last tool definition."""
    wire_tools = []
    for i, tool in enumerate(tools):
        # Cache control on the last tool caches all tool definitions
        cache_control = CacheControl(type="ephemeral", ttl="5m") if i == len(tools) - 1 else None
        wire_tools.append(
            AnthropicTool(
                name=tool.name,
                description=tool.description,
                input_schema=tool.input_schema,
                cache_control=cache_control,
            )
        )
    return wire_tools
