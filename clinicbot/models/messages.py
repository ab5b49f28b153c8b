"""Message and conversation data models."""

from datetime import UTC, datetime
from typing import Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field, model_validator

cuid = cuid_wrapper()

Role = Literal["user", "assistant", "system", "tool"]
Direction = Literal["inbound", "outbound"]


def new_message_id() -> str:
    """Generate a locally unique message ID."""
    return cuid()


class ToolCallRequest(BaseModel):
    """A tool call requested by the assistant."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Result of executing one tool call."""

    tool_call_id: str
    name: str
    content: str
    is_error: bool = False


class Message(BaseModel):
    """A single turn in a conversation."""

    id: str = Field(default_factory=new_message_id)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    role: Role
    content: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    is_error: bool = False
    direction: Direction | None = None
    address: str | None = None

    @model_validator(mode="after")
    def check_tool_fields(self) -> "Message":
        """Tool results must reference a call; only the assistant issues calls."""
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("Tool messages must reference a tool_call_id")
        if self.tool_calls and self.role != "assistant":
            raise ValueError("Only assistant messages can carry tool calls")
        return self

    @property
    def has_content(self) -> bool:
        """Whether the message carries non-blank text."""
        return bool(self.content and self.content.strip())

    @property
    def has_tool_calls(self) -> bool:
        """Whether the message requests at least one tool call."""
        return bool(self.tool_calls)

    @classmethod
    def from_tool_result(cls, result: ToolResult) -> "Message":
        """Wrap a tool result as a ``tool`` message."""
        return cls(
            role="tool",
            content=result.content,
            tool_call_id=result.tool_call_id,
            name=result.name,
            is_error=result.is_error,
        )


def final_reply(messages: list[Message]) -> Message | None:
    """Return the last assistant message with non-empty content, if any."""
    for message in reversed(messages):
        if message.role == "assistant" and message.has_content:
            return message
    return None
