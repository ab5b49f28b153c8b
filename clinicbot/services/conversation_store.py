"""Append-only conversation log interface and implementations."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from clinicbot.models.messages import Message
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Conversation:
    """Ordered message history for one channel conversation."""

    conversation_id: str
    address: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    messages: list[Message] = field(default_factory=list)
    message_ids: set[str] = field(default_factory=set)


class ConversationStore(Protocol):
    """Interface for the message log that backs conversation context."""

    async def append(self, conversation_id: str, message: Message) -> None:
        """Append a message to a conversation.

        Appending a message whose ID is already stored is a no-op.
        """
        ...

    async def recent(self, conversation_id: str, limit: int, channel_only: bool = False) -> list[Message]:
        """Get up to ``limit`` most recent messages, oldest first.

        With ``channel_only``, only messages exchanged with the user (those
        with a direction) are counted and returned.
        """
        ...

    async def contains(self, conversation_id: str, message_id: str) -> bool:
        """Check whether a message ID has already been stored."""
        ...


class InMemoryConversationStore:
    """In-memory conversation store.

    Each append completes without yielding to the event loop, so concurrent
    turns never observe a half-written conversation.
    """

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}

    async def append(self, conversation_id: str, message: Message) -> None:
        """Append a copy of the message, keeping timestamps non-decreasing."""
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            conversation = Conversation(conversation_id=conversation_id, address=message.address)
            self.conversations[conversation_id] = conversation
            logger.info(f"Started conversation {conversation_id}")

        if message.id in conversation.message_ids:
            logger.debug(f"Message {message.id} already stored for conversation {conversation_id}")
            return

        stored = message.model_copy(deep=True)
        if conversation.messages and stored.created_at < conversation.messages[-1].created_at:
            stored.created_at = conversation.messages[-1].created_at

        conversation.messages.append(stored)
        conversation.message_ids.add(stored.id)

    async def recent(self, conversation_id: str, limit: int, channel_only: bool = False) -> list[Message]:
        """Get the last ``limit`` messages in insertion order."""
        conversation = self.conversations.get(conversation_id)
        if conversation is None or limit <= 0:
            return []

        messages = conversation.messages
        if channel_only:
            messages = [message for message in messages if message.direction is not None]
        return [message.model_copy(deep=True) for message in messages[-limit:]]

    async def contains(self, conversation_id: str, message_id: str) -> bool:
        conversation = self.conversations.get(conversation_id)
        return conversation is not None and message_id in conversation.message_ids

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        return self.conversations.get(conversation_id)
