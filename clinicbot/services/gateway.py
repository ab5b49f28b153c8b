"""Message gateway connecting the webhook, the conversation log and the orchestration loop."""

from dataclasses import dataclass
from typing import Literal

import httpx

from clinicbot.clients.anthropic import AnthropicClient
from clinicbot.clients.wati import MessageSender, WatiClient
from clinicbot.config import Settings
from clinicbot.errors import SendFailure, TransportError
from clinicbot.graphs.orchestration import OrchestrationLoop
from clinicbot.models.messages import Message
from clinicbot.models.webhook import WatiWebhookPayload
from clinicbot.services.availability import ConvexAvailabilityService, InMemoryAvailabilityService
from clinicbot.services.completion import CompletionClient
from clinicbot.services.conversation_store import ConversationStore, InMemoryConversationStore
from clinicbot.tools.registry import create_default_registry
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)

TurnStatus = Literal["replied", "no_reply", "send_failed", "duplicate", "ignored"]


@dataclass
class TurnOutcome:
    """What happened to one inbound event."""

    status: TurnStatus
    reply: str | None = None
    detail: str = ""


def build_prior_context(messages: list[Message]) -> list[Message]:
    """Keep the user and assistant text that is replayed to the model.

    Tool traffic stays in the store but is not replayed: a context window can
    cut between a tool call and its result, which the model would reject.
    """
    return [
        message.model_copy(update={"tool_calls": None})
        for message in messages
        if message.role in ("user", "assistant") and message.has_content
    ]


class MessageGateway:
    """Runs one inbound message through persistence, the loop and delivery."""

    def __init__(
        self,
        store: ConversationStore,
        loop: OrchestrationLoop,
        sender: MessageSender,
        context_limit: int = 5,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the gateway.

        Args:
            store: Conversation log
            loop: Orchestration loop producing replies
            sender: Outbound channel adapter
            context_limit: Number of exchanged messages loaded as prior context
            http_client: Shared HTTP client owned by the gateway, closed by ``aclose``
        """
        self.store = store
        self.loop = loop
        self.sender = sender
        self.context_limit = context_limit
        self.http_client = http_client

    async def handle_webhook(self, payload: WatiWebhookPayload) -> TurnOutcome:
        """Filter a webhook event and process it if it is a new user message.

        Raises:
            TransportError: If a message event lacks the sender, conversation or text
        """
        if payload.is_own_echo:
            logger.info("Bot message received, ignoring")
            return TurnOutcome(status="ignored", detail="Bot message received, ignoring")

        if not payload.is_inbound_message:
            logger.info(f"Ignoring {payload.event_type} event of type {payload.type}")
            return TurnOutcome(status="ignored", detail="Non-text or non-user message received, ignoring")

        required = {"waId": payload.wa_id, "conversationId": payload.conversation_id, "text": payload.text}
        missing = [name for name, value in required.items() if not (value and value.strip())]
        if missing:
            raise TransportError(f"Message event missing required fields: {', '.join(missing)}")

        return await self.handle_inbound(payload.wa_id, payload.conversation_id, payload.text, message_id=payload.id)

    async def handle_inbound(
        self,
        address: str,
        conversation_id: str,
        text: str,
        message_id: str | None = None,
    ) -> TurnOutcome:
        """Persist an inbound message, run the loop and deliver at most one reply.

        Args:
            address: Sender address (WhatsApp ID)
            conversation_id: Channel conversation identifier
            text: Message text
            message_id: Provider message ID; a locally generated ID is used when absent

        Returns:
            Outcome of the turn
        """
        if message_id and await self.store.contains(conversation_id, message_id):
            logger.info(f"Message {message_id} already processed for conversation {conversation_id}, skipping")
            return TurnOutcome(status="duplicate", detail="Message already processed")

        user_fields = {"id": message_id} if message_id else {}
        user_message = Message(role="user", content=text, direction="inbound", address=address, **user_fields)

        prior_context = build_prior_context(
            await self.store.recent(conversation_id, self.context_limit, channel_only=True)
        )

        await self.store.append(conversation_id, user_message)
        logger.info(f"Incoming message {user_message.id} persisted for conversation {conversation_id}")

        result = await self.loop.run(conversation_id, user_message, prior_context)
        reply = result.reply

        for message in result.messages[1:]:
            if message is reply:
                message = message.model_copy(
                    update={
                        "id": f"response_{user_message.id}",
                        "direction": "outbound",
                        "address": address,
                    }
                )
            await self.store.append(conversation_id, message)

        if reply is None:
            logger.warning(
                f"No reply generated for conversation {conversation_id} ({result.finish_reason}), nothing sent"
            )
            return TurnOutcome(status="no_reply", detail=result.finish_reason)

        try:
            await self.sender.send_message(address, reply.content)
        except SendFailure as e:
            logger.error(f"Reply for conversation {conversation_id} could not be delivered: {e}")
            return TurnOutcome(status="send_failed", reply=reply.content, detail=str(e))

        logger.info(f"Response sent successfully for conversation {conversation_id}")
        return TurnOutcome(status="replied", reply=reply.content)

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        if self.http_client is not None:
            await self.http_client.aclose()


def create_message_gateway(settings: Settings) -> MessageGateway:
    """Wire the production gateway from settings.

    The WATI and records clients share one HTTP client, closed with the gateway.
    """
    http_client = httpx.AsyncClient()

    if settings.records.convex_url:
        availability_service = ConvexAvailabilityService(
            settings.records.convex_url, settings.records.timeout, http_client=http_client
        )
    else:
        logger.warning("CONVEX_URL not set, using in-memory availability data")
        availability_service = InMemoryAvailabilityService()

    registry = create_default_registry(availability_service)
    completion_client = CompletionClient(
        AnthropicClient(settings.anthropic_api_key, settings.anthropic),
        temperature=settings.orchestrator.temperature,
    )
    loop = OrchestrationLoop(completion_client, registry, max_iterations=settings.orchestrator.max_iterations)

    return MessageGateway(
        store=InMemoryConversationStore(),
        loop=loop,
        sender=WatiClient(settings.wati, http_client=http_client),
        context_limit=settings.orchestrator.context_limit,
        http_client=http_client,
    )


_message_gateway: MessageGateway | None = None


def get_message_gateway() -> MessageGateway:
    """Get or create the message gateway instance."""
    global _message_gateway
    if _message_gateway is None:
        _message_gateway = create_message_gateway(Settings.from_env())
    return _message_gateway


async def close_message_gateway() -> None:
    """Release the gateway instance and its HTTP connections, if one was created."""
    global _message_gateway
    if _message_gateway is not None:
        await _message_gateway.aclose()
        _message_gateway = None
