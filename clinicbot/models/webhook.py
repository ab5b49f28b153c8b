"""Webhook payload and HTTP response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PROCESSABLE_EVENT_TYPE = "message"
PROCESSABLE_MESSAGE_TYPES = frozenset({"text", "interactive"})


class WatiWebhookPayload(BaseModel):
    """Inbound event posted by WATI.

    Only ``eventType`` is required at the envelope level; delivery receipts
    and other status events omit most message fields.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_type: str = Field(..., alias="eventType")
    id: str | None = None
    whatsapp_message_id: str | None = Field(None, alias="whatsappMessageId")
    conversation_id: str | None = Field(None, alias="conversationId")
    ticket_id: str | None = Field(None, alias="ticketId")
    text: str | None = None
    type: str | None = None
    data: Any = None
    timestamp: str | None = None
    owner: bool = False
    status_string: str | None = Field(None, alias="statusString")
    wa_id: str | None = Field(None, alias="waId")
    sender_name: str | None = Field(None, alias="senderName")

    @property
    def is_own_echo(self) -> bool:
        """Whether WATI is echoing a message this service sent."""
        return self.owner

    @property
    def is_inbound_message(self) -> bool:
        """Whether this event is a new text or interactive message from a user."""
        return self.event_type == PROCESSABLE_EVENT_TYPE and self.type in PROCESSABLE_MESSAGE_TYPES


class WebhookResponse(BaseModel):
    """Response body returned to the webhook source."""

    status: str
    message: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
