"""WATI WhatsApp API client for outbound session messages."""

from typing import Protocol

import httpx

from clinicbot.config import WatiConfig
from clinicbot.errors import SendFailure
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)


class MessageSender(Protocol):
    """Outbound channel used to deliver replies."""

    async def send_message(self, phone_number: str, message: str) -> None:
        """Deliver ``message`` to ``phone_number``.

        Raises:
            SendFailure: If the channel rejects the message
        """
        ...


class WatiClient:
    """Sends session messages through the WATI REST API."""

    def __init__(self, config: WatiConfig, http_client: httpx.AsyncClient | None = None):
        """Initialize WATI client.

        Args:
            config: API endpoint, token and timeout
            http_client: Optional shared HTTP client
        """
        self.config = config
        self.http_client = http_client or httpx.AsyncClient(timeout=config.timeout)

    async def send_message(self, phone_number: str, message: str) -> None:
        """Send a free-form message inside an open WhatsApp session.

        Args:
            phone_number: Recipient WhatsApp ID
            message: Message text

        Raises:
            SendFailure: On transport errors or a non-2xx response
        """
        url = f"{self.config.api_url}/api/v1/sendSessionMessage/{phone_number}"
        logger.info(f"Sending message to {phone_number}: {message[:50]}...")

        try:
            response = await self.http_client.post(
                url,
                params={"messageText": message},
                headers={"Authorization": self.config.api_token, "Content-Type": "application/json"},
                timeout=self.config.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Error sending message to {phone_number}: {e}")
            raise SendFailure(f"Failed to send message: {e}") from e

        if response.is_error:
            logger.error(f"Failed to send message: {response.status_code}, {response.text}")
            raise SendFailure(
                f"Failed to send message: {response.status_code}, {response.text}",
                status_code=response.status_code,
            )

        logger.info(f"Message sent successfully to {phone_number}")
