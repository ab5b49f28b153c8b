"""API endpoints for the clinic WhatsApp assistant."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from clinicbot import __version__
from clinicbot.errors import TransportError
from clinicbot.models.webhook import HealthResponse, WatiWebhookPayload, WebhookResponse
from clinicbot.services.gateway import MessageGateway, TurnOutcome, get_message_gateway
from clinicbot.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

OUTCOME_MESSAGES = {
    "replied": "Message processed and replied",
    "no_reply": "Message processed, no reply generated",
    "send_failed": "Message processed, reply could not be delivered",
    "duplicate": "Message already processed",
}


def _to_response(outcome: TurnOutcome) -> WebhookResponse:
    if outcome.status == "ignored":
        return WebhookResponse(status="success", message=outcome.detail)
    return WebhookResponse(status="success", message=OUTCOME_MESSAGES[outcome.status])


@router.post("/wati-webhook", response_model=WebhookResponse, tags=["Webhook"])
async def handle_wati_webhook(
    payload: WatiWebhookPayload,
    gateway: MessageGateway = Depends(get_message_gateway),
) -> WebhookResponse | JSONResponse:
    """Handle an inbound WATI event.

    Every accepted event is acknowledged with 200, including turns where no
    reply was sent, so the provider does not redeliver them.
    """
    logger.info(f"Received {payload.event_type} webhook for conversation {payload.conversation_id}")

    try:
        outcome = await gateway.handle_webhook(payload)
    except TransportError as e:
        logger.warning(f"Rejected webhook payload: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error processing webhook for conversation {payload.conversation_id}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"status": "error", "message": "Error processing message"})

    return _to_response(outcome)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
