"""WhatsApp webhook endpoints.

Meta expects a fast 200 for every delivery and retries anything else, so
messages are processed in a background task after the response is sent.
"""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from tanggap.api.deps import get_handler, get_web_client, get_webhook
from tanggap.whatsapp.handlers import WhatsAppHandler, handle_webhook_events
from tanggap.whatsapp.web_client import WhatsAppWebClient
from tanggap.whatsapp.webhook import (
    WebhookParseError,
    WebhookVerificationError,
    WhatsAppWebhook,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.get("", response_class=PlainTextResponse)
async def verify_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
    webhook: WhatsAppWebhook = Depends(get_webhook),
) -> PlainTextResponse:
    try:
        return PlainTextResponse(webhook.verify_webhook(mode, token, challenge))
    except WebhookVerificationError as e:
        logger.warning(f"Webhook verification failed: {e}")
        return PlainTextResponse("Forbidden", status_code=403)


@router.post("", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    webhook: WhatsAppWebhook = Depends(get_webhook),
    handler: WhatsAppHandler = Depends(get_handler),
) -> PlainTextResponse:
    body = await request.body()
    try:
        events = webhook.parse_payload(body, request.headers.get("X-Hub-Signature-256"))
    except WebhookVerificationError as e:
        logger.warning(f"Rejected webhook: {e}")
        raise HTTPException(status_code=403, detail="Invalid signature") from e
    except WebhookParseError as e:
        # Still acknowledged, or Meta keeps redelivering the same bad payload
        logger.error(f"Unparseable webhook payload: {e}")
        return PlainTextResponse("OK")

    if events:
        background_tasks.add_task(handle_webhook_events, events, handler)
    return PlainTextResponse("OK")


@router.post("/whatsapp-web")
async def receive_gateway_event(
    request: Request,
    background_tasks: BackgroundTasks,
    web_client: WhatsAppWebClient = Depends(get_web_client),
    handler: WhatsAppHandler = Depends(get_handler),
) -> dict[str, Any]:
    if not web_client.api_key:
        logger.warning("Rejected gateway event: WHATSAPP_WEB_API_KEY is not set")
        raise HTTPException(status_code=403, detail="Gateway events are disabled")
    if not web_client.verify_event_key(request.headers.get("X-Api-Key")):
        logger.warning("Rejected gateway event with a missing or wrong API key")
        raise HTTPException(status_code=401, detail="Invalid API key")

    try:
        payload = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    message = web_client.parse_event(payload)
    if message is not None:
        background_tasks.add_task(handler.handle_message, message)
    return {"success": True}
