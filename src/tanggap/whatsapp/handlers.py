"""WhatsApp webhook event handlers.

Messages from both transports (Cloud API webhook and WhatsApp Web gateway)
end up here and are run through the shared MessageProcessor.
"""

import logging

from tanggap.services.processor import MessageProcessor
from tanggap.whatsapp.client import WhatsAppMessage
from tanggap.whatsapp.webhook import WebhookEvent, WebhookEventType

logger = logging.getLogger(__name__)


class WhatsAppHandler:
    """Routes webhook events to the report pipeline.

    Example:
        >>> handler = WhatsAppHandler()
        >>> events = webhook.parse_payload(body, signature)
        >>> await handle_webhook_events(events, handler)
    """

    def __init__(self, processor: MessageProcessor | None = None):
        self.processor = processor or MessageProcessor()

    async def handle_event(self, event: WebhookEvent) -> None:
        if event.event_type == WebhookEventType.MESSAGE:
            await self.handle_message(event.message)
        elif event.event_type == WebhookEventType.STATUS:
            await self.handle_status(event)
        elif event.event_type == WebhookEventType.ERROR:
            await self.handle_error(event)

    async def handle_message(self, message: WhatsAppMessage | None) -> None:
        """Run one message through the processor.

        Failures are already answered and alerted by the processor; they are
        logged here so one bad message never stops the rest of the batch.
        """
        if message is None:
            return

        logger.info(
            f"WhatsApp {message.message_type.value} message {message.message_id} "
            f"from {message.from_number}"
        )
        try:
            result = await self.processor.process(message)
        except Exception as e:
            logger.error(f"Message {message.message_id} failed: {e}")
            return

        logger.info(f"Message {message.message_id} processed: {result.reason}")

    async def handle_status(self, event: WebhookEvent) -> None:
        status = event.status
        if not status:
            return

        logger.info(
            f"Message {status.message_id} status: {status.status.value} "
            f"(recipient: {status.recipient_id})"
        )

    async def handle_error(self, event: WebhookEvent) -> None:
        logger.error(f"WhatsApp webhook error: {event.error}")


_handler: WhatsAppHandler | None = None


def get_whatsapp_handler() -> WhatsAppHandler:
    """Get the shared WhatsApp handler instance."""
    global _handler
    if _handler is None:
        _handler = WhatsAppHandler()
    return _handler


async def handle_webhook_events(
    events: list[WebhookEvent], handler: WhatsAppHandler | None = None
) -> None:
    """Process a batch of webhook events in order."""
    handler = handler or get_whatsapp_handler()
    for event in events:
        await handler.handle_event(event)
