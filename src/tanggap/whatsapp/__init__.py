"""WhatsApp transports for report intake.

Two transports are supported: the WhatsApp Business Cloud API and a
self-hosted WhatsApp Web gateway. See tanggap.whatsapp.factory for how one is
picked.
"""

from tanggap.whatsapp.client import WhatsAppClient, WhatsAppMessage
from tanggap.whatsapp.web_client import WhatsAppWebClient
from tanggap.whatsapp.webhook import WebhookEvent, WhatsAppWebhook

__all__ = [
    "WhatsAppClient",
    "WhatsAppMessage",
    "WhatsAppWebClient",
    "WhatsAppWebhook",
    "WebhookEvent",
]
