"""Select the WhatsApp transport from settings.whatsapp_mode.

- meta:   Business Cloud API only
- web:    WhatsApp Web gateway only
- hybrid: Cloud API first, gateway when a Cloud API send fails
"""

import logging
from typing import Any, Protocol

from tanggap.whatsapp.client import MediaDownloadResult, SendResult, WhatsAppClient
from tanggap.whatsapp.web_client import WhatsAppWebClient

logger = logging.getLogger(__name__)

MODES = ("meta", "web", "hybrid")


class WhatsAppService(Protocol):
    provider: str

    async def send_text(self, to: str, text: str) -> SendResult: ...

    async def mark_as_read(self, message_id: str, from_number: str | None = None) -> bool: ...

    async def download_media(self, media_id: str) -> MediaDownloadResult: ...

    async def health_check(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class HybridWhatsAppService:
    """Send through the primary transport, retrying once on the fallback."""

    provider = "hybrid"

    def __init__(self, primary: WhatsAppService, fallback: WhatsAppService):
        self.primary = primary
        self.fallback = fallback

    async def send_text(self, to: str, text: str) -> SendResult:
        result = await self.primary.send_text(to, text)
        if result.success:
            return result

        logger.warning(
            f"{self.primary.provider} send failed ({result.error_message}); "
            f"trying {self.fallback.provider}"
        )
        return await self.fallback.send_text(to, text)

    async def mark_as_read(self, message_id: str, from_number: str | None = None) -> bool:
        if await self.primary.mark_as_read(message_id, from_number):
            return True
        return await self.fallback.mark_as_read(message_id, from_number)

    async def download_media(self, media_id: str) -> MediaDownloadResult:
        # Gateway media are addressed by URL, Cloud API media by numeric ID
        if media_id.startswith(("http://", "https://")):
            return await self.fallback.download_media(media_id)
        return await self.primary.download_media(media_id)

    async def health_check(self) -> dict[str, Any]:
        primary = await self.primary.health_check()
        fallback = await self.fallback.health_check()
        available = primary.get("available", False) or fallback.get("available", False)
        return {
            "status": "healthy" if available else "unhealthy",
            "available": available,
            "provider": self.provider,
            "primary": primary,
            "fallback": fallback,
        }

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()


def create_whatsapp_service(mode: str | None = None) -> WhatsAppService:
    if mode is None:
        from tanggap.config import settings

        mode = settings.whatsapp_mode

    mode = mode.lower()
    if mode not in MODES:
        logger.warning(f"Unknown WHATSAPP_MODE {mode!r}; using meta")
        mode = "meta"

    logger.info(f"Using WhatsApp mode: {mode}")
    if mode == "web":
        return WhatsAppWebClient()
    if mode == "hybrid":
        return HybridWhatsAppService(WhatsAppClient(), WhatsAppWebClient())
    return WhatsAppClient()


_service: WhatsAppService | None = None


def get_whatsapp_service() -> WhatsAppService:
    """Get the shared WhatsApp transport."""
    global _service
    if _service is None:
        _service = create_whatsapp_service()
    return _service
