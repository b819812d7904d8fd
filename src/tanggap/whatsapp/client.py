"""WhatsApp Business Cloud API client.

Sends replies to reporters and fetches media they attach. Requires a Phone
Number ID and an access token from Meta for Developers.

See: https://developers.facebook.com/docs/whatsapp/cloud-api/get-started
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
MEDIA_TIMEOUT = 60.0

# Maximum message length for WhatsApp
MAX_MESSAGE_LENGTH = 4096


class MessageType(str, Enum):
    """Types of WhatsApp messages."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    VOICE = "voice"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACTS = "contacts"
    INTERACTIVE = "interactive"
    BUTTON = "button"
    UNKNOWN = "unknown"


MEDIA_MESSAGE_TYPES = {
    MessageType.IMAGE,
    MessageType.VIDEO,
    MessageType.AUDIO,
    MessageType.VOICE,
    MessageType.DOCUMENT,
}


@dataclass
class WhatsAppMessage:
    """An incoming WhatsApp message, whichever channel delivered it."""

    message_id: str
    from_number: str
    timestamp: datetime
    message_type: MessageType
    text: str | None = None
    contact_name: str | None = None
    # Media fields (image, video, audio, voice, document)
    media_id: str | None = None
    media_mime_type: str | None = None
    media_filename: str | None = None
    # Location fields
    latitude: float | None = None
    longitude: float | None = None
    location_name: str | None = None
    location_address: str | None = None
    context_message_id: str | None = None

    @property
    def has_media(self) -> bool:
        return self.media_id is not None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def body(self) -> str:
        """Text to extract from: the message text or the media caption."""
        return (self.text or "").strip()


@dataclass
class SendResult:
    """Result of sending a WhatsApp message."""

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    provider: str = "meta"
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class MediaDownloadResult:
    """Result of downloading media from WhatsApp."""

    success: bool
    content: bytes | None = None
    mime_type: str | None = None
    error_message: str | None = None


def normalize_recipient(to: str) -> str:
    """Strip everything but digits from a recipient number."""
    return re.sub(r"\D", "", to or "")


def truncate_message(text: str) -> str:
    if len(text) > MAX_MESSAGE_LENGTH:
        return text[: MAX_MESSAGE_LENGTH - 3] + "..."
    return text


class WhatsAppClient:
    """WhatsApp Business Cloud API client.

    Args:
        phone_number_id: The WhatsApp Business Phone Number ID
        access_token: Meta access token with whatsapp_business_messaging permission
        api_version: Graph API version

    Example:
        >>> client = WhatsAppClient(phone_number_id="123456789", access_token="EAABc...")
        >>> await client.send_text("6281234567890", "Laporan diterima")
    """

    provider = "meta"

    def __init__(
        self,
        phone_number_id: str | None = None,
        access_token: str | None = None,
        api_version: str | None = None,
    ):
        from tanggap.config import settings

        self.phone_number_id = phone_number_id or settings.whatsapp_phone_number_id
        self.access_token = access_token or settings.whatsapp_access_token
        self.api_version = api_version or settings.whatsapp_api_version

        self._graph_url = f"https://graph.facebook.com/{self.api_version}"
        self._base_url = f"{self._graph_url}/{self.phone_number_id}"
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        """Check if WhatsApp credentials are configured."""
        return bool(self.phone_number_id and self.access_token)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=DEFAULT_TIMEOUT,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_text(self, to: str, text: str, preview_url: bool = False) -> SendResult:
        """Send a text message.

        Args:
            to: Recipient phone number; non-digits are stripped
            text: Message text, truncated to 4096 characters
            preview_url: Whether to show URL previews
        """
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": normalize_recipient(to),
            "type": "text",
            "text": {
                "preview_url": preview_url,
                "body": truncate_message(text),
            },
        }
        return await self._send_message(payload)

    async def download_media(self, media_id: str) -> MediaDownloadResult:
        """Download media content by ID.

        WhatsApp media download is a two-step process:
        1. Get the media URL from the media ID
        2. Download the actual content from the URL
        """
        client = await self._get_client()

        try:
            url_response = await client.get(f"{self._graph_url}/{media_id}")
            url_response.raise_for_status()
            media_info = url_response.json()
            media_url = media_info.get("url")

            if not media_url:
                return MediaDownloadResult(
                    success=False,
                    error_message="No media URL in response",
                )

            content_response = await client.get(media_url, timeout=MEDIA_TIMEOUT)
            content_response.raise_for_status()

            return MediaDownloadResult(
                success=True,
                content=content_response.content,
                mime_type=media_info.get("mime_type")
                or content_response.headers.get("content-type"),
            )

        except httpx.HTTPStatusError as e:
            logger.error(f"Media download HTTP error: {e}")
            return MediaDownloadResult(
                success=False,
                error_message=f"HTTP {e.response.status_code}: {e.response.text}",
            )
        except httpx.HTTPError as e:
            logger.error(f"Media download failed: {e}")
            return MediaDownloadResult(success=False, error_message=str(e))

    async def mark_as_read(self, message_id: str, from_number: str | None = None) -> bool:
        """Mark a message as read. from_number is unused by the Cloud API."""
        client = await self._get_client()

        try:
            response = await client.post(
                f"{self._base_url}/messages",
                json={
                    "messaging_product": "whatsapp",
                    "status": "read",
                    "message_id": message_id,
                },
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to mark message as read: {e}")
            return False

    async def health_check(self) -> dict[str, Any]:
        if not self.is_configured:
            return {"status": "unconfigured", "available": False, "provider": self.provider}

        client = await self._get_client()
        try:
            response = await client.get(
                self._base_url, params={"fields": "display_phone_number,verified_name"}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            return {
                "status": "unhealthy",
                "available": False,
                "provider": self.provider,
                "error": str(e),
            }

        data = response.json()
        return {
            "status": "healthy",
            "available": True,
            "provider": self.provider,
            "phone_number": data.get("display_phone_number"),
        }

    async def _send_message(self, payload: dict) -> SendResult:
        client = await self._get_client()

        try:
            response = await client.post(f"{self._base_url}/messages", json=payload)
            response.raise_for_status()

            messages = response.json().get("messages", [])
            if messages:
                logger.info(f"WhatsApp message sent to {payload.get('to')}")
                return SendResult(success=True, message_id=messages[0].get("id"))
            return SendResult(success=False, error_message="No message ID in response")

        except httpx.HTTPStatusError as e:
            try:
                error = e.response.json().get("error", {})
            except ValueError:
                error = {}

            logger.error(f"WhatsApp API error: {error or e.response.text}")
            return SendResult(
                success=False,
                error_code=str(error.get("code", e.response.status_code)),
                error_message=error.get("message", e.response.text),
            )

        except httpx.HTTPError as e:
            logger.error(f"Failed to send WhatsApp message: {e}")
            return SendResult(success=False, error_message=str(e))
