"""WhatsApp Web gateway client.

Talks to a WhatsApp Web protocol gateway (a WAHA-compatible REST sidecar)
that holds a linked-device session for a regular WhatsApp number. Used when
no Business account is available, or as a fallback to the Cloud API.

The gateway posts incoming messages to /webhook/whatsapp-web; parse_event
turns those into the same WhatsAppMessage the Cloud API webhook produces.
"""

import hmac
import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from tanggap.whatsapp.client import (
    DEFAULT_TIMEOUT,
    MediaDownloadResult,
    MessageType,
    SendResult,
    WhatsAppMessage,
    normalize_recipient,
    truncate_message,
)

logger = logging.getLogger(__name__)

PERSONAL_CHAT_SUFFIX = "@c.us"

_MIME_PREFIX_TYPES = {
    "image/": MessageType.IMAGE,
    "video/": MessageType.VIDEO,
    "audio/": MessageType.AUDIO,
}


def to_chat_id(phone_number: str) -> str:
    return f"{normalize_recipient(phone_number)}{PERSONAL_CHAT_SUFFIX}"


def _media_type_for(mime_type: str | None) -> MessageType:
    for prefix, message_type in _MIME_PREFIX_TYPES.items():
        if mime_type and mime_type.startswith(prefix):
            return message_type
    return MessageType.DOCUMENT


class WhatsAppWebClient:
    """REST client for a WhatsApp Web gateway session.

    Args:
        base_url: Gateway URL, e.g. http://waha:3000
        session: Gateway session name
        api_key: Value for the X-Api-Key header, sent to the gateway and
            expected back on every event it posts to us
    """

    provider = "web"

    def __init__(
        self,
        base_url: str | None = None,
        session: str | None = None,
        api_key: str | None = None,
    ):
        from tanggap.config import settings

        self.base_url = (base_url or settings.whatsapp_web_url).rstrip("/")
        self.session = session or settings.whatsapp_web_session
        self.api_key = api_key if api_key is not None else settings.whatsapp_web_api_key
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["X-Api-Key"] = self.api_key
            self._client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, headers=headers)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_text(self, to: str, text: str) -> SendResult:
        if not self.is_configured:
            return SendResult(
                success=False,
                error_message="WhatsApp Web gateway not configured",
                provider=self.provider,
            )

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.base_url}/api/sendText",
                json={
                    "session": self.session,
                    "chatId": to_chat_id(to),
                    "text": truncate_message(text),
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"WhatsApp Web gateway error: {e.response.status_code} {e.response.text}")
            return SendResult(
                success=False,
                error_code=str(e.response.status_code),
                error_message=e.response.text,
                provider=self.provider,
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach WhatsApp Web gateway: {e}")
            return SendResult(success=False, error_message=str(e), provider=self.provider)

        data = response.json() if response.content else {}
        message_id = data.get("id")
        if isinstance(message_id, dict):
            message_id = message_id.get("_serialized")
        return SendResult(success=True, message_id=message_id, provider=self.provider)

    async def mark_as_read(self, message_id: str, from_number: str | None = None) -> bool:
        if not self.is_configured or not from_number:
            return False

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.base_url}/api/sendSeen",
                json={
                    "session": self.session,
                    "chatId": to_chat_id(from_number),
                    "messageIds": [message_id],
                },
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to mark message as seen: {e}")
            return False

    async def download_media(self, media_id: str) -> MediaDownloadResult:
        """Fetch media; the gateway identifies media by its download URL."""
        client = await self._get_client()
        try:
            response = await client.get(media_id)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Gateway media download failed: {e}")
            return MediaDownloadResult(success=False, error_message=str(e))

        return MediaDownloadResult(
            success=True,
            content=response.content,
            mime_type=response.headers.get("content-type"),
        )

    async def health_check(self) -> dict[str, Any]:
        if not self.is_configured:
            return {"status": "unconfigured", "available": False, "provider": self.provider}

        client = await self._get_client()
        try:
            response = await client.get(f"{self.base_url}/api/sessions/{self.session}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            return {
                "status": "unhealthy",
                "available": False,
                "provider": self.provider,
                "error": str(e),
            }

        session_status = response.json().get("status", "UNKNOWN")
        return {
            "status": "healthy" if session_status == "WORKING" else "unhealthy",
            "available": session_status == "WORKING",
            "provider": self.provider,
            "session_status": session_status,
        }

    def verify_event_key(self, provided: str | None) -> bool:
        """Check the X-Api-Key the gateway sent with an event.

        Events are refused outright while no key is configured.
        """
        if not self.api_key or not provided:
            return False
        return hmac.compare_digest(provided.encode(), self.api_key.encode())

    def parse_event(self, event: dict[str, Any]) -> WhatsAppMessage | None:
        """Convert a gateway "message" event into a WhatsAppMessage.

        Returns None for other events, our own messages, groups and broadcasts.
        """
        if event.get("event") != "message":
            return None

        payload = event.get("payload") or {}
        chat_id = payload.get("from", "")
        if payload.get("fromMe") or not chat_id.endswith(PERSONAL_CHAT_SUFFIX):
            return None

        try:
            timestamp = datetime.fromtimestamp(int(payload.get("timestamp")), tz=UTC)
        except (TypeError, ValueError):
            timestamp = datetime.now(UTC)

        message = WhatsAppMessage(
            message_id=str(payload.get("id", "")),
            from_number=normalize_recipient(chat_id.removesuffix(PERSONAL_CHAT_SUFFIX)),
            timestamp=timestamp,
            message_type=MessageType.TEXT,
            text=payload.get("body") or "",
            contact_name=(payload.get("_data") or {}).get("notifyName"),
        )

        media = payload.get("media") or {}
        if payload.get("hasMedia") and media.get("url"):
            message.media_id = media["url"]
            message.media_mime_type = media.get("mimetype")
            message.media_filename = media.get("filename")
            message.message_type = _media_type_for(message.media_mime_type)

        location = payload.get("location") or {}
        latitude, longitude = location.get("latitude"), location.get("longitude")
        if latitude is not None and longitude is not None:
            try:
                message.latitude = float(latitude)
                message.longitude = float(longitude)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed location in message {message.message_id}")
                message.latitude = message.longitude = None
            else:
                message.message_type = MessageType.LOCATION
                message.location_name = location.get("description")
                message.text = message.text or message.location_name or ""

        return message
