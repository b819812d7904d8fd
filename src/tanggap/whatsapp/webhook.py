"""WhatsApp Business Cloud API webhook parsing.

Meta delivers incoming reports and delivery receipts as webhook POSTs, after
a one-time GET handshake that echoes hub.challenge.

See: https://developers.facebook.com/docs/whatsapp/cloud-api/webhooks/components
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from tanggap.whatsapp.client import MessageType, WhatsAppMessage

logger = logging.getLogger(__name__)


class WebhookEventType(str, Enum):
    """Types of webhook events."""

    MESSAGE = "message"
    STATUS = "status"
    ERROR = "error"


class MessageStatus(str, Enum):
    """Message delivery status values."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


@dataclass
class StatusUpdate:
    """A delivery receipt for a message we sent."""

    message_id: str
    status: MessageStatus
    timestamp: datetime
    recipient_id: str
    error_code: str | None = None
    error_title: str | None = None


@dataclass
class WebhookEvent:
    """A parsed webhook event."""

    event_type: WebhookEventType
    timestamp: datetime
    message: WhatsAppMessage | None = None
    status: StatusUpdate | None = None
    error: dict | None = None
    raw_data: dict = field(default_factory=dict)

    @property
    def is_message(self) -> bool:
        return self.event_type == WebhookEventType.MESSAGE


class WebhookVerificationError(Exception):
    """Raised when webhook verification fails."""


class WebhookParseError(Exception):
    """Raised when webhook payload cannot be parsed."""


def _parse_timestamp(value) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (ValueError, TypeError):
        return datetime.now(UTC)


class WhatsAppWebhook:
    """Webhook verification and payload parsing.

    Args:
        verify_token: Token configured in the Meta console for the handshake
        app_secret: Meta App Secret for X-Hub-Signature-256 checks (optional)
    """

    def __init__(
        self,
        verify_token: str | None = None,
        app_secret: str | None = None,
    ):
        from tanggap.config import settings

        self.verify_token = (
            verify_token if verify_token is not None else settings.whatsapp_verify_token
        )
        self.app_secret = app_secret if app_secret is not None else settings.whatsapp_app_secret

    def verify_webhook(
        self,
        mode: str | None,
        token: str | None,
        challenge: str | None,
    ) -> str:
        """Answer Meta's subscription handshake.

        Returns:
            The challenge string to echo back

        Raises:
            WebhookVerificationError: If mode, token or challenge are wrong
        """
        if mode != "subscribe":
            raise WebhookVerificationError(f"Invalid mode: {mode}")

        if not self.verify_token or not token or not hmac.compare_digest(token, self.verify_token):
            raise WebhookVerificationError("Token mismatch")

        if not challenge:
            raise WebhookVerificationError("No challenge provided")

        logger.info("Webhook verified successfully")
        return challenge

    def verify_signature(self, payload: bytes, signature_header: str | None) -> bool:
        """Check the X-Hub-Signature-256 HMAC of the raw body.

        Without an app secret configured, every payload is accepted.
        """
        if not self.app_secret:
            return True

        if not signature_header or not signature_header.startswith("sha256="):
            logger.warning("Missing or malformed signature header")
            return False

        computed = hmac.new(
            self.app_secret.encode("utf-8"),
            payload,
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(computed, signature_header[len("sha256="):])

    def parse_payload(
        self,
        payload: bytes | str | dict,
        signature_header: str | None = None,
    ) -> list[WebhookEvent]:
        """Parse a webhook body into events.

        Raises:
            WebhookVerificationError: If signature verification fails
            WebhookParseError: If payload cannot be parsed
        """
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        if isinstance(payload, bytes):
            if not self.verify_signature(payload, signature_header):
                raise WebhookVerificationError("Invalid signature")
            try:
                data = json.loads(payload.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise WebhookParseError(f"Invalid JSON: {e}") from e
        else:
            data = payload

        if not isinstance(data, dict):
            raise WebhookParseError("Payload is not a JSON object")

        return self._parse_data(data)

    def _parse_data(self, data: dict) -> list[WebhookEvent]:
        events: list[WebhookEvent] = []

        if data.get("object") != "whatsapp_business_account":
            logger.warning(f"Unexpected webhook object type: {data.get('object')}")
            return events

        for entry in data.get("entry", []):
            for change in entry.get("changes", []):
                if change.get("field") != "messages":
                    continue
                events.extend(self._parse_value(change.get("value", {})))

        return events

    def _parse_value(self, value: dict) -> list[WebhookEvent]:
        events: list[WebhookEvent] = []
        names = {
            c.get("wa_id"): c.get("profile", {}).get("name")
            for c in value.get("contacts", [])
        }

        for message_data in value.get("messages", []):
            try:
                events.append(self._parse_message(message_data, names))
            except (KeyError, TypeError, ValueError) as e:
                logger.exception(f"Failed to parse message: {e}")

        for status_data in value.get("statuses", []):
            try:
                events.append(self._parse_status(status_data))
            except (KeyError, TypeError, ValueError) as e:
                logger.exception(f"Failed to parse status: {e}")

        for error_data in value.get("errors", []):
            events.append(
                WebhookEvent(
                    event_type=WebhookEventType.ERROR,
                    timestamp=datetime.now(UTC),
                    error=error_data,
                    raw_data=value,
                )
            )

        return events

    def _parse_message(self, message_data: dict, names: dict) -> WebhookEvent:
        from_number = message_data.get("from", "")
        timestamp = _parse_timestamp(message_data.get("timestamp"))

        try:
            msg_type = MessageType(message_data.get("type", "text"))
        except ValueError:
            msg_type = MessageType.UNKNOWN

        message = WhatsAppMessage(
            message_id=message_data.get("id", ""),
            from_number=from_number,
            timestamp=timestamp,
            message_type=msg_type,
            contact_name=names.get(from_number) or None,
        )

        if msg_type == MessageType.TEXT:
            message.text = message_data.get("text", {}).get("body", "")

        elif msg_type in (
            MessageType.IMAGE,
            MessageType.VIDEO,
            MessageType.AUDIO,
            MessageType.VOICE,
            MessageType.DOCUMENT,
        ):
            media = message_data.get(msg_type.value, {})
            message.media_id = media.get("id")
            message.media_mime_type = media.get("mime_type")
            message.media_filename = media.get("filename")
            message.text = media.get("caption", "")

        elif msg_type == MessageType.LOCATION:
            loc_obj = message_data.get("location", {})
            message.latitude = loc_obj.get("latitude")
            message.longitude = loc_obj.get("longitude")
            message.location_name = loc_obj.get("name")
            message.location_address = loc_obj.get("address")
            message.text = ", ".join(
                part for part in (message.location_name, message.location_address) if part
            )

        elif msg_type == MessageType.INTERACTIVE:
            interactive = message_data.get("interactive", {})
            reply = interactive.get(interactive.get("type", ""), {})
            message.text = reply.get("title", "")

        elif msg_type == MessageType.BUTTON:
            message.text = message_data.get("button", {}).get("text", "")

        context = message_data.get("context") or {}
        message.context_message_id = context.get("id")

        return WebhookEvent(
            event_type=WebhookEventType.MESSAGE,
            timestamp=timestamp,
            message=message,
            raw_data=message_data,
        )

    def _parse_status(self, status_data: dict) -> WebhookEvent:
        timestamp = _parse_timestamp(status_data.get("timestamp"))

        try:
            status_enum = MessageStatus(status_data.get("status", ""))
        except ValueError:
            status_enum = MessageStatus.SENT

        status = StatusUpdate(
            message_id=status_data.get("id", ""),
            status=status_enum,
            timestamp=timestamp,
            recipient_id=status_data.get("recipient_id", ""),
        )

        if status_enum == MessageStatus.FAILED:
            errors = status_data.get("errors", [])
            if errors:
                status.error_code = str(errors[0].get("code", ""))
                status.error_title = errors[0].get("title", "")

        return WebhookEvent(
            event_type=WebhookEventType.STATUS,
            timestamp=timestamp,
            status=status,
            raw_data=status_data,
        )


_webhook: WhatsAppWebhook | None = None


def get_whatsapp_webhook() -> WhatsAppWebhook:
    """Get the shared WhatsApp webhook handler instance."""
    global _webhook
    if _webhook is None:
        _webhook = WhatsAppWebhook()
    return _webhook
