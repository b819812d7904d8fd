"""Tests for WhatsApp Business Cloud API integration.

Tests cover:
- Client configuration and message sending
- Two-step media downloading
- Webhook verification and signatures
- Webhook payload parsing (text, media captions, location, statuses)
- Event routing to the message processor
"""

import hashlib
import hmac
import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from tanggap.services.processor import ProcessResult
from tanggap.whatsapp.client import (
    MAX_MESSAGE_LENGTH,
    MessageType,
    SendResult,
    WhatsAppClient,
    WhatsAppMessage,
    normalize_recipient,
)
from tanggap.whatsapp.handlers import WhatsAppHandler, handle_webhook_events
from tanggap.whatsapp.webhook import (
    MessageStatus,
    WebhookEvent,
    WebhookEventType,
    WebhookParseError,
    WebhookVerificationError,
    WhatsAppWebhook,
)


def ok_response(data: dict) -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = data
    response.raise_for_status = MagicMock()
    return response


def webhook_body(value: dict) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": "messages", "value": value}]}],
    }


# =============================================================================
# WhatsApp Client Tests
# =============================================================================


class TestWhatsAppMessage:
    """Tests for WhatsAppMessage dataclass."""

    def test_text_message(self):
        msg = WhatsAppMessage(
            message_id="wamid.123",
            from_number="6281234567890",
            timestamp=datetime.now(UTC),
            message_type=MessageType.TEXT,
            text="  Ada korban di Desa A  ",
        )
        assert msg.body == "Ada korban di Desa A"
        assert not msg.has_media
        assert not msg.has_location

    def test_image_message(self):
        msg = WhatsAppMessage(
            message_id="wamid.123",
            from_number="6281234567890",
            timestamp=datetime.now(UTC),
            message_type=MessageType.IMAGE,
            media_id="img123",
        )
        assert msg.has_media
        assert msg.body == ""

    def test_location_message(self):
        msg = WhatsAppMessage(
            message_id="wamid.123",
            from_number="6281234567890",
            timestamp=datetime.now(UTC),
            message_type=MessageType.LOCATION,
            latitude=-6.2,
            longitude=106.8,
        )
        assert msg.has_location


class TestWhatsAppClientInit:
    """Tests for WhatsApp client initialization."""

    def test_init_with_credentials(self):
        client = WhatsAppClient(phone_number_id="123456789", access_token="EAABc...")
        assert client.phone_number_id == "123456789"
        assert client.is_configured

    def test_init_without_credentials(self):
        assert not WhatsAppClient(phone_number_id="", access_token="").is_configured

    def test_normalize_recipient(self):
        assert normalize_recipient("+62 812-3456-7890") == "6281234567890"


class TestWhatsAppClientSendText:
    """Tests for sending text messages."""

    @pytest.fixture
    def client(self):
        return WhatsAppClient(phone_number_id="123456789", access_token="test_token")

    @pytest.mark.asyncio
    async def test_send_text_success(self, client):
        """Test successful text message send."""
        with patch.object(client, "_get_client") as mock_get_client:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(
                return_value=ok_response({"messages": [{"id": "wamid.123"}]})
            )
            mock_get_client.return_value = mock_http

            result = await client.send_text("+62 812 3456 7890", "Laporan diterima")

            assert result.success
            assert result.message_id == "wamid.123"
            assert result.provider == "meta"
            payload = mock_http.post.call_args[1]["json"]
            assert payload["to"] == "6281234567890"
            assert payload["text"]["body"] == "Laporan diterima"

    @pytest.mark.asyncio
    async def test_send_text_truncates_long_messages(self, client):
        """Test that long messages are truncated."""
        with patch.object(client, "_get_client") as mock_get_client:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(
                return_value=ok_response({"messages": [{"id": "wamid.123"}]})
            )
            mock_get_client.return_value = mock_http

            await client.send_text("6281234567890", "x" * (MAX_MESSAGE_LENGTH + 100))

            body = mock_http.post.call_args[1]["json"]["text"]["body"]
            assert len(body) == MAX_MESSAGE_LENGTH
            assert body.endswith("...")

    @pytest.mark.asyncio
    async def test_send_text_api_error(self, client):
        """Test Graph API errors become a failed SendResult."""
        request = httpx.Request("POST", "https://graph.facebook.com")
        error_response = httpx.Response(
            400,
            json={"error": {"code": 131047, "message": "Re-engagement message"}},
            request=request,
        )
        response = MagicMock()
        response.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError("bad", request=request, response=error_response)
        )

        with patch.object(client, "_get_client") as mock_get_client:
            mock_http = AsyncMock()
            mock_http.post = AsyncMock(return_value=response)
            mock_get_client.return_value = mock_http

            result = await client.send_text("6281234567890", "hi")

            assert not result.success
            assert result.error_code == "131047"
            assert result.error_message == "Re-engagement message"


class TestWhatsAppClientDownloadMedia:
    """Tests for media downloading."""

    @pytest.fixture
    def client(self):
        return WhatsAppClient(phone_number_id="123456789", access_token="test_token")

    @pytest.mark.asyncio
    async def test_download_media_success(self, client):
        """Test two-step media download."""
        url_response = ok_response(
            {"url": "https://lookaside.fbsbx.com/media/123", "mime_type": "image/jpeg"}
        )
        content_response = MagicMock()
        content_response.content = b"jpeg bytes"
        content_response.headers = {"content-type": "application/octet-stream"}
        content_response.raise_for_status = MagicMock()

        with patch.object(client, "_get_client") as mock_get_client:
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(side_effect=[url_response, content_response])
            mock_get_client.return_value = mock_http

            result = await client.download_media("media123")

            assert result.success
            assert result.content == b"jpeg bytes"
            assert result.mime_type == "image/jpeg"
            assert mock_http.get.call_args_list[0][0][0].endswith("/media123")

    @pytest.mark.asyncio
    async def test_download_media_without_url(self, client):
        with patch.object(client, "_get_client") as mock_get_client:
            mock_http = AsyncMock()
            mock_http.get = AsyncMock(return_value=ok_response({}))
            mock_get_client.return_value = mock_http

            result = await client.download_media("media123")

            assert not result.success
            assert result.error_message == "No media URL in response"


# =============================================================================
# Webhook Tests
# =============================================================================


class TestWebhookVerification:
    """Tests for webhook verification."""

    def test_verify_webhook_success(self):
        webhook = WhatsAppWebhook(verify_token="my_token")
        assert (
            webhook.verify_webhook(mode="subscribe", token="my_token", challenge="challenge")
            == "challenge"
        )

    def test_verify_webhook_wrong_mode(self):
        webhook = WhatsAppWebhook(verify_token="my_token")
        with pytest.raises(WebhookVerificationError, match="Invalid mode"):
            webhook.verify_webhook(mode="unsubscribe", token="my_token", challenge="c")

    def test_verify_webhook_wrong_token(self):
        webhook = WhatsAppWebhook(verify_token="my_token")
        with pytest.raises(WebhookVerificationError, match="Token mismatch"):
            webhook.verify_webhook(mode="subscribe", token="wrong_token", challenge="c")

    def test_verify_webhook_no_configured_token(self):
        webhook = WhatsAppWebhook(verify_token="")
        with pytest.raises(WebhookVerificationError, match="Token mismatch"):
            webhook.verify_webhook(mode="subscribe", token="", challenge="c")

    def test_verify_webhook_no_challenge(self):
        webhook = WhatsAppWebhook(verify_token="my_token")
        with pytest.raises(WebhookVerificationError, match="No challenge"):
            webhook.verify_webhook(mode="subscribe", token="my_token", challenge=None)


class TestWebhookSignatureVerification:
    """Tests for webhook signature verification."""

    def test_verify_signature_valid(self):
        app_secret = "test_secret"
        payload = b'{"test": "data"}'
        signature = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

        webhook = WhatsAppWebhook(app_secret=app_secret)
        assert webhook.verify_signature(payload, f"sha256={signature}")

    def test_verify_signature_invalid(self):
        webhook = WhatsAppWebhook(app_secret="test_secret")
        assert not webhook.verify_signature(b'{"test": "data"}', "sha256=invalid")

    def test_verify_signature_no_header(self):
        webhook = WhatsAppWebhook(app_secret="test_secret")
        assert not webhook.verify_signature(b"test", None)

    def test_verify_signature_no_secret_skips(self):
        webhook = WhatsAppWebhook(app_secret="")
        assert webhook.verify_signature(b"test", "sha256=anything")

    def test_parse_rejects_bad_signature(self):
        webhook = WhatsAppWebhook(app_secret="test_secret")
        with pytest.raises(WebhookVerificationError):
            webhook.parse_payload(b"{}", "sha256=nope")


class TestWebhookPayloadParsing:
    """Tests for webhook payload parsing."""

    @pytest.fixture
    def webhook(self):
        return WhatsAppWebhook(verify_token="t", app_secret="")

    def test_parse_text_message(self, webhook):
        payload = webhook_body(
            {
                "contacts": [{"wa_id": "6281234567890", "profile": {"name": "Ibu Ani"}}],
                "messages": [
                    {
                        "from": "6281234567890",
                        "id": "wamid.abc",
                        "timestamp": "1700000000",
                        "type": "text",
                        "text": {"body": "Ada korban di Desa A"},
                    }
                ],
            }
        )

        events = webhook.parse_payload(payload)

        assert len(events) == 1
        event = events[0]
        assert event.is_message
        assert event.message.text == "Ada korban di Desa A"
        assert event.message.contact_name == "Ibu Ani"
        assert event.timestamp == datetime.fromtimestamp(1700000000, tz=UTC)

    def test_parse_image_caption_becomes_text(self, webhook):
        payload = webhook_body(
            {
                "messages": [
                    {
                        "from": "6281234567890",
                        "id": "wamid.img",
                        "type": "image",
                        "image": {
                            "id": "media123",
                            "mime_type": "image/jpeg",
                            "caption": "Jembatan putus di Desa B",
                        },
                    }
                ]
            }
        )

        message = webhook.parse_payload(payload)[0].message

        assert message.message_type == MessageType.IMAGE
        assert message.media_id == "media123"
        assert message.media_mime_type == "image/jpeg"
        assert message.body == "Jembatan putus di Desa B"
        assert message.contact_name is None

    def test_parse_location_message(self, webhook):
        payload = webhook_body(
            {
                "messages": [
                    {
                        "from": "6281234567890",
                        "id": "wamid.loc",
                        "type": "location",
                        "location": {
                            "latitude": -6.2,
                            "longitude": 106.8,
                            "name": "Posko Utama",
                            "address": "Jl. Merdeka 1",
                        },
                    }
                ]
            }
        )

        message = webhook.parse_payload(payload)[0].message

        assert message.has_location
        assert message.text == "Posko Utama, Jl. Merdeka 1"

    def test_parse_status_update(self, webhook):
        payload = webhook_body(
            {
                "statuses": [
                    {
                        "id": "wamid.out",
                        "status": "failed",
                        "timestamp": "1700000000",
                        "recipient_id": "6281234567890",
                        "errors": [{"code": 131026, "title": "Message undeliverable"}],
                    }
                ]
            }
        )

        event = webhook.parse_payload(payload)[0]

        assert event.event_type == WebhookEventType.STATUS
        assert event.status.status == MessageStatus.FAILED
        assert event.status.error_code == "131026"

    def test_parse_unknown_type(self, webhook):
        payload = webhook_body(
            {"messages": [{"from": "1", "id": "wamid.x", "type": "reaction"}]}
        )
        assert webhook.parse_payload(payload)[0].message.message_type == MessageType.UNKNOWN

    def test_parse_bytes_payload(self, webhook):
        body = json.dumps(webhook_body({"errors": [{"code": 1, "title": "oops"}]})).encode()
        events = webhook.parse_payload(body)
        assert events[0].event_type == WebhookEventType.ERROR

    def test_parse_invalid_json(self, webhook):
        with pytest.raises(WebhookParseError):
            webhook.parse_payload(b"not json")

    def test_parse_wrong_object_type(self, webhook):
        assert webhook.parse_payload({"object": "page", "entry": []}) == []


# =============================================================================
# Handler Tests
# =============================================================================


def make_event(text: str = "Ada korban di Desa A") -> WebhookEvent:
    message = WhatsAppMessage(
        message_id="wamid.1",
        from_number="6281234567890",
        timestamp=datetime.now(UTC),
        message_type=MessageType.TEXT,
        text=text,
    )
    return WebhookEvent(
        event_type=WebhookEventType.MESSAGE, timestamp=message.timestamp, message=message
    )


class TestWhatsAppHandler:
    """Tests for routing webhook events to the processor."""

    @pytest.mark.asyncio
    async def test_messages_are_processed_in_order(self):
        processor = MagicMock()
        processor.process = AsyncMock(return_value=ProcessResult(True, "report_created"))
        handler = WhatsAppHandler(processor=processor)

        await handle_webhook_events([make_event("satu"), make_event("dua")], handler)

        texts = [call.args[0].text for call in processor.process.await_args_list]
        assert texts == ["satu", "dua"]

    @pytest.mark.asyncio
    async def test_processor_failure_does_not_stop_batch(self):
        processor = MagicMock()
        processor.process = AsyncMock(
            side_effect=[RuntimeError("boom"), ProcessResult(True, "report_created")]
        )
        handler = WhatsAppHandler(processor=processor)

        await handle_webhook_events([make_event(), make_event()], handler)

        assert processor.process.await_count == 2

    @pytest.mark.asyncio
    async def test_status_events_skip_processor(self):
        processor = MagicMock()
        processor.process = AsyncMock()
        handler = WhatsAppHandler(processor=processor)
        webhook = WhatsAppWebhook(app_secret="")
        events = webhook.parse_payload(
            webhook_body({"statuses": [{"id": "w", "status": "read", "recipient_id": "1"}]})
        )

        await handle_webhook_events(events, handler)

        processor.process.assert_not_awaited()

    def test_send_result_defaults(self):
        result = SendResult(success=True, message_id="wamid.1")
        assert result.provider == "meta"
        assert result.error_code is None
