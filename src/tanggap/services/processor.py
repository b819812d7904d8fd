"""Message processor for incoming WhatsApp reports.

Handles the intake pipeline for one message:
1. Look up (or register) the sender
2. Resume an open follow-up conversation, or extract a new report
3. Ask for the first missing critical field, one question at a time
4. Persist the report, confirm to the sender, alert operators
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from tanggap.db.models import MediaType, User
from tanggap.sentry import capture_exception, set_user_context
from tanggap.services.chat_state import ChatStateStore, Conversation
from tanggap.services.extraction import ExtractionError, ReportExtractor, follow_up_question
from tanggap.services.media import MediaStore, MediaTooLargeError
from tanggap.services.notifications import NotificationService
from tanggap.services.parser import ExtractionResult
from tanggap.services.reports import create_report
from tanggap.services.users import get_or_create_user, is_trusted
from tanggap.telegram.notifier import TelegramNotifier
from tanggap.whatsapp import messages
from tanggap.whatsapp.client import MessageType, WhatsAppMessage
from tanggap.whatsapp.factory import WhatsAppService

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    MessageType.IMAGE: MediaType.IMAGE,
    MessageType.VIDEO: MediaType.VIDEO,
    MessageType.AUDIO: MediaType.AUDIO,
    MessageType.VOICE: MediaType.AUDIO,
    MessageType.DOCUMENT: MediaType.DOCUMENT,
}


@dataclass
class ProcessResult:
    success: bool
    reason: str
    report_id: str | None = None
    report_number: str | None = None
    needs_follow_up: bool = False
    user_created: bool = False


class MessageProcessor:
    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        whatsapp: WhatsAppService | None = None,
        extractor: ReportExtractor | None = None,
        notifications: NotificationService | None = None,
        telegram: TelegramNotifier | None = None,
        media_store: MediaStore | None = None,
    ) -> None:
        if session_factory is None:
            from tanggap.db.database import SessionLocal

            session_factory = SessionLocal
        if whatsapp is None:
            from tanggap.whatsapp.factory import get_whatsapp_service

            whatsapp = get_whatsapp_service()
        if telegram is None:
            from tanggap.telegram.notifier import get_telegram_notifier

            telegram = get_telegram_notifier()
        if extractor is None:
            from tanggap.services.extraction import get_report_extractor

            extractor = get_report_extractor()
        if media_store is None:
            from tanggap.services.media import get_media_store

            media_store = get_media_store()

        self.session_factory = session_factory
        self.whatsapp = whatsapp
        self.telegram = telegram
        self.extractor = extractor
        self.notifications = notifications or NotificationService(telegram, whatsapp)
        self.media_store = media_store

    async def process(self, message: WhatsAppMessage) -> ProcessResult:
        """Process one incoming message.

        On failure the sender gets an apology, operators get an alert, and the
        exception is re-raised.
        """
        await self.whatsapp.mark_as_read(message.message_id, message.from_number)

        db = self.session_factory()
        try:
            return await self._process(db, message)
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to process message {message.message_id}: {e}")
            capture_exception(e)
            await self._report_failure(message, e)
            raise
        finally:
            db.close()

    async def _process(self, db: Session, message: WhatsAppMessage) -> ProcessResult:
        user, created = get_or_create_user(db, message.from_number, message.contact_name)
        set_user_context(user_id=user.id, role=user.role)

        if created:
            await self.whatsapp.send_text(user.phone_number, messages.welcome(is_trusted(user)))

        media = await self._store_media(message)
        chat = ChatStateStore(db, media_store=self.media_store)
        conversation = chat.get(user.phone_number)

        if conversation is not None:
            result = await self._handle_follow_up(db, chat, user, message, conversation, media)
        else:
            result = await self._handle_new_report(db, chat, user, message, media)

        result.user_created = created
        return result

    async def _handle_new_report(
        self,
        db: Session,
        chat: ChatStateStore,
        user: User,
        message: WhatsAppMessage,
        media: dict[str, Any] | None,
    ) -> ProcessResult:
        text = message.body
        if not text:
            return await self._reject(user, "empty message", media)

        logger.info(f"New report from {user.id}: {text[:50]}...")
        extraction = await self.extractor.extract(text)

        if extraction.is_unknown:
            return await self._reject(user, "unknown intent", media)

        conversation = Conversation(
            current_intent=extraction.intent,
            extracted_data=extraction,
            missing_fields=extraction.critical_missing,
            original_message=text,
            pending_media=[media] if media else [],
            latitude=message.latitude,
            longitude=message.longitude,
        )

        if conversation.missing_fields:
            return await self._ask_next(chat, user, conversation)

        return await self._complete(db, chat, user, conversation, text)

    async def _handle_follow_up(
        self,
        db: Session,
        chat: ChatStateStore,
        user: User,
        message: WhatsAppMessage,
        conversation: Conversation,
        media: dict[str, Any] | None,
    ) -> ProcessResult:
        if media:
            conversation.pending_media.append(media)
        if message.has_location:
            conversation.latitude = message.latitude
            conversation.longitude = message.longitude

        answer = message.body
        if not answer and message.has_location:
            answer = f"{message.latitude}, {message.longitude}"

        field_name = conversation.next_field
        if not answer or field_name is None:
            # Media without a caption: keep it and repeat the question
            return await self._ask_next(chat, user, conversation)

        logger.info(f"Follow-up from {user.id} fills {field_name}")
        self.extractor.fill_missing_field(conversation.extracted_data, field_name, answer)
        conversation.missing_fields = [f for f in conversation.missing_fields if f != field_name]

        if conversation.missing_fields:
            return await self._ask_next(chat, user, conversation)

        raw_message = f"{conversation.original_message}\n{answer}"
        return await self._complete(db, chat, user, conversation, raw_message)

    async def _ask_next(
        self, chat: ChatStateStore, user: User, conversation: Conversation
    ) -> ProcessResult:
        chat.save(user.phone_number, conversation)
        question = follow_up_question(conversation.missing_fields)
        if question:
            await self.whatsapp.send_text(user.phone_number, messages.follow_up(question))
        return ProcessResult(success=True, reason="follow_up", needs_follow_up=True)

    async def _complete(
        self,
        db: Session,
        chat: ChatStateStore,
        user: User,
        conversation: Conversation,
        raw_message: str,
    ) -> ProcessResult:
        extraction: ExtractionResult = conversation.extracted_data
        report = create_report(
            db,
            user,
            extraction,
            raw_message,
            source="whatsapp",
            media=conversation.pending_media,
            latitude=conversation.latitude,
            longitude=conversation.longitude,
        )

        await self.whatsapp.send_text(user.phone_number, messages.report_confirmation(report))
        await self.notifications.report_created(db, report, user)
        chat.clear(user.phone_number)

        return ProcessResult(
            success=True,
            reason="report_created",
            report_id=report.id,
            report_number=report.report_number,
        )

    async def _reject(
        self, user: User, reason: str, media: dict[str, Any] | None = None
    ) -> ProcessResult:
        logger.info(f"Could not read a report from {user.id}: {reason}")
        if media:
            self.media_store.delete(media["file_path"])
        await self.whatsapp.send_text(user.phone_number, messages.error("invalid_format"))
        return ProcessResult(success=False, reason="invalid_format")

    async def _store_media(self, message: WhatsAppMessage) -> dict[str, Any] | None:
        if not message.has_media:
            return None

        download = await self.whatsapp.download_media(message.media_id)
        if not download.success or not download.content:
            logger.warning(f"Could not download media {message.media_id}: {download.error_message}")
            return None

        media_type = MEDIA_TYPES.get(message.message_type, MediaType.DOCUMENT)
        try:
            stored = self.media_store.save(
                download.content, media_type, download.mime_type or message.media_mime_type
            )
        except MediaTooLargeError as e:
            logger.warning(f"Dropping media {message.media_id}: {e}")
            return None

        return {
            "media_type": media_type.value,
            "file_name": stored.file_name,
            "file_path": stored.file_path,
            "file_size": stored.file_size,
            "mime_type": stored.mime_type,
            "whatsapp_media_id": message.media_id,
            "caption": message.body or None,
        }

    async def _report_failure(self, message: WhatsAppMessage, error: Exception) -> None:
        error_type = "ai_timeout" if isinstance(error, ExtractionError) else "general"
        await self.whatsapp.send_text(message.from_number, messages.error(error_type))
        await self.telegram.notify_system_health(
            "Message Processor",
            "error",
            f"{error} (pesan {message.message_id} dari {message.from_number}: "
            f"{message.body[:200]})",
        )
