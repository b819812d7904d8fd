"""Per-phone conversation state for multi-turn report submission.

A row exists only while a report is waiting on a follow-up answer. Rows idle
for longer than the TTL are treated as absent and removed on read, together
with any media files they were holding.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from tanggap.db.models import ChatState, as_utc, now_utc
from tanggap.services.media import MediaStore, get_media_store
from tanggap.services.parser import ExtractionResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 60


@dataclass
class Conversation:
    """In-progress report waiting on the reporter's answer."""

    current_intent: str
    extracted_data: ExtractionResult
    missing_fields: list[str]
    original_message: str
    pending_media: list[dict[str, Any]] = field(default_factory=list)
    latitude: float | None = None
    longitude: float | None = None

    @property
    def next_field(self) -> str | None:
        return self.missing_fields[0] if self.missing_fields else None

    def to_state(self) -> dict[str, Any]:
        return {
            "current_intent": self.current_intent,
            "extracted_data": self.extracted_data.to_dict(),
            "missing_fields": list(self.missing_fields),
            "original_message": self.original_message,
            "pending_media": list(self.pending_media),
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> "Conversation":
        return cls(
            current_intent=state.get("current_intent", ""),
            extracted_data=ExtractionResult.from_dict(state.get("extracted_data", {})),
            missing_fields=list(state.get("missing_fields", [])),
            original_message=state.get("original_message", ""),
            pending_media=list(state.get("pending_media", [])),
            latitude=state.get("latitude"),
            longitude=state.get("longitude"),
        )


class ChatStateStore:
    def __init__(
        self,
        db: Session,
        ttl_minutes: int | None = None,
        media_store: MediaStore | None = None,
    ) -> None:
        if ttl_minutes is None:
            from tanggap.config import settings

            ttl_minutes = settings.chat_state_ttl_minutes
        self.db = db
        self.ttl = timedelta(minutes=ttl_minutes)
        self.media_store = media_store or get_media_store()

    def is_expired(self, row: ChatState, now: datetime | None = None) -> bool:
        now = now or now_utc()
        return now - as_utc(row.last_message_at) > self.ttl

    def get(self, phone_number: str) -> Conversation | None:
        row = self._get_row(phone_number)
        if row is None:
            return None

        if self.is_expired(row):
            logger.info(f"Chat state for {phone_number} expired")
            self._discard_media(row)
            self.db.delete(row)
            self.db.commit()
            return None

        return Conversation.from_state(row.state or {})

    def save(self, phone_number: str, conversation: Conversation) -> None:
        row = self._get_row(phone_number)
        if row is None:
            row = ChatState(phone_number=phone_number)
            self.db.add(row)

        row.current_intent = conversation.current_intent
        row.state = conversation.to_state()
        row.last_message_at = now_utc()
        self.db.commit()

    def clear(self, phone_number: str) -> None:
        self.db.query(ChatState).filter(ChatState.phone_number == phone_number).delete()
        self.db.commit()

    def purge_expired(self) -> int:
        """Drop idle conversations along with the media they were holding."""
        cutoff = now_utc() - self.ttl
        rows = self.db.query(ChatState).filter(ChatState.last_message_at < cutoff).all()
        for row in rows:
            self._discard_media(row)
            self.db.delete(row)
        self.db.commit()
        if rows:
            logger.info(f"Purged {len(rows)} expired chat states")
        return len(rows)

    def _discard_media(self, row: ChatState) -> None:
        for media in (row.state or {}).get("pending_media", []):
            file_path = media.get("file_path")
            if not file_path:
                continue
            try:
                self.media_store.delete(file_path)
            except (OSError, ValueError) as e:
                logger.warning(f"Could not delete pending media {file_path}: {e}")

    def _get_row(self, phone_number: str) -> ChatState | None:
        return self.db.query(ChatState).filter(ChatState.phone_number == phone_number).first()
