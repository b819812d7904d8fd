from datetime import timedelta

from tanggap.db.models import ChatState, MediaType, now_utc
from tanggap.services.chat_state import ChatStateStore, Conversation
from tanggap.services.parser import ExtractionResult

PHONE = "6281234567890"


def make_conversation(**kwargs) -> Conversation:
    kwargs.setdefault("missing_fields", ["location"])
    return Conversation(
        current_intent="korban",
        extracted_data=ExtractionResult(intent="korban", missing_fields=["location"]),
        original_message="ada korban luka",
        **kwargs,
    )


class TestChatStateStore:
    def test_save_and_get(self, db_session):
        store = ChatStateStore(db_session, ttl_minutes=60)
        store.save(PHONE, make_conversation(latitude=-6.2, longitude=106.8))

        conversation = store.get(PHONE)

        assert conversation is not None
        assert conversation.next_field == "location"
        assert conversation.original_message == "ada korban luka"
        assert conversation.extracted_data.intent == "korban"
        assert conversation.latitude == -6.2

    def test_save_overwrites_single_row(self, db_session):
        store = ChatStateStore(db_session, ttl_minutes=60)
        store.save(PHONE, make_conversation())
        store.save(PHONE, make_conversation(missing_fields=[]))

        assert db_session.query(ChatState).count() == 1
        assert store.get(PHONE).next_field is None

    def test_expired_state_is_dropped(self, db_session):
        store = ChatStateStore(db_session, ttl_minutes=60)
        store.save(PHONE, make_conversation())
        row = db_session.query(ChatState).one()
        row.last_message_at = now_utc() - timedelta(minutes=61)
        db_session.commit()

        assert store.get(PHONE) is None
        assert db_session.query(ChatState).count() == 0

    def test_clear(self, db_session):
        store = ChatStateStore(db_session, ttl_minutes=60)
        store.save(PHONE, make_conversation())
        store.clear(PHONE)
        assert store.get(PHONE) is None

    def test_purge_expired_keeps_fresh_rows(self, db_session):
        store = ChatStateStore(db_session, ttl_minutes=60)
        store.save(PHONE, make_conversation())
        store.save("6289999999999", make_conversation())
        stale = db_session.query(ChatState).filter(ChatState.phone_number == PHONE).one()
        stale.last_message_at = now_utc() - timedelta(hours=2)
        db_session.commit()

        assert store.purge_expired() == 1
        assert [row.phone_number for row in db_session.query(ChatState).all()] == [
            "6289999999999"
        ]

    def test_unknown_phone_has_no_state(self, db_session):
        assert ChatStateStore(db_session, ttl_minutes=60).get("620000") is None


class TestConversation:
    def test_state_keeps_pending_media(self):
        media = {"media_type": "IMAGE", "file_name": "a.jpg", "file_path": "images/a.jpg"}
        conversation = make_conversation(pending_media=[media])
        restored = Conversation.from_state(conversation.to_state())
        assert restored.pending_media == [media]
        assert restored.missing_fields == ["location"]


class TestPendingMediaCleanup:
    def _store_photo(self, media_store) -> dict:
        stored = media_store.save(b"\xff\xd8jpeg", MediaType.IMAGE, "image/jpeg")
        return {"media_type": "IMAGE", "file_name": stored.file_name, "file_path": stored.file_path}

    def _expire(self, db_session, phone_number: str) -> None:
        row = db_session.query(ChatState).filter(ChatState.phone_number == phone_number).one()
        row.last_message_at = now_utc() - timedelta(hours=2)
        db_session.commit()

    def test_expired_read_deletes_pending_files(self, db_session, media_store):
        store = ChatStateStore(db_session, ttl_minutes=60, media_store=media_store)
        media = self._store_photo(media_store)
        store.save(PHONE, make_conversation(pending_media=[media]))
        self._expire(db_session, PHONE)

        assert store.get(PHONE) is None
        assert not media_store.full_path(media["file_path"]).exists()

    def test_purge_deletes_only_stale_files(self, db_session, media_store):
        store = ChatStateStore(db_session, ttl_minutes=60, media_store=media_store)
        stale = self._store_photo(media_store)
        fresh = self._store_photo(media_store)
        store.save(PHONE, make_conversation(pending_media=[stale]))
        store.save("6289999999999", make_conversation(pending_media=[fresh]))
        self._expire(db_session, PHONE)

        assert store.purge_expired() == 1
        assert not media_store.full_path(stale["file_path"]).exists()
        assert media_store.full_path(fresh["file_path"]).exists()

    def test_missing_file_does_not_block_purge(self, db_session, media_store):
        store = ChatStateStore(db_session, ttl_minutes=60, media_store=media_store)
        gone = {"media_type": "IMAGE", "file_name": "x.jpg", "file_path": "images/x.jpg"}
        store.save(PHONE, make_conversation(pending_media=[gone]))
        self._expire(db_session, PHONE)

        assert store.purge_expired() == 1
        assert db_session.query(ChatState).count() == 0
