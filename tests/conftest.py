"""Shared fixtures: in-memory database, fake transports, and factories."""

import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ADMIN_PASSWORD"] = "s3cret"
os.environ["OLLAMA_BASE_URL"] = "disabled"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_ADMIN_CHAT_ID"] = ""
os.environ["WHATSAPP_PHONE_NUMBER_ID"] = ""
os.environ["WHATSAPP_ACCESS_TOKEN"] = ""
os.environ["WHATSAPP_APP_SECRET"] = ""
os.environ["WHATSAPP_VERIFY_TOKEN"] = "verify-me"
os.environ["AUTO_ASSIGN_CRITICAL_TO"] = ""
os.environ["SENTRY_DSN"] = ""

from datetime import UTC, datetime  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402

from tanggap.db import models  # noqa: E402
from tanggap.db.database import SessionLocal, engine  # noqa: E402
from tanggap.services.extraction import ReportExtractor  # noqa: E402
from tanggap.services.llm_client import OllamaClient  # noqa: E402
from tanggap.services.media import MediaStore  # noqa: E402
from tanggap.services.notifications import NotificationService  # noqa: E402
from tanggap.services.parser import ExtractionResult, NeedData, PersonData  # noqa: E402
from tanggap.services.processor import MessageProcessor  # noqa: E402
from tanggap.services.reports import create_report  # noqa: E402
from tanggap.telegram.notifier import AlertResult, TelegramNotifier  # noqa: E402
from tanggap.whatsapp.client import (  # noqa: E402
    MediaDownloadResult,
    MessageType,
    SendResult,
    WhatsAppMessage,
)


@pytest.fixture(scope="session", autouse=True)
def create_schema_once():
    models.Base.metadata.create_all(bind=engine)
    yield
    models.Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_data():
    yield
    with engine.begin() as connection:
        for table in reversed(models.Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeWhatsApp:
    """Records everything sent instead of calling a WhatsApp transport."""

    provider = "fake"

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.read: list[str] = []
        self.media: dict[str, MediaDownloadResult] = {}

    async def send_text(self, to: str, text: str) -> SendResult:
        self.sent.append((to, text))
        return SendResult(success=True, message_id=f"wamid.{len(self.sent)}", provider=self.provider)

    async def mark_as_read(self, message_id: str, from_number: str | None = None) -> bool:
        self.read.append(message_id)
        return True

    async def download_media(self, media_id: str) -> MediaDownloadResult:
        return self.media.get(
            media_id, MediaDownloadResult(success=False, error_message="not found")
        )

    async def health_check(self) -> dict:
        return {"status": "healthy", "available": True, "provider": self.provider}

    async def close(self) -> None:
        pass

    def texts_to(self, phone_number: str) -> list[str]:
        return [text for to, text in self.sent if to == phone_number]


@pytest.fixture
def whatsapp():
    return FakeWhatsApp()


@pytest.fixture
def telegram():
    notifier = AsyncMock(spec=TelegramNotifier)
    for name in (
        "send_alert",
        "notify_new_report",
        "notify_verification_needed",
        "notify_critical_report",
        "notify_system_health",
    ):
        getattr(notifier, name).return_value = AlertResult(success=True)
    return notifier


@pytest.fixture
def media_store(tmp_path):
    store = MediaStore(root=tmp_path / "uploads")
    store.ensure_directories()
    return store


@pytest.fixture
def extractor():
    return ReportExtractor(llm=OllamaClient(base_url="disabled"), fallback_enabled=True)


@pytest.fixture
def notifications(telegram, whatsapp):
    return NotificationService(telegram, whatsapp, auto_assign_to="")


@pytest.fixture
def processor(whatsapp, telegram, extractor, notifications, media_store):
    return MessageProcessor(
        session_factory=SessionLocal,
        whatsapp=whatsapp,
        extractor=extractor,
        notifications=notifications,
        telegram=telegram,
        media_store=media_store,
    )


@pytest.fixture
def make_message():
    counter = {"n": 0}

    def _create(text: str | None = "", from_number: str = "6281234567890", **kwargs):
        counter["n"] += 1
        kwargs.setdefault("message_type", MessageType.TEXT)
        return WhatsAppMessage(
            message_id=f"wamid.in.{counter['n']}",
            from_number=from_number,
            timestamp=datetime.now(UTC),
            text=text,
            **kwargs,
        )

    return _create


@pytest.fixture
def user_factory(db_session):
    counter = {"n": 0}

    def _create(
        phone_number: str | None = None,
        role: str = models.UserRole.PUBLIC.value,
        trust_level: int = 0,
        name: str | None = None,
        is_active: bool = True,
    ):
        counter["n"] += 1
        user = models.User(
            phone_number=phone_number or f"62811000{counter['n']:04d}",
            name=name or f"User {counter['n']}",
            role=role,
            trust_level=trust_level,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create


@pytest.fixture
def extraction_factory():
    def _create(intent: str = "korban", **kwargs):
        kwargs.setdefault("location", "Desa Sukamaju")
        kwargs.setdefault("summary", "Dua orang luka di Desa Sukamaju")
        if intent == "korban":
            kwargs.setdefault("persons", [PersonData(name="Pak Budi", status="luka_berat", age=45)])
        else:
            kwargs.setdefault(
                "needs", [NeedData(category="air", description="Air bersih", people_affected=50)]
            )
        return ExtractionResult(intent=intent, **kwargs)

    return _create


@pytest.fixture
def report_factory(db_session, user_factory, extraction_factory):
    def _create(reporter=None, intent: str = "korban", source: str = "whatsapp", **kwargs):
        reporter = reporter or user_factory()
        extraction = extraction_factory(intent, **kwargs)
        return create_report(
            db_session, reporter, extraction, extraction.summary, source=source
        )

    return _create
