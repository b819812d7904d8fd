"""Tests for operator alerts and the operator bot commands."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tanggap.config import settings
from tanggap.db.models import UserRole
from tanggap.services.reports import dashboard_stats
from tanggap.telegram import handlers
from tanggap.telegram.handlers import (
    cmd_pending,
    cmd_stats,
    format_pending,
    format_stats,
    setup_handlers,
)
from tanggap.telegram.notifier import TelegramNotifier, decorate

ADMIN_CHAT = "-1001234"


@pytest.fixture
def bot():
    fake = MagicMock()
    fake.send_message = AsyncMock()
    fake.get_me = AsyncMock(return_value=SimpleNamespace(username="tanggap_bot"))
    fake.session.close = AsyncMock()
    return fake


@pytest.fixture
def notifier(bot):
    return TelegramNotifier(bot=bot, admin_chat_id=ADMIN_CHAT)


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_unconfigured_skips_alert(self, monkeypatch):
        monkeypatch.setattr(settings, "telegram_bot_token", "")
        monkeypatch.setattr(settings, "telegram_admin_chat_id", "")

        result = await TelegramNotifier().send_alert("halo")

        assert not result.success
        assert result.error == "Telegram not configured"

    @pytest.mark.asyncio
    async def test_send_alert(self, notifier, bot):
        result = await notifier.send_alert("halo")
        assert result.success
        bot.send_message.assert_awaited_once_with(chat_id=ADMIN_CHAT, text="halo")

    @pytest.mark.asyncio
    async def test_send_failure_is_reported(self, notifier, bot):
        bot.send_message.side_effect = RuntimeError("chat not found")
        result = await notifier.send_alert("halo")
        assert not result.success
        assert result.error == "chat not found"

    @pytest.mark.asyncio
    async def test_new_report_alert_escapes_html(self, notifier, bot, report_factory):
        report = report_factory(location="Desa <A&B>")

        await notifier.notify_new_report(report, report.reporter)

        text = bot.send_message.call_args.kwargs["text"]
        assert "<b>LAPORAN BARU</b>" in text
        assert report.report_number in text
        assert "Desa &lt;A&amp;B&gt;" in text
        assert "Pelapor bukan relawan terverifikasi" in text

    @pytest.mark.asyncio
    async def test_trusted_reporter_marked(self, notifier, bot, user_factory, report_factory):
        volunteer = user_factory(role=UserRole.VOLUNTEER.value)
        report = report_factory(reporter=volunteer)

        await notifier.notify_new_report(report, volunteer)

        assert "Relawan terverifikasi" in bot.send_message.call_args.kwargs["text"]

    @pytest.mark.asyncio
    async def test_critical_alert_is_decorated(self, notifier, bot, report_factory):
        report = report_factory(urgency="critical")
        await notifier.notify_critical_report(report)
        text = bot.send_message.call_args.kwargs["text"]
        assert text.startswith("🚨🚨🚨\n")
        assert "LAPORAN KRITIS!" in text

    @pytest.mark.asyncio
    async def test_verification_alert_shows_trust_level(
        self, notifier, bot, user_factory, report_factory
    ):
        reporter = user_factory(trust_level=2)
        report = report_factory(reporter=reporter)

        await notifier.notify_verification_needed(report, reporter)

        assert "Trust Level: 2" in bot.send_message.call_args.kwargs["text"]

    @pytest.mark.asyncio
    async def test_system_health_alert(self, notifier, bot):
        await notifier.notify_system_health("Message Processor", "error", "db <down>")
        text = bot.send_message.call_args.kwargs["text"]
        assert "❌" in text
        assert "db &lt;down&gt;" in text

    @pytest.mark.asyncio
    async def test_health_check(self, notifier):
        health = await notifier.health_check()
        assert health == {"status": "healthy", "available": True, "bot": "tanggap_bot"}

    def test_decorate(self):
        assert decorate("x") == "x"
        assert decorate("x", "high") == "🔴\nx"


def make_message(chat_id: str = ADMIN_CHAT) -> MagicMock:
    message = MagicMock()
    message.chat.id = int(chat_id)
    message.answer = AsyncMock()
    return message


class TestOperatorCommands:
    @pytest.fixture(autouse=True)
    def admin_chat(self, monkeypatch):
        monkeypatch.setattr(settings, "telegram_admin_chat_id", ADMIN_CHAT)

    def test_setup_handlers_includes_router(self):
        mock_dp = MagicMock()
        setup_handlers(mock_dp)
        mock_dp.include_router.assert_called_once_with(handlers.router)

    @pytest.mark.asyncio
    async def test_stats_command(self, report_factory):
        report_factory(urgency="critical")
        message = make_message()

        await cmd_stats(message)

        text = message.answer.await_args.args[0]
        assert "Total laporan: 1" in text
        assert "Kritis (belum selesai): 1" in text

    @pytest.mark.asyncio
    async def test_pending_command(self, report_factory):
        report = report_factory()
        message = make_message()

        await cmd_pending(message)

        assert report.report_number in message.answer.await_args.args[0]

    @pytest.mark.asyncio
    async def test_other_chats_are_ignored(self):
        message = make_message("555")
        await cmd_stats(message)
        message.answer.assert_not_awaited()

    def test_format_stats_groups(self, db_session, report_factory):
        report_factory()
        report_factory(intent="kebutuhan")

        text = format_stats(dashboard_stats(db_session))

        assert "KORBAN: 1" in text
        assert "KEBUTUHAN: 1" in text
        assert "Sedang: 2" in text

    def test_format_pending_empty(self):
        assert format_pending([]) == "✅ Tidak ada laporan yang menunggu verifikasi."
