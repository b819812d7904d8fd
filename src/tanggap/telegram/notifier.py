"""Operator alerts in the Telegram admin chat."""

import logging
from dataclasses import dataclass
from typing import Any

from aiogram import Bot, html
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from tanggap.db.models import Report, User, UserRole
from tanggap.whatsapp.messages import format_time

logger = logging.getLogger(__name__)

REPORT_ICONS = {"KORBAN": "🆘", "KEBUTUHAN": "📦"}

URGENCY_ICONS = {"CRITICAL": "🚨", "HIGH": "🔴", "MEDIUM": "🟡", "LOW": "🟢"}

REPORT_TYPE_NAMES = {
    "KORBAN": "Korban (Meninggal/Hilang/Luka)",
    "KEBUTUHAN": "Kebutuhan Bantuan",
}

URGENCY_NAMES = {
    "CRITICAL": "Kritis (Segera!)",
    "HIGH": "Tinggi",
    "MEDIUM": "Sedang",
    "LOW": "Rendah",
}

STATUS_NAMES = {
    "PENDING_VERIFICATION": "Menunggu Verifikasi",
    "VERIFIED": "Terverifikasi",
    "ASSIGNED": "Sudah Ditugaskan",
    "IN_PROGRESS": "Sedang Ditangani",
    "RESOLVED": "Selesai",
    "CLOSED": "Ditutup",
    "STALE": "Kadaluarsa",
}


@dataclass
class AlertResult:
    success: bool
    error: str | None = None


def decorate(text: str, priority: str = "normal") -> str:
    """Wrap an alert with its priority markers."""
    if priority == "critical":
        return f"🚨🚨🚨\n{text}\n🚨🚨🚨"
    if priority == "high":
        return f"🔴\n{text}"
    return text


class TelegramNotifier:
    """Sends HTML-formatted alerts to the operators' chat.

    Args:
        bot: Optional aiogram Bot (tests pass a fake)
        admin_chat_id: Chat receiving alerts
    """

    def __init__(self, bot: Bot | None = None, admin_chat_id: str | None = None):
        from tanggap.config import settings

        self.admin_chat_id = admin_chat_id or settings.telegram_admin_chat_id
        self._token = settings.telegram_bot_token
        self._bot = bot

    @property
    def is_configured(self) -> bool:
        return bool(self.admin_chat_id and (self._bot is not None or self._token))

    @property
    def bot(self) -> Bot:
        if self._bot is None:
            self._bot = Bot(
                token=self._token,
                default=DefaultBotProperties(
                    parse_mode=ParseMode.HTML, link_preview_is_disabled=True
                ),
            )
        return self._bot

    async def close(self) -> None:
        if self._bot is not None:
            await self._bot.session.close()

    async def send_alert(self, text: str, priority: str = "normal") -> AlertResult:
        if not self.is_configured:
            logger.warning("Telegram not configured, skipping alert")
            return AlertResult(success=False, error="Telegram not configured")

        try:
            await self.bot.send_message(chat_id=self.admin_chat_id, text=decorate(text, priority))
        except Exception as e:
            logger.error(f"Failed to send Telegram alert: {e}")
            return AlertResult(success=False, error=str(e))

        logger.info(f"Telegram alert sent to {self.admin_chat_id}")
        return AlertResult(success=True)

    async def notify_new_report(self, report: Report, reporter: User | None) -> AlertResult:
        icon = REPORT_ICONS.get(report.type, "📋")
        urgency_icon = URGENCY_ICONS.get(report.urgency, "⚪")
        reporter_name = report.reporter_phone
        if reporter is not None:
            reporter_name = reporter.name or reporter.phone_number
        trusted = reporter is not None and reporter.role != UserRole.PUBLIC.value

        lines = [
            f"{icon} {html.bold('LAPORAN BARU')} {urgency_icon}",
            "",
            f"{html.bold('ID:')} {html.quote(report.report_number)}",
            f"{html.bold('Jenis:')} {REPORT_TYPE_NAMES.get(report.type, report.type)}",
            f"{html.bold('Urgensi:')} {URGENCY_NAMES.get(report.urgency, report.urgency)}",
            "",
            f"{html.bold('Pelapor:')} {html.quote(reporter_name or '-')}",
            (
                f"✅ {html.italic('Relawan terverifikasi')}"
                if trusted
                else f"⚠️ {html.italic('Pelapor bukan relawan terverifikasi')}"
            ),
            "",
            f"{html.bold('Lokasi:')} {html.quote(report.location)}",
        ]
        if report.location_detail:
            lines.append(html.italic(report.location_detail))
        lines += [
            "",
            html.bold("Ringkasan:"),
            html.quote(report.summary),
            "",
            f"{html.bold('Status:')} {STATUS_NAMES.get(report.status, report.status)}",
            "",
            html.italic(f"Waktu: {format_time(report.created_at)}"),
        ]
        priority = "high" if report.urgency == "CRITICAL" else "normal"
        return await self.send_alert("\n".join(lines), priority=priority)

    async def notify_verification_needed(
        self, report: Report, reporter: User | None = None
    ) -> AlertResult:
        trust_level = reporter.trust_level if reporter else 0
        text = "\n".join(
            [
                f"⏳ {html.bold('PERLU VERIFIKASI')}",
                "",
                f"{html.bold('ID:')} {html.quote(report.report_number)}",
                f"{html.bold('Jenis:')} {REPORT_TYPE_NAMES.get(report.type, report.type)}",
                f"{html.bold('Lokasi:')} {html.quote(report.location)}",
                "",
                f"{html.bold('Pelapor:')} {html.quote(report.reporter_phone or '-')}",
                html.italic(f"Trust Level: {trust_level or 0}"),
                "",
                html.bold("Ringkasan:"),
                html.quote(report.summary),
                "",
                f"📞 {html.bold('Tindakan:')} Hubungi pelapor untuk verifikasi.",
            ]
        )
        return await self.send_alert(text)

    async def notify_critical_report(self, report: Report) -> AlertResult:
        text = "\n".join(
            [
                f"🚨🚨🚨 {html.bold('LAPORAN KRITIS!')} 🚨🚨🚨",
                "",
                f"{html.bold('ID:')} {html.quote(report.report_number)}",
                f"{html.bold('Jenis:')} {REPORT_TYPE_NAMES.get(report.type, report.type)}",
                f"{html.bold('Lokasi:')} {html.quote(report.location)}",
                "",
                html.bold("Ringkasan:"),
                html.quote(report.summary),
                "",
                f"⚡ {html.bold('MEMERLUKAN TINDAKAN SEGERA!')}",
                "",
                html.italic(f"Waktu: {format_time(report.created_at)}"),
            ]
        )
        return await self.send_alert(text, priority="critical")

    async def notify_system_health(
        self, service: str, status: str, error: str | None = None
    ) -> AlertResult:
        icon = "✅" if status == "healthy" else "❌"
        lines = [
            f"{icon} {html.bold('System Health Alert')}",
            "",
            f"{html.bold('Service:')} {html.quote(service)}",
            f"{html.bold('Status:')} {html.quote(status)}",
        ]
        if error:
            lines.append(f"{html.bold('Error:')} {html.quote(error)}")
        lines += ["", html.italic(f"Time: {format_time()}")]
        return await self.send_alert("\n".join(lines))

    async def health_check(self) -> dict[str, Any]:
        if not self.is_configured:
            return {"status": "unconfigured", "available": False}
        try:
            me = await self.bot.get_me()
        except Exception as e:
            return {"status": "unhealthy", "available": False, "error": str(e)}
        return {"status": "healthy", "available": True, "bot": me.username}


_notifier: TelegramNotifier | None = None


def get_telegram_notifier() -> TelegramNotifier:
    global _notifier
    if _notifier is None:
        _notifier = TelegramNotifier()
    return _notifier
