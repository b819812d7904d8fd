"""Operator commands for the Telegram bot.

Only the configured admin chat gets answers; anyone else is ignored.
"""

import logging
from collections.abc import Callable

from aiogram import Dispatcher, Router, html
from aiogram.filters import Command, CommandStart
from aiogram.types import Message
from sqlalchemy.orm import Session

from tanggap.db.models import Report, ReportStatus
from tanggap.services.reports import dashboard_stats
from tanggap.telegram.notifier import REPORT_ICONS, URGENCY_ICONS, URGENCY_NAMES

logger = logging.getLogger(__name__)

router = Router()

PENDING_LIMIT = 10

HELP_TEXT = (
    f"{html.bold('Tanggap Darurat - Bot Operator')}\n\n"
    "Laporan masuk lewat WhatsApp dan form web. Bot ini mengirim notifikasi "
    "ke grup operator.\n\n"
    f"{html.bold('Perintah:')}\n"
    "/stats - Ringkasan laporan\n"
    "/pending - Laporan menunggu verifikasi\n"
    "/help - Bantuan"
)

_session_factory: Callable[[], Session] | None = None


def get_session() -> Session:
    global _session_factory
    if _session_factory is None:
        from tanggap.db.database import SessionLocal

        _session_factory = SessionLocal
    return _session_factory()


def is_operator_chat(message: Message) -> bool:
    from tanggap.config import settings

    return str(message.chat.id) == str(settings.telegram_admin_chat_id)


def setup_handlers(dp: Dispatcher) -> None:
    """Set up command handlers on the dispatcher."""
    dp.include_router(router)


def format_stats(stats: dict) -> str:
    summary = stats["summary"]
    lines = [
        f"📊 {html.bold('Statistik Laporan')}",
        "",
        f"Total laporan: {summary['total_reports']}",
        f"Menunggu verifikasi: {summary['pending_verification']}",
        f"Kritis (belum selesai): {summary['critical_reports']}",
        f"Selesai hari ini: {summary['resolved_today']}",
    ]
    if stats["reports_by_type"]:
        lines += ["", html.bold("Per jenis:")]
        for report_type, count in sorted(stats["reports_by_type"].items()):
            lines.append(f"{REPORT_ICONS.get(report_type, '📋')} {report_type}: {count}")
    if stats["reports_by_urgency"]:
        lines += ["", html.bold("Per urgensi (belum selesai):")]
        for urgency, count in sorted(stats["reports_by_urgency"].items()):
            icon = URGENCY_ICONS.get(urgency, "⚪")
            lines.append(f"{icon} {URGENCY_NAMES.get(urgency, urgency)}: {count}")
    return "\n".join(lines)


def format_pending(reports: list[Report]) -> str:
    if not reports:
        return "✅ Tidak ada laporan yang menunggu verifikasi."

    lines = [f"⏳ {html.bold('Menunggu Verifikasi')} ({len(reports)})", ""]
    for report in reports:
        icon = URGENCY_ICONS.get(report.urgency, "⚪")
        lines.append(
            f"{icon} {html.bold(report.report_number)} - {html.quote(report.location)}\n"
            f"   {html.quote(report.summary[:80])}"
        )
    return "\n".join(lines)


@router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    if not is_operator_chat(message):
        return
    await message.answer(
        "Halo! Bot ini mengirim notifikasi laporan bencana ke operator.\n\n"
        "Ketik /help untuk daftar perintah."
    )


@router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    if not is_operator_chat(message):
        return
    await message.answer(HELP_TEXT)


@router.message(Command("stats"))
async def cmd_stats(message: Message) -> None:
    """Handle /stats - report counts for today's shift."""
    if not is_operator_chat(message):
        return
    db = get_session()
    try:
        text = format_stats(dashboard_stats(db))
    except Exception as e:
        logger.exception(f"Stats command failed: {e}")
        text = "❌ Gagal mengambil statistik."
    finally:
        db.close()
    await message.answer(text)


@router.message(Command("pending"))
async def cmd_pending(message: Message) -> None:
    """Handle /pending - oldest reports still waiting for verification."""
    if not is_operator_chat(message):
        return
    db = get_session()
    try:
        reports = (
            db.query(Report)
            .filter(Report.status == ReportStatus.PENDING_VERIFICATION.value)
            .order_by(Report.created_at.asc())
            .limit(PENDING_LIMIT)
            .all()
        )
        text = format_pending(reports)
    except Exception as e:
        logger.exception(f"Pending command failed: {e}")
        text = "❌ Gagal mengambil daftar laporan."
    finally:
        db.close()
    await message.answer(text)
