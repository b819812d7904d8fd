"""Who hears about a report, and when.

Alerts are best-effort: a failed Telegram or WhatsApp send is logged and
never undoes the report it was about.
"""

import logging

from sqlalchemy.orm import Session

from tanggap.db.models import Report, ReportStatus, Urgency, User
from tanggap.services.reports import auto_assign
from tanggap.telegram.notifier import TelegramNotifier
from tanggap.whatsapp import messages
from tanggap.whatsapp.factory import WhatsAppService

logger = logging.getLogger(__name__)

REPORTER_UPDATE_STATUSES = {ReportStatus.VERIFIED.value, ReportStatus.RESOLVED.value}


class NotificationService:
    def __init__(
        self,
        telegram: TelegramNotifier,
        whatsapp: WhatsAppService,
        auto_assign_to: str | None = None,
    ):
        if auto_assign_to is None:
            from tanggap.config import settings

            auto_assign_to = settings.auto_assign_critical_to
        self.telegram = telegram
        self.whatsapp = whatsapp
        self.auto_assign_to = auto_assign_to

    async def report_created(self, db: Session, report: Report, reporter: User | None) -> None:
        """Fan out alerts for a freshly created report."""
        try:
            if report.urgency == Urgency.CRITICAL.value:
                await self.telegram.notify_critical_report(report)
            else:
                await self.telegram.notify_new_report(report, reporter)

            if report.status == ReportStatus.PENDING_VERIFICATION.value:
                await self.telegram.notify_verification_needed(report, reporter)

            if report.urgency == Urgency.CRITICAL.value and self.auto_assign_to:
                volunteer = auto_assign(db, report, self.auto_assign_to)
                if volunteer is not None:
                    await self.whatsapp.send_text(
                        volunteer.phone_number, messages.assignment_notice(report)
                    )
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to send notifications for {report.report_number}: {e}")

    async def status_changed(
        self,
        report: Report,
        previous_status: str,
        assignee: User | None = None,
    ) -> None:
        """Tell the reporter, and any new assignee, about a dashboard change."""
        try:
            if report.status in REPORTER_UPDATE_STATUSES and report.reporter_phone:
                await self.whatsapp.send_text(report.reporter_phone, messages.status_update(report))

            if assignee is not None:
                await self.whatsapp.send_text(
                    assignee.phone_number, messages.assignment_notice(report)
                )
        except Exception as e:
            logger.exception(
                f"Failed to send status update for {report.report_number} "
                f"({previous_status} -> {report.status}): {e}"
            )


_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    global _service
    if _service is None:
        from tanggap.telegram.notifier import get_telegram_notifier
        from tanggap.whatsapp.factory import get_whatsapp_service

        _service = NotificationService(get_telegram_notifier(), get_whatsapp_service())
    return _service
