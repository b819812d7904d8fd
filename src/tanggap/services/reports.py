"""Report persistence: creation, numbering, status changes and queries."""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import pytz
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from tanggap.db.models import (
    AuditAction,
    NeedCategory,
    NeedStatus,
    PersonStatus,
    Report,
    ReportAction,
    ReportMedia,
    ReportNeed,
    ReportPerson,
    ReportStatus,
    ReportType,
    Urgency,
    User,
    now_utc,
)
from tanggap.services import audit
from tanggap.services.parser import INTENT_KORBAN, ExtractionResult
from tanggap.services.users import get_by_phone, is_trusted

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "Tidak disebutkan"

SORTABLE_FIELDS = {"created_at", "updated_at", "urgency", "status", "report_number"}


class ReportError(Exception):
    """Raised for invalid report operations (unknown assignee, bad status)."""


@dataclass
class ReportFilters:
    type: str | None = None
    status: str | None = None
    urgency: str | None = None
    search: str | None = None
    has_coordinates: bool | None = None
    start: datetime | None = None
    end: datetime | None = None


@dataclass
class Page:
    items: list[Report]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


def _timezone(tz_name: str | None) -> pytz.BaseTzInfo:
    if tz_name is None:
        from tanggap.config import settings

        tz_name = settings.timezone
    return pytz.timezone(tz_name)


def local_date(tz_name: str | None = None, now: datetime | None = None) -> date:
    """The current calendar day in the configured timezone."""
    return (now or now_utc()).astimezone(_timezone(tz_name)).date()


def local_midnight(tz_name: str | None = None, now: datetime | None = None) -> datetime:
    """Start of the current local day, as an aware UTC datetime."""
    tz = _timezone(tz_name)
    day = local_date(tz_name, now)
    midnight = tz.localize(datetime(day.year, day.month, day.day))
    return midnight.astimezone(pytz.UTC)


def generate_report_number(
    db: Session,
    report_type: ReportType,
    verified: bool,
    now: datetime | None = None,
    tz_name: str | None = None,
) -> str:
    """Build "<VR|PB>-<K|N>-<NNNN>", numbered per local day."""
    day = local_date(tz_name, now)
    count = db.query(func.count(Report.id)).filter(Report.report_date == day).scalar() or 0
    prefix = "VR" if verified else "PB"
    type_code = "K" if report_type == ReportType.KORBAN else "N"
    return f"{prefix}-{type_code}-{count + 1:04d}"


def _upper_choice(value: str | None, enum_cls, default: str) -> str:
    if not value:
        return default
    candidate = value.upper()
    return candidate if candidate in enum_cls.__members__ else default


def create_report(
    db: Session,
    reporter: User,
    extraction: ExtractionResult,
    raw_message: str,
    *,
    source: str = "whatsapp",
    media: list[dict[str, Any]] | None = None,
    location_detail: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
) -> Report:
    """Persist a report with its persons, needs and media.

    Reports from trusted reporters are verified on creation; everyone else's
    wait for an operator.
    """
    verified = is_trusted(reporter)
    report_type = ReportType.KORBAN if extraction.intent == INTENT_KORBAN else ReportType.KEBUTUHAN
    now = now_utc()

    report = Report(
        report_number=generate_report_number(db, report_type, verified, now=now),
        report_date=local_date(now=now),
        type=report_type.value,
        status=(
            ReportStatus.VERIFIED.value if verified else ReportStatus.PENDING_VERIFICATION.value
        ),
        urgency=_upper_choice(extraction.urgency, Urgency, Urgency.MEDIUM.value),
        reporter_id=reporter.id,
        reporter_phone=reporter.phone_number,
        report_source=source,
        location=extraction.location or DEFAULT_LOCATION,
        location_detail=location_detail,
        latitude=latitude,
        longitude=longitude,
        summary=extraction.summary or raw_message[:200],
        raw_message=raw_message,
        extracted_data=extraction.to_dict(),
        created_at=now,
    )
    if verified:
        report.verified_by_id = reporter.id
        report.verified_at = now

    if report_type == ReportType.KORBAN:
        for person in extraction.persons:
            report.persons.append(
                ReportPerson(
                    name=person.name,
                    status=_upper_choice(
                        person.status, PersonStatus, PersonStatus.LUKA_SEDANG.value
                    ),
                    age=person.age,
                    gender=person.gender,
                    condition=person.condition,
                )
            )
    else:
        for need in extraction.needs:
            report.needs.append(
                ReportNeed(
                    category=_upper_choice(
                        need.category, NeedCategory, NeedCategory.LOGISTIK_LAIN.value
                    ),
                    description=need.description,
                    quantity=need.quantity,
                    people_affected=need.people_affected,
                    status=NeedStatus.BELUM_TERPENUHI.value,
                )
            )

    for item in media or []:
        report.media.append(ReportMedia(**item))

    db.add(report)
    db.flush()

    audit.record(
        db,
        AuditAction.CREATE,
        "report",
        report.id,
        user_id=reporter.id,
        report_id=report.id,
        details={
            "source": source,
            "aiExtracted": extraction.source == "llm",
            "fallback": extraction.fallback,
        },
    )
    db.commit()
    db.refresh(report)

    logger.info(
        f"Created report {report.report_number} ({report.type}, {report.urgency}, {report.status})"
    )
    return report


def get_report(db: Session, report_id: str) -> Report | None:
    return (
        db.query(Report)
        .options(
            selectinload(Report.persons),
            selectinload(Report.needs),
            selectinload(Report.media),
            selectinload(Report.actions),
        )
        .filter(Report.id == report_id)
        .first()
    )


def update_status(
    db: Session,
    report: Report,
    actor: User,
    status: str,
    notes: str | None = None,
    assigned_to_id: str | None = None,
) -> str:
    """Change a report's status and record who did it.

    Returns:
        The previous status.

    Raises:
        ReportError: If the status or assignee is not valid.
    """
    if status not in ReportStatus.__members__:
        raise ReportError(f"Invalid status: {status}")

    previous = report.status
    now = now_utc()

    if assigned_to_id:
        assignee = db.get(User, assigned_to_id)
        if assignee is None:
            raise ReportError(f"Assignee {assigned_to_id} not found")
        report.assigned_to_id = assignee.id
        report.assigned_at = now
        status = ReportStatus.ASSIGNED.value

    report.status = status
    if status == ReportStatus.VERIFIED.value:
        report.verified_by_id = actor.id
        report.verified_at = now
    elif status == ReportStatus.RESOLVED.value:
        report.resolved_at = now

    report.actions.append(
        ReportAction(
            type="STATUS_UPDATE",
            description=notes or f"Status diubah dari {previous} ke {status}",
            taken_by_id=actor.id,
        )
    )
    audit.record(
        db,
        AuditAction.UPDATE,
        "report",
        report.id,
        user_id=actor.id,
        report_id=report.id,
        changes={"status": {"from": previous, "to": status}},
        details={"notes": notes, "assignedToId": assigned_to_id},
    )
    db.commit()
    db.refresh(report)

    logger.info(f"Report {report.report_number} status {previous} -> {status} by {actor.id}")
    return previous


def auto_assign(db: Session, report: Report, phone_number: str) -> User | None:
    """Assign a report to the volunteer with this phone number, if they exist."""
    volunteer = get_by_phone(db, phone_number)
    if volunteer is None:
        logger.warning(f"Auto-assign target {phone_number} has no account; skipping")
        return None

    now = now_utc()
    report.assigned_to_id = volunteer.id
    report.assigned_at = now
    report.status = ReportStatus.ASSIGNED.value
    report.actions.append(
        ReportAction(
            type="AUTO_ASSIGN",
            description=f"Laporan kritis otomatis ditugaskan ke {volunteer.name or phone_number}",
        )
    )
    audit.record(
        db,
        AuditAction.UPDATE,
        "report",
        report.id,
        report_id=report.id,
        changes={"assignedToId": volunteer.id},
        details={"autoAssigned": True},
    )
    db.commit()
    logger.info(f"Auto-assigned report {report.report_number} to {volunteer.id}")
    return volunteer


def _apply_filters(query, filters: ReportFilters):
    if filters.type:
        query = query.filter(Report.type == filters.type)
    if filters.status:
        query = query.filter(Report.status == filters.status)
    if filters.urgency:
        query = query.filter(Report.urgency == filters.urgency)
    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.filter(
            or_(
                Report.report_number.ilike(pattern),
                Report.location.ilike(pattern),
                Report.summary.ilike(pattern),
            )
        )
    if filters.has_coordinates is True:
        query = query.filter(Report.latitude.isnot(None), Report.longitude.isnot(None))
    elif filters.has_coordinates is False:
        query = query.filter(or_(Report.latitude.is_(None), Report.longitude.is_(None)))
    if filters.start:
        query = query.filter(Report.created_at >= filters.start)
    if filters.end:
        query = query.filter(Report.created_at <= filters.end)
    return query


def list_reports(
    db: Session,
    filters: ReportFilters | None = None,
    *,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Page:
    query = _apply_filters(db.query(Report), filters or ReportFilters())
    total = query.count()

    column = getattr(Report, sort_by if sort_by in SORTABLE_FIELDS else "created_at")
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc())

    page = max(page, 1)
    items = (
        query.options(selectinload(Report.persons), selectinload(Report.needs))
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)


def export_reports(db: Session, filters: ReportFilters | None = None) -> list[Report]:
    query = _apply_filters(db.query(Report), filters or ReportFilters())
    return (
        query.options(
            selectinload(Report.persons),
            selectinload(Report.needs),
            selectinload(Report.reporter),
        )
        .order_by(Report.created_at.desc())
        .all()
    )


def dashboard_stats(db: Session, tz_name: str | None = None) -> dict[str, Any]:
    midnight = local_midnight(tz_name)
    open_filter = Report.status != ReportStatus.RESOLVED.value

    by_type = dict(db.query(Report.type, func.count(Report.id)).group_by(Report.type).all())
    by_urgency = dict(
        db.query(Report.urgency, func.count(Report.id))
        .filter(open_filter)
        .group_by(Report.urgency)
        .all()
    )
    recent = (
        db.query(Report)
        .options(selectinload(Report.reporter))
        .order_by(Report.created_at.desc())
        .limit(10)
        .all()
    )

    return {
        "summary": {
            "total_reports": db.query(func.count(Report.id)).scalar() or 0,
            "pending_verification": db.query(func.count(Report.id))
            .filter(Report.status == ReportStatus.PENDING_VERIFICATION.value)
            .scalar()
            or 0,
            "critical_reports": db.query(func.count(Report.id))
            .filter(Report.urgency == Urgency.CRITICAL.value, open_filter)
            .scalar()
            or 0,
            "resolved_today": db.query(func.count(Report.id))
            .filter(
                Report.status == ReportStatus.RESOLVED.value,
                Report.resolved_at >= midnight,
            )
            .scalar()
            or 0,
        },
        "reports_by_type": by_type,
        "reports_by_urgency": by_urgency,
        "recent_reports": recent,
    }
