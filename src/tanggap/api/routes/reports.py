"""Report endpoints: public web form, dashboard listing, detail and status."""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tanggap.api.deps import get_current_user, get_extractor, get_notifications, require_roles
from tanggap.api.schemas import (
    AuditOut,
    ReportDetailOut,
    ReportOut,
    StatusUpdateRequest,
    WebReportRequest,
)
from tanggap.db.database import get_db
from tanggap.db.models import AuditAction, User, UserRole
from tanggap.services import audit
from tanggap.services.extraction import ExtractionError, ReportExtractor
from tanggap.services.notifications import NotificationService
from tanggap.services.parser import SUMMARY_LENGTH, ExtractionResult, NeedData, PersonData
from tanggap.services.reports import (
    ReportError,
    ReportFilters,
    create_report,
    export_reports,
    get_report,
    list_reports,
    update_status,
)
from tanggap.services.users import get_or_create_user, normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])

STATUS_EDITORS = (UserRole.ADMIN.value, UserRole.COORDINATOR.value, UserRole.VOLUNTEER.value)
EXPORTERS = (UserRole.ADMIN.value, UserRole.PMI_BNPB.value)


def _form_extraction(body: WebReportRequest) -> ExtractionResult:
    text = body.message or ""
    return ExtractionResult(
        intent=body.type.value.lower(),
        urgency=(body.urgency or "medium").lower(),
        location=body.location or "",
        summary=body.summary or text[:SUMMARY_LENGTH],
        persons=[PersonData(**person.model_dump()) for person in body.persons],
        needs=[NeedData(**need.model_dump()) for need in body.needs],
        source="form",
    )


@router.post("", status_code=201)
async def submit_report(
    body: WebReportRequest,
    db: Session = Depends(get_db),
    extractor: ReportExtractor = Depends(get_extractor),
    notifications: NotificationService = Depends(get_notifications),
) -> dict[str, Any]:
    """Public web form submission."""
    if not normalize_phone(body.reporter_phone):
        raise HTTPException(status_code=400, detail="reporterPhone must contain digits")

    if body.type is None:
        try:
            extraction = await extractor.extract(body.message)
        except ExtractionError as e:
            logger.error(f"Web report extraction failed: {e}")
            raise HTTPException(status_code=503, detail="Extraction service unavailable") from e
        if extraction.is_unknown:
            raise HTTPException(
                status_code=400, detail="Could not recognise a report in the message"
            )
        if body.location:
            extraction.location = body.location
        if body.urgency:
            extraction.urgency = body.urgency.lower()
    else:
        extraction = _form_extraction(body)

    reporter, _ = get_or_create_user(db, body.reporter_phone, body.reporter_name, source="web")
    report = create_report(
        db,
        reporter,
        extraction,
        body.message or extraction.summary,
        source="web",
        location_detail=body.location_detail,
        latitude=body.latitude,
        longitude=body.longitude,
    )
    await notifications.report_created(db, report, reporter)

    return {"success": True, "data": ReportOut.model_validate(report).to_json()}


@router.get("")
def get_reports(
    type: str | None = None,
    status: str | None = None,
    urgency: str | None = None,
    search: str | None = None,
    has_coordinates: bool | None = Query(default=None, alias="hasCoordinates"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    sort_by: str = Query(default="created_at", alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    filters = ReportFilters(
        type=type, status=status, urgency=urgency, search=search, has_coordinates=has_coordinates
    )
    result = list_reports(
        db, filters, page=page, limit=limit, sort_by=_snake(sort_by), sort_order=sort_order
    )
    return {
        "success": True,
        "data": [ReportOut.model_validate(r).to_json() for r in result.items],
        "pagination": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "totalPages": result.total_pages,
        },
    }


@router.get("/export")
def export(
    type: str | None = None,
    status: str | None = None,
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*EXPORTERS)),
) -> dict[str, Any]:
    reports = export_reports(
        db, ReportFilters(type=type, status=status, start=start_date, end=end_date)
    )
    audit.record(
        db,
        AuditAction.EXPORT,
        "report",
        "bulk",
        user_id=user.id,
        details={
            "count": len(reports),
            "filters": {
                "type": type,
                "status": status,
                "startDate": start_date.isoformat() if start_date else None,
                "endDate": end_date.isoformat() if end_date else None,
            },
        },
    )
    db.commit()
    logger.info(f"{user.id} exported {len(reports)} reports")
    return {"success": True, "data": [ReportOut.model_validate(r).to_json() for r in reports]}


@router.get("/{report_id}")
def get_report_detail(
    report_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    report = get_report(db, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")

    data = ReportDetailOut.model_validate(report).to_json()
    data["auditLogs"] = [
        AuditOut.model_validate(entry).to_json()
        for entry in audit.list_entries(db, report_id=report.id)
    ]
    return {"success": True, "data": data}


@router.api_route("/{report_id}/status", methods=["PATCH", "PUT"])
async def change_status(
    report_id: str,
    body: StatusUpdateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STATUS_EDITORS)),
    notifications: NotificationService = Depends(get_notifications),
) -> dict[str, Any]:
    report = get_report(db, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")

    try:
        previous = update_status(
            db, report, user, body.status.upper(), body.notes, body.assigned_to_id
        )
    except ReportError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    assignee = report.assigned_to if body.assigned_to_id else None
    await notifications.status_changed(report, previous, assignee)

    return {"success": True, "data": ReportDetailOut.model_validate(report).to_json()}


def _snake(name: str) -> str:
    """Accept camelCase sort keys from the dashboard ("createdAt")."""
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name)
