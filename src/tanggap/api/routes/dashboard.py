from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tanggap.api.deps import get_current_user
from tanggap.api.schemas import ReportOut
from tanggap.db.database import get_db
from tanggap.db.models import User
from tanggap.services.reports import dashboard_stats

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats")
def stats(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    result = dashboard_stats(db)
    summary = result["summary"]
    return {
        "success": True,
        "data": {
            "summary": {
                "totalReports": summary["total_reports"],
                "pendingVerification": summary["pending_verification"],
                "criticalReports": summary["critical_reports"],
                "resolvedToday": summary["resolved_today"],
            },
            "reportsByType": result["reports_by_type"],
            "reportsByUrgency": result["reports_by_urgency"],
            "recentReports": [
                ReportOut.model_validate(report).to_json() for report in result["recent_reports"]
            ],
        },
    }
