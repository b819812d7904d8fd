"""Audit trail for report and account changes.

Entries are added to the caller's session and committed with the change
they describe, so a rolled-back change leaves no audit entry behind.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from tanggap.db.models import AuditAction, AuditLog

logger = logging.getLogger(__name__)


def record(
    db: Session,
    action: AuditAction,
    entity_type: str,
    entity_id: str | None = None,
    *,
    user_id: str | None = None,
    report_id: str | None = None,
    changes: dict[str, Any] | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        action=action.value,
        entity_type=entity_type,
        entity_id=entity_id,
        report_id=report_id,
        changes=changes,
        details=details,
    )
    db.add(entry)
    logger.debug(f"Audit {action.value} {entity_type}:{entity_id} by {user_id or 'system'}")
    return entry


def list_entries(
    db: Session,
    *,
    report_id: str | None = None,
    entity_type: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = db.query(AuditLog)
    if report_id:
        query = query.filter(AuditLog.report_id == report_id)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    return query.order_by(AuditLog.created_at.desc()).limit(limit).all()
