import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from tanggap.api.deps import get_current_user, get_media, require_roles
from tanggap.api.schemas import MediaOut
from tanggap.db.database import get_db
from tanggap.db.models import AuditAction, ReportMedia, User, UserRole
from tanggap.services import audit
from tanggap.services.media import MediaStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["media"])

require_admin = require_roles(UserRole.ADMIN.value)


@router.get("/api/media/stats/storage")
def storage_stats(
    db: Session = Depends(get_db),
    store: MediaStore = Depends(get_media),
    admin: User = Depends(require_admin),
) -> dict[str, Any]:
    counts = dict(
        db.query(ReportMedia.media_type, func.count(ReportMedia.id))
        .group_by(ReportMedia.media_type)
        .all()
    )
    return {"success": True, "data": {"storage": store.storage_stats(), "mediaCount": counts}}


@router.get("/api/media/{media_id}")
def download_media(
    media_id: str,
    db: Session = Depends(get_db),
    store: MediaStore = Depends(get_media),
    user: User = Depends(get_current_user),
) -> FileResponse:
    media = db.get(ReportMedia, media_id)
    if media is None:
        raise HTTPException(status_code=404, detail="Media not found")

    try:
        path = store.full_path(media.file_path)
    except ValueError as e:
        logger.error(f"Media {media_id} has an invalid path: {e}")
        raise HTTPException(status_code=404, detail="Media file not found on disk") from e

    if not path.is_file():
        logger.error(f"Media file for {media_id} missing at {path}")
        raise HTTPException(status_code=404, detail="Media file not found on disk")

    return FileResponse(path, media_type=media.mime_type, filename=media.file_name)


@router.get("/api/reports/{report_id}/media")
def report_media(
    report_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    items = (
        db.query(ReportMedia)
        .filter(ReportMedia.report_id == report_id)
        .order_by(ReportMedia.uploaded_at.desc())
        .all()
    )
    return {"success": True, "data": [MediaOut.model_validate(m).to_json() for m in items]}


@router.delete("/api/media/{media_id}")
def delete_media(
    media_id: str,
    db: Session = Depends(get_db),
    store: MediaStore = Depends(get_media),
    admin: User = Depends(require_admin),
) -> dict[str, Any]:
    media = db.get(ReportMedia, media_id)
    if media is None:
        raise HTTPException(status_code=404, detail="Media not found")

    try:
        store.delete(media.file_path)
    except ValueError as e:
        logger.error(f"Refusing to delete {media.file_path}: {e}")

    audit.record(
        db,
        AuditAction.DELETE,
        "report_media",
        media.id,
        user_id=admin.id,
        report_id=media.report_id,
        details={"fileName": media.file_name, "mediaType": media.media_type},
    )
    db.delete(media)
    db.commit()

    logger.info(f"Media {media_id} deleted by {admin.id}")
    return {"success": True, "message": "Media deleted successfully"}
