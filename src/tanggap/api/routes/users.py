"""Account management for admins.

Deleting a user deactivates the account; reports keep their reporter.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from tanggap.api.deps import require_roles
from tanggap.api.schemas import UserCreateRequest, UserOut, UserUpdateRequest
from tanggap.db.database import get_db
from tanggap.db.models import AuditAction, Report, User, UserRole
from tanggap.services import audit
from tanggap.services.users import get_by_phone, normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

require_admin = require_roles(UserRole.ADMIN.value)


def _get_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _with_report_count(db: Session, user: User) -> dict[str, Any]:
    data = UserOut.model_validate(user).to_json()
    data["reportCount"] = (
        db.query(func.count(Report.id)).filter(Report.reporter_id == user.id).scalar() or 0
    )
    return data


@router.get("")
def list_users(
    role: str | None = None,
    is_active: bool | None = Query(default=None, alias="isActive"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict[str, Any]:
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)
    users = query.order_by(User.created_at.desc()).all()
    return {"success": True, "data": [_with_report_count(db, u) for u in users]}


@router.get("/{user_id}")
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict[str, Any]:
    return {"success": True, "data": _with_report_count(db, _get_or_404(db, user_id))}


@router.post("", status_code=201)
def create_user(
    body: UserCreateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict[str, Any]:
    phone = normalize_phone(body.phone_number)
    if not phone:
        raise HTTPException(status_code=400, detail="phoneNumber must contain digits")
    if get_by_phone(db, phone) is not None:
        raise HTTPException(status_code=409, detail="Phone number already registered")

    user = User(
        phone_number=phone,
        name=body.name or phone,
        role=body.role.value,
        organization=body.organization,
        trust_level=body.trust_level,
    )
    db.add(user)
    db.flush()
    audit.record(
        db,
        AuditAction.CREATE,
        "user",
        user.id,
        user_id=admin.id,
        changes={"role": user.role, "trustLevel": user.trust_level},
    )
    db.commit()
    db.refresh(user)

    logger.info(f"User {user.id} ({user.role}) created by {admin.id}")
    return {"success": True, "data": UserOut.model_validate(user).to_json()}


@router.patch("/{user_id}")
def update_user(
    user_id: str,
    body: UserUpdateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict[str, Any]:
    user = _get_or_404(db, user_id)
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    changes = {}
    for field_name, value in updates.items():
        if isinstance(value, UserRole):
            value = value.value
        changes[field_name] = {"from": getattr(user, field_name), "to": value}
        setattr(user, field_name, value)

    audit.record(db, AuditAction.UPDATE, "user", user.id, user_id=admin.id, changes=changes)
    db.commit()
    db.refresh(user)

    logger.info(f"User {user.id} updated by {admin.id}: {sorted(changes)}")
    return {"success": True, "data": UserOut.model_validate(user).to_json()}


@router.delete("/{user_id}")
def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict[str, Any]:
    user = _get_or_404(db, user_id)
    if user.id == admin.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    user.is_active = False
    audit.record(
        db,
        AuditAction.DELETE,
        "user",
        user.id,
        user_id=admin.id,
        changes={"isActive": {"from": True, "to": False}},
    )
    db.commit()

    logger.info(f"User {user.id} deactivated by {admin.id}")
    return {"success": True, "message": "User deactivated"}
