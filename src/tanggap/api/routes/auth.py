import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tanggap.api.deps import get_current_user
from tanggap.api.schemas import LoginRequest, SetupAdminRequest, UserOut
from tanggap.api.security import create_token, password_matches
from tanggap.config import settings
from tanggap.db.database import get_db
from tanggap.db.models import AuditAction, User, UserRole
from tanggap.services import audit
from tanggap.services.users import admin_exists, get_by_phone, normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

ADMIN_TRUST_LEVEL = 5


def _session_payload(user: User) -> dict[str, Any]:
    return {
        "token": create_token(user.id, user.role),
        "user": UserOut.model_validate(user).to_json(),
    }


@router.post("/login")
def login(body: LoginRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Dashboard login by phone number.

    A password must match ADMIN_PASSWORD. Admins may log in without one.
    """
    if not body.identifier:
        raise HTTPException(status_code=400, detail="Phone number or username required")

    user = get_by_phone(db, body.identifier)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User is inactive")

    if body.password:
        if not password_matches(body.password, settings.admin_password):
            raise HTTPException(status_code=401, detail="Invalid credentials")
    elif user.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=401, detail="Password required")

    audit.record(db, AuditAction.LOGIN, "user", user.id, user_id=user.id)
    db.commit()
    logger.info(f"User {user.id} logged in as {user.role}")
    return {"success": True, "data": _session_payload(user)}


@router.post("/setup-admin")
def setup_admin(body: SetupAdminRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Create the first admin account. Refused once any admin exists."""
    if admin_exists(db):
        raise HTTPException(status_code=400, detail="Admin already exists")

    phone = normalize_phone(body.phone_number)
    if not phone:
        raise HTTPException(status_code=400, detail="Phone number and name required")

    user = get_by_phone(db, phone)
    if user is None:
        user = User(phone_number=phone)
        db.add(user)
    user.name = body.name
    user.role = UserRole.ADMIN.value
    user.trust_level = ADMIN_TRUST_LEVEL
    user.is_active = True
    db.flush()

    audit.record(db, AuditAction.CREATE, "user", user.id, user_id=user.id, details={"setup": True})
    db.commit()
    db.refresh(user)

    if body.password and not settings.admin_password:
        logger.warning("Admin created with a password; set ADMIN_PASSWORD to enable it")
    logger.info(f"Admin user {user.id} created")
    return {
        "success": True,
        "message": "Admin created successfully",
        "data": _session_payload(user),
    }


@router.get("/me")
def me(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {"success": True, "data": UserOut.model_validate(user).to_json()}
