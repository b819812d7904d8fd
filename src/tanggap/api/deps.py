"""FastAPI dependencies: authentication, role checks and shared services."""

import logging
from collections.abc import Callable

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from tanggap.api.security import TokenError, decode_token
from tanggap.db.database import get_db
from tanggap.db.models import User
from tanggap.services.extraction import ReportExtractor, get_report_extractor
from tanggap.services.media import MediaStore, get_media_store
from tanggap.services.notifications import NotificationService, get_notification_service
from tanggap.whatsapp.factory import WhatsAppService, get_whatsapp_service
from tanggap.whatsapp.handlers import WhatsAppHandler, get_whatsapp_handler
from tanggap.whatsapp.web_client import WhatsAppWebClient
from tanggap.whatsapp.webhook import WhatsAppWebhook, get_whatsapp_webhook

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="No token provided")

    try:
        claims = decode_token(credentials.credentials)
    except TokenError as e:
        logger.warning(f"Rejected token: {e}")
        detail = "Token expired" if "expired" in str(e) else "Invalid token"
        raise HTTPException(status_code=401, detail=detail) from e

    user = db.get(User, claims["userId"])
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User is inactive")
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    """Dependency factory allowing only the given roles through."""

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker


# Service getters, overridable with app.dependency_overrides in tests


def get_extractor() -> ReportExtractor:
    return get_report_extractor()


def get_notifications() -> NotificationService:
    return get_notification_service()


def get_whatsapp() -> WhatsAppService:
    return get_whatsapp_service()


def get_media() -> MediaStore:
    return get_media_store()


def get_webhook() -> WhatsAppWebhook:
    return get_whatsapp_webhook()


def get_handler() -> WhatsAppHandler:
    return get_whatsapp_handler()


def get_web_client() -> WhatsAppWebClient:
    return WhatsAppWebClient()
