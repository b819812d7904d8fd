import logging
import re

from sqlalchemy.orm import Session

from tanggap.db.models import AuditAction, User, UserRole
from tanggap.services import audit

logger = logging.getLogger(__name__)


def normalize_phone(phone_number: str) -> str:
    """Digits only, the way WhatsApp identifies senders."""
    return re.sub(r"\D", "", phone_number or "")


def get_by_phone(db: Session, phone_number: str) -> User | None:
    return db.query(User).filter(User.phone_number == normalize_phone(phone_number)).first()


def get_or_create_user(
    db: Session,
    phone_number: str,
    name: str | None = None,
    role: str | None = None,
    source: str = "whatsapp",
) -> tuple[User, bool]:
    """Find the sender's account, creating an untrusted one on first contact.

    Returns:
        (user, created)
    """
    user = get_by_phone(db, phone_number)
    if user is not None:
        return user, False

    if role is None:
        from tanggap.config import settings

        role = settings.default_user_role

    phone = normalize_phone(phone_number)
    user = User(phone_number=phone, name=name or phone, role=role, trust_level=0)
    db.add(user)
    db.flush()
    audit.record(
        db,
        AuditAction.CREATE,
        "user",
        user.id,
        details={"source": source, "autoCreated": True},
    )
    db.commit()
    logger.info(f"Created user {user.id} with role {role}")
    return user, True


def is_trusted(user: User, threshold: int | None = None) -> bool:
    """Whether the user's reports skip manual verification."""
    if threshold is None:
        from tanggap.config import settings

        threshold = settings.auto_verify_trust_level
    if user.role != UserRole.PUBLIC.value:
        return True
    return (user.trust_level or 0) >= threshold


def admin_exists(db: Session) -> bool:
    return db.query(User).filter(User.role == UserRole.ADMIN.value).first() is not None
