import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship


def now_utc() -> datetime:
    """Return an aware UTC datetime for default/updated timestamps."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


Base = declarative_base()


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    COORDINATOR = "COORDINATOR"
    VOLUNTEER = "VOLUNTEER"
    PMI_BNPB = "PMI_BNPB"
    PUBLIC = "PUBLIC"


class ReportType(str, Enum):
    KORBAN = "KORBAN"
    KEBUTUHAN = "KEBUTUHAN"


class ReportStatus(str, Enum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    VERIFIED = "VERIFIED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    STALE = "STALE"


class Urgency(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class PersonStatus(str, Enum):
    MENINGGAL = "MENINGGAL"
    HILANG = "HILANG"
    LUKA_BERAT = "LUKA_BERAT"
    LUKA_SEDANG = "LUKA_SEDANG"
    LUKA_RINGAN = "LUKA_RINGAN"
    SAKIT = "SAKIT"


class NeedCategory(str, Enum):
    PANGAN = "PANGAN"
    AIR = "AIR"
    MEDIS = "MEDIS"
    SHELTER = "SHELTER"
    EVAKUASI = "EVAKUASI"
    SANITASI = "SANITASI"
    LOGISTIK_LAIN = "LOGISTIK_LAIN"
    PERLINDUNGAN = "PERLINDUNGAN"


class NeedStatus(str, Enum):
    BELUM_TERPENUHI = "BELUM_TERPENUHI"
    SEBAGIAN = "SEBAGIAN"
    TERPENUHI = "TERPENUHI"


class MediaType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    DOCUMENT = "DOCUMENT"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    EXPORT = "EXPORT"
    LOGIN = "LOGIN"


class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=new_id)
    phone_number = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.PUBLIC.value)
    organization = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    trust_level = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=now_utc)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    reports = relationship(
        "Report", back_populates="reporter", foreign_keys="Report.reporter_id"
    )


class Report(Base):
    __tablename__ = "reports"
    id = Column(String(36), primary_key=True, default=new_id)
    # Numbers restart every local day, so they are unique only per report_date
    report_number = Column(String(32), nullable=False, index=True)
    report_date = Column(Date, nullable=False, index=True)
    type = Column(String(20), nullable=False)
    status = Column(
        String(32), nullable=False, default=ReportStatus.PENDING_VERIFICATION.value
    )
    urgency = Column(String(16), nullable=False, default=Urgency.MEDIUM.value)

    reporter_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    reporter_phone = Column(String(32), nullable=True)
    report_source = Column(String(16), nullable=False, default="whatsapp")

    location = Column(String(500), nullable=False)
    location_detail = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    summary = Column(Text, nullable=False)
    raw_message = Column(Text, nullable=False)
    extracted_data = Column(JSON, nullable=True)

    verified_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    assigned_to_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=now_utc, index=True)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    reporter = relationship("User", back_populates="reports", foreign_keys=[reporter_id])
    verified_by = relationship("User", foreign_keys=[verified_by_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    persons = relationship(
        "ReportPerson", back_populates="report", cascade="all, delete-orphan"
    )
    needs = relationship("ReportNeed", back_populates="report", cascade="all, delete-orphan")
    media = relationship("ReportMedia", back_populates="report", cascade="all, delete-orphan")
    actions = relationship(
        "ReportAction",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="ReportAction.created_at.desc()",
    )

    __table_args__ = (
        UniqueConstraint("report_date", "report_number", name="uq_reports_date_number"),
        Index("idx_reports_status", "status"),
        Index("idx_reports_urgency", "urgency"),
        Index("idx_reports_type", "type"),
    )


class ReportPerson(Base):
    __tablename__ = "report_persons"
    id = Column(String(36), primary_key=True, default=new_id)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    nik = Column(String(32), nullable=True)
    gender = Column(String(8), nullable=True)
    age = Column(Integer, nullable=True)
    age_group = Column(String(16), nullable=True)
    status = Column(String(20), nullable=False, default=PersonStatus.LUKA_SEDANG.value)
    condition = Column(Text, nullable=True)
    last_seen_location = Column(String(500), nullable=True)
    current_location = Column(String(500), nullable=True)
    family_contact = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc)

    report = relationship("Report", back_populates="persons")


class ReportNeed(Base):
    __tablename__ = "report_needs"
    id = Column(String(36), primary_key=True, default=new_id)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    category = Column(String(20), nullable=False, default=NeedCategory.LOGISTIK_LAIN.value)
    description = Column(Text, nullable=False)
    quantity = Column(String(100), nullable=True)
    people_affected = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=NeedStatus.BELUM_TERPENUHI.value)
    created_at = Column(DateTime(timezone=True), default=now_utc)

    report = relationship("Report", back_populates="needs")


class ReportMedia(Base):
    __tablename__ = "report_media"
    id = Column(String(36), primary_key=True, default=new_id)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    media_type = Column(String(16), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(100), nullable=True)
    whatsapp_media_id = Column(String(255), nullable=True)
    caption = Column(Text, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=now_utc)

    report = relationship("Report", back_populates="media")


class ReportAction(Base):
    __tablename__ = "report_actions"
    id = Column(String(36), primary_key=True, default=new_id)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    description = Column(Text, nullable=False)
    taken_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc)

    report = relationship("Report", back_populates="actions")
    taken_by = relationship("User")


class ChatState(Base):
    __tablename__ = "chat_states"
    id = Column(String(36), primary_key=True, default=new_id)
    phone_number = Column(String(32), nullable=False, unique=True, index=True)
    current_intent = Column(String(32), nullable=True)
    state = Column(JSON, nullable=False, default=dict)
    last_message_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    action = Column(String(16), nullable=False)
    entity_type = Column(String(32), nullable=False)
    entity_id = Column(String(36), nullable=True)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=True, index=True)
    changes = Column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, index=True)
