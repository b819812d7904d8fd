"""Request and response models for the dashboard API.

JSON uses camelCase keys; Python code uses snake_case attributes.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tanggap.db.models import ReportType, UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# === Requests ===


class LoginRequest(CamelModel):
    phone_number: str | None = None
    username: str | None = None
    password: str | None = None

    @property
    def identifier(self) -> str | None:
        return self.phone_number or self.username


class SetupAdminRequest(CamelModel):
    phone_number: str = Field(min_length=1)
    name: str = Field(min_length=1)
    password: str | None = None


class StatusUpdateRequest(CamelModel):
    status: str
    notes: str | None = None
    assigned_to_id: str | None = None


class UserCreateRequest(CamelModel):
    phone_number: str = Field(min_length=1)
    name: str | None = None
    role: UserRole = UserRole.VOLUNTEER
    organization: str | None = None
    trust_level: int = Field(default=0, ge=0)


class UserUpdateRequest(CamelModel):
    name: str | None = None
    role: UserRole | None = None
    organization: str | None = None
    trust_level: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class PersonIn(CamelModel):
    name: str = "Tidak diketahui"
    status: str = "luka_sedang"
    age: int | None = None
    gender: str | None = None
    condition: str | None = None


class NeedIn(CamelModel):
    category: str = "logistik_lain"
    description: str
    quantity: str | None = None
    people_affected: int | None = None


class WebReportRequest(CamelModel):
    """Web form submission: free text, structured fields, or both.

    With only ``message`` the text goes through extraction like a WhatsApp
    message. With ``type`` the structured fields are used as given.
    """

    reporter_phone: str = Field(min_length=1)
    reporter_name: str | None = None
    message: str | None = None
    type: ReportType | None = None
    urgency: str | None = None
    location: str | None = None
    location_detail: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    summary: str | None = None
    persons: list[PersonIn] = Field(default_factory=list)
    needs: list[NeedIn] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def upper_type(cls, value):
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def has_content(self) -> "WebReportRequest":
        if not (self.message and self.message.strip()) and self.type is None:
            raise ValueError("Either message or type is required")
        if self.type is not None and not (self.summary or self.message):
            raise ValueError("summary or message is required")
        return self


# === Responses ===


class UserBrief(CamelModel):
    id: str
    phone_number: str
    name: str | None = None
    role: str


class UserOut(UserBrief):
    organization: str | None = None
    is_active: bool
    trust_level: int
    created_at: datetime | None = None


class PersonOut(CamelModel):
    id: str
    name: str
    nik: str | None = None
    gender: str | None = None
    age: int | None = None
    age_group: str | None = None
    status: str
    condition: str | None = None
    last_seen_location: str | None = None
    current_location: str | None = None
    family_contact: str | None = None
    notes: str | None = None


class NeedOut(CamelModel):
    id: str
    category: str
    description: str
    quantity: str | None = None
    people_affected: int | None = None
    status: str


class MediaOut(CamelModel):
    id: str
    report_id: str
    media_type: str
    file_name: str
    file_path: str
    file_size: int
    mime_type: str | None = None
    caption: str | None = None
    uploaded_at: datetime | None = None


class ActionOut(CamelModel):
    id: str
    type: str
    description: str
    taken_by_id: str | None = None
    created_at: datetime | None = None


class AuditOut(CamelModel):
    id: str
    user_id: str | None = None
    action: str
    entity_type: str
    entity_id: str | None = None
    changes: dict[str, Any] | None = None
    details: dict[str, Any] | None = Field(default=None, serialization_alias="metadata")
    created_at: datetime | None = None


class ReportOut(CamelModel):
    id: str
    report_number: str
    type: str
    status: str
    urgency: str
    reporter_phone: str | None = None
    report_source: str
    location: str
    location_detail: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    summary: str
    verified_at: datetime | None = None
    assigned_at: datetime | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    reporter: UserBrief | None = None
    assigned_to: UserBrief | None = None
    persons: list[PersonOut] = Field(default_factory=list)
    needs: list[NeedOut] = Field(default_factory=list)


class ReportDetailOut(ReportOut):
    raw_message: str
    extracted_data: dict[str, Any] | None = None
    verified_by: UserBrief | None = None
    media: list[MediaOut] = Field(default_factory=list)
    actions: list[ActionOut] = Field(default_factory=list)
