"""Tests for the audit trail and reporter accounts."""

from tanggap.db.models import AuditAction, AuditLog, UserRole
from tanggap.services import audit
from tanggap.services.users import (
    admin_exists,
    get_by_phone,
    get_or_create_user,
    is_trusted,
    normalize_phone,
)


class TestAuditRecord:
    """Test audit entries are written with the change they describe."""

    def test_record_is_committed_with_caller(self, db_session, user_factory):
        user = user_factory()

        entry = audit.record(
            db_session,
            AuditAction.UPDATE,
            "user",
            user.id,
            user_id=user.id,
            changes={"trustLevel": {"from": 0, "to": 3}},
            details={"reason": "verified volunteer"},
        )
        db_session.commit()

        stored = db_session.get(AuditLog, entry.id)
        assert stored.action == "UPDATE"
        assert stored.changes == {"trustLevel": {"from": 0, "to": 3}}
        assert stored.details == {"reason": "verified volunteer"}

    def test_rollback_discards_entry(self, db_session):
        audit.record(db_session, AuditAction.DELETE, "report", "r-1")
        db_session.rollback()
        assert db_session.query(AuditLog).count() == 0

    def test_list_entries_filters(self, db_session, report_factory):
        report = report_factory()
        audit.record(db_session, AuditAction.EXPORT, "report", "bulk")
        db_session.commit()

        for_report = audit.list_entries(db_session, report_id=report.id)
        report_entries = audit.list_entries(db_session, entity_type="report")

        assert [e.action for e in for_report] == ["CREATE"]
        assert {e.entity_id for e in report_entries} == {report.id, "bulk"}

    def test_list_entries_limit(self, db_session):
        for i in range(5):
            audit.record(db_session, AuditAction.LOGIN, "user", f"u-{i}")
        db_session.commit()

        assert len(audit.list_entries(db_session, limit=3)) == 3


class TestUsers:
    """Test reporter account lookup and creation."""

    def test_normalize_phone(self):
        assert normalize_phone("+62 812-3456-7890") == "6281234567890"
        assert normalize_phone("") == ""
        assert normalize_phone(None) == ""

    def test_first_contact_creates_public_user(self, db_session):
        user, created = get_or_create_user(db_session, "+62 812 0000 1111", "Bu Sari")

        assert created is True
        assert user.phone_number == "6281200001111"
        assert user.name == "Bu Sari"
        assert user.role == UserRole.PUBLIC.value
        assert user.trust_level == 0

        entry = db_session.query(AuditLog).one()
        assert entry.details == {"source": "whatsapp", "autoCreated": True}

    def test_name_defaults_to_phone(self, db_session):
        user, _ = get_or_create_user(db_session, "6281200002222")
        assert user.name == "6281200002222"

    def test_existing_user_is_returned(self, db_session, user_factory):
        existing = user_factory(phone_number="6281200003333", name="Relawan")

        user, created = get_or_create_user(db_session, "+62 812-0000-3333", "Someone Else")

        assert created is False
        assert user.id == existing.id
        assert user.name == "Relawan"
        assert get_by_phone(db_session, "62 812 0000 3333").id == existing.id

    def test_explicit_role(self, db_session):
        user, _ = get_or_create_user(
            db_session, "6281200004444", role=UserRole.VOLUNTEER.value, source="web"
        )
        assert user.role == UserRole.VOLUNTEER.value

    def test_is_trusted(self, user_factory):
        assert is_trusted(user_factory(role=UserRole.VOLUNTEER.value)) is True
        assert is_trusted(user_factory(trust_level=3)) is True
        assert is_trusted(user_factory(trust_level=2)) is False
        assert is_trusted(user_factory(trust_level=2), threshold=2) is True

    def test_admin_exists(self, db_session, user_factory):
        assert admin_exists(db_session) is False
        user_factory(role=UserRole.ADMIN.value)
        assert admin_exists(db_session) is True
