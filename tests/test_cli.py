"""Tests for the flask CLI commands (seed-admin, purge-audit, audit-report)."""

from datetime import datetime, timedelta, timezone

from placify.models.audit import AuditEntry
from placify.models.user import User


def _old_entry(db_session, days_ago, action="LOGIN"):
    db_session.add(AuditEntry(
        actor_id="admin-1",
        action=action,
        resource_type="Admin",
        resource_id="admin-1",
        details={},
        created_at=datetime.now(timezone.utc) - timedelta(days=days_ago),
    ))
    db_session.commit()


class TestSeedAdmin:
    def test_creates_admin(self, app):
        result = app.test_cli_runner().invoke(
            args=["seed-admin", "--email", "Boss@Placify.local", "--password", "s3cret-pass"]
        )
        assert result.exit_code == 0
        assert "Created admin user: boss@placify.local" in result.output
        assert User.query.filter_by(email="boss@placify.local", is_admin=True).count() == 1

    def test_promotes_existing_user(self, app, db_session, seed_data):
        result = app.test_cli_runner().invoke(
            args=["seed-admin", "--email", "member@placify.local"]
        )
        assert "Promoted existing user to admin" in result.output
        db_session.expire_all()
        assert db_session.get(User, seed_data["member_id"]).is_admin is True

    def test_existing_admin_untouched(self, app, seed_data):
        result = app.test_cli_runner().invoke(args=["seed-admin"])
        assert "Admin user already exists" in result.output


class TestPurgeAudit:
    def test_default_retention(self, app, db_session):
        _old_entry(db_session, 200)
        _old_entry(db_session, 5)

        result = app.test_cli_runner().invoke(args=["purge-audit"])
        assert result.exit_code == 0
        assert "Deleted 1 audit entries older than 90 days." in result.output
        assert AuditEntry.query.count() == 1

    def test_custom_days(self, app, db_session):
        _old_entry(db_session, 10)
        result = app.test_cli_runner().invoke(args=["purge-audit", "--days", "7"])
        assert "Deleted 1 audit entries older than 7 days." in result.output

    def test_non_positive_days_fails(self, app):
        result = app.test_cli_runner().invoke(args=["purge-audit", "--days", "0"])
        assert result.exit_code != 0
        assert "Error" in result.output


def test_audit_report(app, db_session):
    _old_entry(db_session, 1, action="APPROVE_EXPERIENCE")
    _old_entry(db_session, 2, action="APPROVE_EXPERIENCE_FAILED")

    result = app.test_cli_runner().invoke(args=["audit-report", "--days", "7"])
    assert result.exit_code == 0
    assert "Total actions:  2" in result.output
    assert "Failed actions: 1" in result.output
    assert "APPROVE_EXPERIENCE_FAILED" in result.output
