"""Tests for ModerationService single-record operations.

Covers:
- approve / reject / reopen happy paths and the r1 round trip
- Exactly one audit entry per call, *_FAILED on every failure path
- Events published after a successful change (and only then)
- Optimistic concurrency (status changed underneath the service)
- Store failures surface as a generic, retryable StoreError
- Verification badge toggling
- Contact workflow and responses
- Audited reads
"""

import logging

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from placify.extensions import db
from placify.errors import (
    ConcurrentModificationError,
    IllegalTransitionError,
    InvalidStateError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from placify.models.audit import AuditEntry
from placify.models.contact import Contact
from placify.models.experience import Experience
from placify.services.audit_service import AuditTrail
from placify.services.moderation_service import ModerationService
from placify.services.record_store import RecordStore

NOTES = "Includes the interviewer's full name and email."


class _FailingSession:
    """db.session proxy whose *fail_on* method raises OperationalError."""

    def __init__(self, session, fail_on):
        self._session = session
        self._fail_on = fail_on

    def __getattr__(self, name):
        if name == self._fail_on:
            def broken(*args, **kwargs):
                raise OperationalError("UPDATE experiences", {}, Exception("disk I/O error"))
            return broken
        return getattr(self._session, name)


def _status(model, record_id):
    db.session.expire_all()
    return db.session.get(model, record_id).status


def _audit_actions(resource_id=None):
    query = AuditEntry.query
    if resource_id:
        query = query.filter_by(resource_id=resource_id)
    return [e.action for e in query.order_by(AuditEntry.created_at).all()]


class TestModerate:
    def test_approve_pending(self, services, seed_data):
        record = services.moderation.moderate(
            seed_data["pending_id"], "approved", seed_data["admin_id"]
        )
        assert record.status == "approved"
        assert record.approved_at is not None
        assert record.rejected_at is None
        assert record.moderated_by == seed_data["admin_id"]
        assert record.verification_badge is False

    def test_approve_with_badge(self, services, seed_data):
        record = services.moderation.moderate(
            seed_data["pending_id"], "approved", seed_data["admin_id"],
            add_verification_badge=True,
        )
        assert record.verification_badge is True

    def test_reject_requires_notes(self, services, seed_data):
        with pytest.raises(ValidationError):
            services.moderation.moderate(
                seed_data["pending_id"], "rejected", seed_data["admin_id"], notes="no"
            )
        assert _status(Experience, seed_data["pending_id"]) == "pending"

    def test_reject_clears_badge(self, services, seed_data, db_session):
        db_session.execute(
            update(Experience)
            .where(Experience.id == seed_data["approved_id"])
            .values(verification_badge=True)
        )
        db_session.commit()

        record = services.moderation.moderate(
            seed_data["approved_id"], "rejected", seed_data["admin_id"], notes=NOTES
        )
        assert record.status == "rejected"
        assert record.verification_badge is False
        assert record.approved_at is None
        assert record.rejected_at is not None

    def test_round_trip_pending_rejected_pending_approved(self, services, seed_data):
        """Reject, reopen, approve: each step audited, final state approved."""
        record_id = seed_data["pending_id"]
        admin_id = seed_data["admin_id"]

        services.moderation.moderate(record_id, "rejected", admin_id, notes=NOTES)
        reopened = services.moderation.moderate(record_id, "pending", admin_id)
        assert reopened.status == "pending"
        assert reopened.rejected_at is None

        approved = services.moderation.moderate(record_id, "approved", admin_id)
        assert approved.status == "approved"
        assert approved.approved_at is not None
        assert approved.rejected_at is None

        assert _audit_actions(record_id) == [
            "REJECT_EXPERIENCE",
            "REOPEN_EXPERIENCE",
            "APPROVE_EXPERIENCE",
        ]

    def test_illegal_transition(self, services, seed_data):
        with pytest.raises(IllegalTransitionError) as exc:
            services.moderation.moderate(
                seed_data["approved_id"], "pending", seed_data["admin_id"]
            )
        assert exc.value.allowed == ["rejected"]

    def test_approving_twice_is_illegal(self, services, seed_data):
        services.moderation.moderate(seed_data["pending_id"], "approved", seed_data["admin_id"])
        with pytest.raises(IllegalTransitionError):
            services.moderation.moderate(
                seed_data["pending_id"], "approved", seed_data["admin_id"]
            )

    def test_unknown_record(self, services, seed_data):
        with pytest.raises(NotFoundError):
            services.moderation.moderate("does-not-exist", "approved", seed_data["admin_id"])

    def test_unknown_target_status(self, services, seed_data):
        with pytest.raises(ValidationError):
            services.moderation.moderate(
                seed_data["pending_id"], "archived", seed_data["admin_id"]
            )


class TestAuditCompleteness:
    def test_success_writes_one_entry_with_snapshots(self, services, seed_data):
        services.moderation.moderate(
            seed_data["rejected_id"], "approved", seed_data["admin_id"]
        )
        entries = AuditEntry.query.all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == "APPROVE_EXPERIENCE"
        assert entry.actor_id == seed_data["admin_id"]
        assert entry.resource_type == "Experience"
        assert entry.resource_id == seed_data["rejected_id"]
        assert entry.previous_data["status"] == "rejected"
        assert entry.new_data["status"] == "approved"

    def test_notes_are_recorded_by_length_only(self, services, seed_data):
        services.moderation.moderate(
            seed_data["pending_id"], "rejected", seed_data["admin_id"], notes=NOTES
        )
        entry = AuditEntry.query.one()
        assert entry.details["notes_length"] == len(NOTES)
        assert "moderation_notes" not in (entry.new_data or {})

    @pytest.mark.parametrize("record_key,target,notes,error", [
        ("pending_id", "rejected", "short", ValidationError),
        ("approved_id", "pending", None, IllegalTransitionError),
        (None, "approved", None, NotFoundError),
    ])
    def test_failure_writes_one_failed_entry(
        self, services, seed_data, record_key, target, notes, error
    ):
        record_id = seed_data[record_key] if record_key else "missing-id"
        with pytest.raises(error) as exc:
            services.moderation.moderate(record_id, target, seed_data["admin_id"], notes=notes)

        entries = AuditEntry.query.all()
        assert len(entries) == 1
        assert entries[0].action.endswith("_FAILED")
        assert entries[0].succeeded is False
        assert entries[0].details["error"] == exc.value.code
        assert entries[0].details["message"] == exc.value.message

    def test_notes_are_sanitized(self, services, seed_data):
        record = services.moderation.moderate(
            seed_data["pending_id"], "rejected", seed_data["admin_id"],
            notes="<b>Contains a personal phone number</b>",
        )
        assert record.moderation_notes == "Contains a personal phone number"

    def test_non_text_notes_fail_and_are_audited(self, services, seed_data):
        with pytest.raises(ValidationError) as exc:
            services.moderation.moderate(
                seed_data["pending_id"], "rejected", seed_data["admin_id"], notes=12345678901
            )
        assert exc.value.field == "notes"
        assert _audit_actions(seed_data["pending_id"]) == ["REJECT_EXPERIENCE_FAILED"]

    def test_request_context_is_recorded(self, services, seed_data):
        from placify.services.audit_service import ActionContext

        services.moderation.moderate(
            seed_data["pending_id"], "approved", seed_data["admin_id"],
            context=ActionContext(ip_address="10.0.0.7", user_agent="pytest"),
        )
        entry = AuditEntry.query.one()
        assert entry.ip_address == "10.0.0.7"
        assert entry.user_agent == "pytest"


class TestEvents:
    def test_status_change_publishes_event(self, services, bus, events, seed_data):
        services.moderation.moderate(seed_data["pending_id"], "approved", seed_data["admin_id"])
        assert bus.wait_idle(timeout=5)

        changed = [e for e in events if e.name == "experienceStatusChanged"]
        assert len(changed) == 1
        payload = changed[0].payload
        assert payload["kind"] == "statusChanged"
        assert payload["record_id"] == seed_data["pending_id"]
        assert payload["previous_status"] == "pending"
        assert payload["new_status"] == "approved"
        assert payload["actor_id"] == seed_data["admin_id"]
        assert payload["record"]["company"] == "Acme Corp"

    def test_failed_action_publishes_nothing(self, services, bus, events, seed_data):
        with pytest.raises(IllegalTransitionError):
            services.moderation.moderate(
                seed_data["approved_id"], "pending", seed_data["admin_id"]
            )
        assert bus.wait_idle(timeout=5)
        assert events == []


class TestConcurrency:
    def test_status_changed_underneath_is_a_conflict(
        self, services, seed_data, db_session, monkeypatch
    ):
        store = services.store
        real_update = store.conditional_update

        def racing_update(model, record_id, expected, fields):
            # Another admin rejects the record between read and write.
            db_session.execute(
                update(model).where(model.id == record_id).values(status="rejected")
            )
            db_session.commit()
            return real_update(model, record_id, expected, fields)

        monkeypatch.setattr(store, "conditional_update", racing_update)

        with pytest.raises(ConcurrentModificationError) as exc:
            services.moderation.moderate(
                seed_data["pending_id"], "approved", seed_data["admin_id"]
            )
        assert exc.value.retryable is True
        assert exc.value.http_status == 409
        assert _status(Experience, seed_data["pending_id"]) == "rejected"
        assert _audit_actions() == ["APPROVE_EXPERIENCE_FAILED"]


class TestStoreFailure:
    def test_store_error_is_generic_and_retryable(self, services, seed_data, db_session):
        moderation = ModerationService(
            RecordStore(_FailingSession(db_session, "execute")),
            services.audit,
            services.event_bus,
        )
        with pytest.raises(StoreError) as exc:
            moderation.moderate(seed_data["pending_id"], "approved", seed_data["admin_id"])

        assert exc.value.retryable is True
        assert "disk I/O" not in exc.value.message
        entry = AuditEntry.query.one()
        assert entry.action == "APPROVE_EXPERIENCE_FAILED"
        assert entry.details["error"] == "store_unavailable"
        assert _status(Experience, seed_data["pending_id"]) == "pending"


class TestAuditWriteFailure:
    def test_moderation_succeeds_when_audit_commit_fails(
        self, services, seed_data, db_session, caplog
    ):
        moderation = ModerationService(
            services.store,
            AuditTrail(_FailingSession(db_session, "commit")),
            services.event_bus,
        )
        with caplog.at_level(logging.ERROR, logger="placify.audit"):
            record = moderation.moderate(
                seed_data["pending_id"], "approved", seed_data["admin_id"]
            )

        assert record.status == "approved"
        assert _status(Experience, seed_data["pending_id"]) == "approved"
        assert AuditEntry.query.count() == 0
        assert "Failed to write audit entry APPROVE_EXPERIENCE" in caplog.text


class TestVerificationBadge:
    def test_toggle_on_and_off(self, services, bus, events, seed_data):
        record = services.moderation.toggle_verification_badge(
            seed_data["approved_id"], seed_data["admin_id"]
        )
        assert record.verification_badge is True
        record = services.moderation.toggle_verification_badge(
            seed_data["approved_id"], seed_data["admin_id"]
        )
        assert record.verification_badge is False

        assert _audit_actions() == ["ADD_VERIFICATION_BADGE", "REMOVE_VERIFICATION_BADGE"]
        assert bus.wait_idle(timeout=5)
        toggles = [e.payload["added"] for e in events if e.name == "badgeToggled"]
        assert toggles == [True, False]

    def test_only_approved_records(self, services, seed_data):
        with pytest.raises(InvalidStateError):
            services.moderation.toggle_verification_badge(
                seed_data["pending_id"], seed_data["admin_id"]
            )
        assert _audit_actions() == ["TOGGLE_VERIFICATION_BADGE_FAILED"]

    def test_badge_cleared_on_reopen_path(self, services, seed_data):
        record_id = seed_data["approved_id"]
        admin_id = seed_data["admin_id"]
        services.moderation.toggle_verification_badge(record_id, admin_id)
        services.moderation.moderate(record_id, "rejected", admin_id, notes=NOTES)
        record = services.moderation.moderate(record_id, "pending", admin_id)
        assert record.verification_badge is False


class TestContacts:
    def test_status_workflow(self, services, bus, events, seed_data):
        contact = services.moderation.update_contact_status(
            seed_data["contact_id"], "in-progress", seed_data["admin_id"]
        )
        assert contact.status == "in-progress"
        assert _audit_actions() == ["UPDATE_CONTACT_STATUS"]
        assert bus.wait_idle(timeout=5)
        assert [e.name for e in events] == ["contactStatusChanged"]

    def test_illegal_contact_move(self, services, seed_data):
        with pytest.raises(IllegalTransitionError):
            services.moderation.update_contact_status(
                seed_data["contact_id"], "new", seed_data["admin_id"]
            )
        assert _audit_actions() == ["UPDATE_CONTACT_STATUS_FAILED"]

    def test_respond_resolves_contact(self, services, seed_data):
        contact = services.moderation.respond_to_contact(
            seed_data["contact_id"],
            "<b>Thanks</b>, you can edit it from your profile page.",
            seed_data["admin_id"],
        )
        assert contact.status == "resolved"
        assert contact.response == "Thanks, you can edit it from your profile page."
        assert contact.responded_at is not None
        entry = AuditEntry.query.one()
        assert entry.action == "RESPOND_TO_CONTACT"
        assert "response" not in (entry.new_data or {})

    def test_second_response_updates_the_first(self, services, seed_data):
        contact_id = seed_data["contact_id"]
        admin_id = seed_data["admin_id"]
        services.moderation.respond_to_contact(contact_id, "Thanks, we fixed the form.", admin_id)
        contact = services.moderation.respond_to_contact(
            contact_id, "Correction: the fix is live now.", admin_id
        )

        assert contact.status == "resolved"
        assert contact.response == "Correction: the fix is live now."
        assert _audit_actions() == ["RESPOND_TO_CONTACT", "RESPOND_TO_CONTACT"]
        entries = AuditEntry.query.order_by(AuditEntry.created_at).all()
        assert [e.previous_data["status"] for e in entries] == ["new", "resolved"]

    @pytest.mark.parametrize("status", ["in-progress", "closed"])
    def test_respond_from_any_status(self, services, seed_data, make_contact, status):
        contact = make_contact(status=status)
        contact = services.moderation.respond_to_contact(
            contact.id, "Reopening to answer your follow-up.", seed_data["admin_id"]
        )
        assert contact.status == "resolved"
        assert _audit_actions() == ["RESPOND_TO_CONTACT"]

    @pytest.mark.parametrize("response", ["", "   ", "x" * 2001])
    def test_invalid_response(self, services, seed_data, response):
        with pytest.raises(ValidationError):
            services.moderation.respond_to_contact(
                seed_data["contact_id"], response, seed_data["admin_id"]
            )
        assert _audit_actions() == ["RESPOND_TO_CONTACT_FAILED"]
        assert _status(Contact, seed_data["contact_id"]) == "new"

    def test_update_details(self, services, bus, events, seed_data):
        contact = services.moderation.update_contact_details(
            seed_data["contact_id"], seed_data["admin_id"], priority="urgent", category="technical"
        )
        assert (contact.priority, contact.category) == ("urgent", "technical")
        assert contact.status == "new"

        entry = AuditEntry.query.one()
        assert entry.action == "UPDATE_CONTACT_DETAILS"
        assert entry.details["fields_updated"] == ["category", "priority"]
        assert entry.previous_data == {"priority": "medium", "category": "general"}
        assert bus.wait_idle(timeout=5)
        assert events == []

    def test_update_details_only_touches_given_field(self, services, seed_data):
        contact = services.moderation.update_contact_details(
            seed_data["contact_id"], seed_data["admin_id"], priority="low"
        )
        assert (contact.priority, contact.category) == ("low", "general")

    @pytest.mark.parametrize("kwargs", [{}, {"priority": "critical"}, {"category": "sales"}])
    def test_invalid_details(self, services, seed_data, kwargs):
        with pytest.raises(ValidationError):
            services.moderation.update_contact_details(
                seed_data["contact_id"], seed_data["admin_id"], **kwargs
            )
        assert _audit_actions() == ["UPDATE_CONTACT_DETAILS_FAILED"]

    def test_details_of_missing_contact(self, services, seed_data):
        with pytest.raises(NotFoundError):
            services.moderation.update_contact_details("nope", seed_data["admin_id"], priority="low")
        assert _audit_actions() == ["UPDATE_CONTACT_DETAILS_FAILED"]


class TestViewRecord:
    def test_view_is_audited(self, services, seed_data):
        record = services.moderation.view_record(
            "experience", seed_data["pending_id"], seed_data["admin_id"]
        )
        assert record.id == seed_data["pending_id"]
        assert _audit_actions() == ["VIEW_EXPERIENCE"]

    def test_view_missing_contact(self, services, seed_data):
        with pytest.raises(NotFoundError):
            services.moderation.view_record("contact", "nope", seed_data["admin_id"])
        assert _audit_actions() == ["VIEW_CONTACT_FAILED"]
