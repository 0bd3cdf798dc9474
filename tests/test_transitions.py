"""Tests for the experience and contact status machines.

Covers:
- Legal / illegal moves for both record kinds
- eligible_sources (used by batch moderation)
- Field stamping: timestamps, badge, notes
- Notes validation on rejection
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from placify.errors import IllegalTransitionError, ValidationError
from placify.services.transitions import (
    ContactStatus,
    ExperienceStatus,
    allowed_transitions,
    apply_transition,
    batch_fields,
    can_transition,
    eligible_sources,
    parse_status,
    response_fields,
    validate_notes,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
GOOD_NOTES = "Mentions the candidate's phone number."


def _experience(status, badge=False):
    return SimpleNamespace(KIND="experience", status=status, verification_badge=badge)


def _contact(status):
    return SimpleNamespace(KIND="contact", status=status)


class TestExperienceTable:
    """pending -> approved|rejected, approved -> rejected, rejected -> approved|pending."""

    @pytest.mark.parametrize("current,target", [
        ("pending", "approved"),
        ("pending", "rejected"),
        ("approved", "rejected"),
        ("rejected", "approved"),
        ("rejected", "pending"),
    ])
    def test_legal_moves(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        ("pending", "pending"),
        ("approved", "approved"),
        ("approved", "pending"),
        ("rejected", "rejected"),
    ])
    def test_illegal_moves(self, current, target):
        assert not can_transition(current, target)

    def test_accepts_enum_members(self):
        assert can_transition(ExperienceStatus.PENDING, ExperienceStatus.APPROVED)

    def test_unknown_current_status_allows_nothing(self):
        assert allowed_transitions("archived") == []

    def test_eligible_sources(self):
        assert sorted(eligible_sources("approved")) == ["pending", "rejected"]
        assert sorted(eligible_sources("rejected")) == ["approved", "pending"]
        assert eligible_sources("pending") == ["rejected"]


class TestContactTable:
    @pytest.mark.parametrize("current,target", [
        ("new", "in-progress"),
        ("new", "resolved"),
        ("new", "closed"),
        ("in-progress", "resolved"),
        ("resolved", "closed"),
        ("closed", "in-progress"),
    ])
    def test_legal_moves(self, current, target):
        assert can_transition(current, target, "contact")

    @pytest.mark.parametrize("current,target", [
        ("in-progress", "new"),
        ("closed", "resolved"),
        ("resolved", "resolved"),
    ])
    def test_illegal_moves(self, current, target):
        assert not can_transition(current, target, "contact")

    def test_contact_transition_only_stamps_workflow_fields(self):
        fields = apply_transition(_contact("new"), ContactStatus.IN_PROGRESS, "admin-1")
        assert fields == {
            "status": "in-progress",
            "moderated_by": "admin-1",
            "moderation_notes": None,
        }


class TestParseStatus:
    def test_parses_values(self):
        assert parse_status("approved") is ExperienceStatus.APPROVED
        assert parse_status("in-progress", "contact") is ContactStatus.IN_PROGRESS

    def test_invalid_status_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc:
            parse_status("archived")
        assert exc.value.field == "status"

    def test_unknown_kind_is_a_programming_error(self):
        with pytest.raises(ValueError):
            parse_status("new", "newsletter")


class TestApplyTransition:
    def test_approve_stamps_approved_at_and_badge(self):
        fields = apply_transition(
            _experience("pending"), "approved", "admin-1",
            add_verification_badge=True, now=NOW,
        )
        assert fields["status"] == "approved"
        assert fields["approved_at"] == NOW
        assert fields["rejected_at"] is None
        assert fields["verification_badge"] is True
        assert fields["moderated_by"] == "admin-1"

    def test_reject_clears_badge_and_approved_at(self):
        fields = apply_transition(
            _experience("approved", badge=True), "rejected", "admin-1",
            notes=GOOD_NOTES, now=NOW,
        )
        assert fields["verification_badge"] is False
        assert fields["approved_at"] is None
        assert fields["rejected_at"] == NOW
        assert fields["moderation_notes"] == GOOD_NOTES

    def test_reopen_clears_both_timestamps(self):
        fields = apply_transition(_experience("rejected"), "pending", "admin-1", now=NOW)
        assert fields["approved_at"] is None
        assert fields["rejected_at"] is None
        assert fields["verification_badge"] is False

    def test_reject_requires_notes(self):
        with pytest.raises(ValidationError) as exc:
            apply_transition(_experience("pending"), "rejected", "admin-1", notes="too short")
        assert exc.value.field == "notes"

    def test_illegal_move_checked_before_notes(self):
        with pytest.raises(IllegalTransitionError) as exc:
            apply_transition(_experience("rejected"), "rejected", "admin-1")
        assert exc.value.current == "rejected"
        assert "already rejected" in exc.value.message

    def test_illegal_move_reports_allowed_targets(self):
        with pytest.raises(IllegalTransitionError) as exc:
            apply_transition(_experience("approved"), "pending", "admin-1")
        assert exc.value.allowed == ["rejected"]
        assert exc.value.http_status == 409


class TestNotes:
    def test_blank_notes_become_none(self):
        assert validate_notes("   ") is None

    def test_notes_are_stripped(self):
        assert validate_notes("  fine as is  ") == "fine as is"

    def test_overlong_notes_rejected(self):
        with pytest.raises(ValidationError):
            validate_notes("x" * 1001)

    def test_min_length_is_configurable(self):
        assert validate_notes("short", required=True, min_length=5) == "short"


class TestBatchFields:
    def test_batch_approve_never_sets_badge(self):
        fields = batch_fields("approved", "admin-1", now=NOW)
        assert fields["verification_badge"] is False
        assert fields["approved_at"] == NOW

    def test_batch_reject_requires_notes(self):
        with pytest.raises(ValidationError):
            batch_fields("rejected", "admin-1", notes="")


class TestResponseFields:
    def test_response_always_resolves(self):
        fields = response_fields("admin-1", "Fixed, thanks for the report.", now=NOW)
        assert fields == {
            "status": "resolved",
            "moderated_by": "admin-1",
            "response": "Fixed, thanks for the report.",
            "responded_at": NOW,
        }
