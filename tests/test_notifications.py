"""Tests for the admin notification fan-out."""

import json

from placify.events import DomainEvent
from placify.services.notification_service import (
    AdminSession,
    NotificationFanout,
    format_sse,
    render_notification,
)


class TestAdminSession:
    def test_push_and_get(self):
        session = AdminSession(admin_id="admin-1")
        session.push({"type": "A"})
        assert session.pending() == 1
        assert session.get(timeout=0.1) == {"type": "A"}
        assert session.get(timeout=0.05) is None

    def test_full_buffer_drops_oldest(self):
        session = AdminSession(max_size=2)
        for n in range(3):
            session.push({"n": n})
        assert session.dropped == 1
        assert session.get(timeout=0) == {"n": 1}
        assert session.get(timeout=0) == {"n": 2}

    def test_closed_session_ignores_pushes(self):
        session = AdminSession()
        session.close()
        session.push({"type": "A"})
        assert session.closed
        assert session.get(timeout=0) is None


class TestFanout:
    def test_connect_and_disconnect(self, bus):
        fanout = NotificationFanout(bus)
        first = fanout.connect("admin-1")
        fanout.connect("admin-2")
        assert fanout.session_count == 2

        fanout.disconnect(first)
        fanout.disconnect(first)
        assert fanout.session_count == 1
        assert first.closed

    def test_handle_broadcasts_to_every_session(self, bus):
        fanout = NotificationFanout(bus)
        sessions = [fanout.connect(f"admin-{n}") for n in range(3)]
        fanout.handle(DomainEvent("contactSubmitted", {"record": {"subject": "Hi"}}))
        for session in sessions:
            assert session.get(timeout=0)["type"] == "NEW_CONTACT"

    def test_attach_is_idempotent(self, bus):
        fanout = NotificationFanout(bus)
        before = bus.subscriber_count()
        fanout.attach()
        fanout.attach()
        assert bus.subscriber_count() == before + 6
        fanout.detach()
        assert bus.subscriber_count() == before


class TestRenderNotification:
    def test_status_change(self):
        event = DomainEvent("experienceStatusChanged", {
            "new_status": "approved",
            "actor_id": "admin-1",
            "record": {"id": "exp-1", "company": "Acme Corp", "role": "SDE"},
        })
        notification = render_notification(event)
        assert notification["type"] == "APPROVED"
        assert notification["message"] == "Experience approved: Acme Corp - SDE"
        assert notification["actor_id"] == "admin-1"
        assert notification["record"]["id"] == "exp-1"

    def test_reopen(self):
        event = DomainEvent("experienceStatusChanged", {"new_status": "pending"})
        assert render_notification(event)["type"] == "REOPENED"

    def test_batch(self):
        event = DomainEvent("batchStatusChanged", {"new_status": "rejected", "count": 4})
        notification = render_notification(event)
        assert notification["type"] == "BATCH_REJECTED"
        assert notification["count"] == 4
        assert notification["message"] == "Rejected 4 experiences"

    def test_badge(self):
        event = DomainEvent("badgeToggled", {"added": False, "record": {"company": "Acme", "role": "SDE"}})
        assert render_notification(event)["type"] == "BADGE_REMOVED"

    def test_unknown_event(self):
        assert render_notification(DomainEvent("somethingElse", {}))["type"] == "NOTIFICATION"


def test_format_sse():
    frame = format_sse({"type": "NEW_CONTACT", "message": "New contact message: Hi"})
    event_line, data_line, _, _ = frame.split("\n")
    assert event_line == "event: NEW_CONTACT"
    assert json.loads(data_line[len("data: "):])["message"] == "New contact message: Hi"
    assert frame.endswith("\n\n")


def test_moderation_reaches_connected_admin(services, bus, seed_data):
    fanout = services.notifications
    session = fanout.connect(seed_data["admin_id"])
    try:
        services.moderation.moderate(seed_data["pending_id"], "approved", seed_data["admin_id"])
        assert bus.wait_idle(timeout=5)
        notification = session.get(timeout=1)
        assert notification["type"] == "APPROVED"
        assert notification["record"]["id"] == seed_data["pending_id"]
    finally:
        fanout.disconnect(session)
