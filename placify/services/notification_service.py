"""Real-time admin notifications.

NotificationFanout subscribes to the moderation events on the bus, turns
each event into an admin-facing notification and pushes it to every
connected AdminSession. Sessions are drained by the SSE route in
blueprints/admin.py.

Each session buffers into a bounded deque: when an admin's browser falls
behind, the oldest notification is dropped so the bus worker pushing to it
never waits.
"""

import json
import logging
import threading
import uuid
from collections import deque

logger = logging.getLogger(__name__)

SUBSCRIBED_EVENTS = (
    "experienceSubmitted",
    "experienceStatusChanged",
    "batchStatusChanged",
    "badgeToggled",
    "contactSubmitted",
    "contactStatusChanged",
)

_STATUS_TYPES = {
    "approved": "APPROVED",
    "rejected": "REJECTED",
    "pending": "REOPENED",
}


class AdminSession:
    """One connected admin's notification buffer."""

    def __init__(self, admin_id=None, max_size=100):
        self.id = str(uuid.uuid4())
        self.admin_id = admin_id
        self.dropped = 0
        self._messages = deque(maxlen=max_size)
        self._cond = threading.Condition()
        self._closed = False

    @property
    def closed(self):
        return self._closed

    def push(self, notification):
        with self._cond:
            if self._closed:
                return
            if len(self._messages) == self._messages.maxlen:
                self.dropped += 1
            self._messages.append(notification)
            self._cond.notify()

    def get(self, timeout=None):
        """Next notification, or None on timeout / close."""
        with self._cond:
            if not self._messages and not self._closed:
                self._cond.wait(timeout)
            if self._messages:
                return self._messages.popleft()
            return None

    def pending(self):
        with self._cond:
            return len(self._messages)

    def close(self):
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class NotificationFanout:
    """Broadcast moderation events to every connected admin session."""

    def __init__(self, event_bus, session_queue_size=100):
        self.event_bus = event_bus
        self.session_queue_size = session_queue_size
        self._sessions = {}
        self._lock = threading.Lock()
        self._subscriptions = []

    # -- bus wiring ----------------------------------------------------------

    def attach(self):
        if self._subscriptions:
            return
        for event_name in SUBSCRIBED_EVENTS:
            self._subscriptions.append(self.event_bus.subscribe(event_name, self.handle))

    def detach(self):
        for subscription in self._subscriptions:
            self.event_bus.unsubscribe(subscription)
        self._subscriptions = []

    def handle(self, event):
        notification = render_notification(event)
        with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            session.push(notification)

    # -- sessions ------------------------------------------------------------

    def connect(self, admin_id=None):
        session = AdminSession(admin_id=admin_id, max_size=self.session_queue_size)
        with self._lock:
            self._sessions[session.id] = session
        logger.info(f"Admin connected to notifications: {admin_id} ({session.id})")
        return session

    def disconnect(self, session):
        session.close()
        with self._lock:
            removed = self._sessions.pop(session.id, None)
        if removed is not None:
            logger.info(f"Admin disconnected from notifications: {session.admin_id} ({session.id})")

    @property
    def session_count(self):
        with self._lock:
            return len(self._sessions)


def render_notification(event):
    """DomainEvent -> notification dict shown in the admin dashboard."""
    payload = event.payload
    record = payload.get("record") or {}
    label = _record_label(record)

    if event.name == "experienceSubmitted":
        kind, message = "NEW_SUBMISSION", f"New experience submitted: {label}"
    elif event.name == "experienceStatusChanged":
        kind = _STATUS_TYPES.get(payload.get("new_status"), "STATUS_CHANGED")
        message = f"Experience {kind.lower()}: {label}"
    elif event.name == "batchStatusChanged":
        kind = "BATCH_" + _STATUS_TYPES.get(payload.get("new_status"), "UPDATED")
        message = f"{kind.split('_', 1)[1].capitalize()} {payload.get('count', 0)} experiences"
    elif event.name == "badgeToggled":
        added = bool(payload.get("added"))
        kind = "BADGE_ADDED" if added else "BADGE_REMOVED"
        message = f"Verification badge {'added to' if added else 'removed from'}: {label}"
    elif event.name == "contactSubmitted":
        kind, message = "NEW_CONTACT", f"New contact message: {label}"
    elif event.name == "contactStatusChanged":
        kind = "CONTACT_UPDATED"
        message = f"Contact message marked {payload.get('new_status')}: {label}"
    else:
        kind, message = "NOTIFICATION", event.name

    notification = {
        "type": kind,
        "event": event.name,
        "message": message,
        "actor_id": payload.get("actor_id"),
        "timestamp": event.timestamp.isoformat(),
    }
    if record:
        notification["record"] = record
    if "count" in payload:
        notification["count"] = payload["count"]
    return notification


def format_sse(notification):
    """Encode one notification as a text/event-stream frame."""
    return f"event: {notification['type']}\ndata: {json.dumps(notification)}\n\n"


def _record_label(record):
    if "company" in record:
        return f"{record.get('company')} - {record.get('role')}"
    return record.get("subject") or record.get("id") or ""
