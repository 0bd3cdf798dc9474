"""Contact model.

A message sent through the public contact form. Admin workflow:
new -> in-progress -> resolved -> closed (see services/transitions.py).
"""

import uuid
from datetime import datetime, timezone

from placify.extensions import db
from placify.services.transitions import ContactStatus


class Contact(db.Model):
    __tablename__ = "contacts"
    __table_args__ = (
        db.Index("ix_contacts_status_id", "status", "id"),
    )

    KIND = "contact"
    RESOURCE_TYPE = "Contact"

    STATUSES = [s.value for s in ContactStatus]
    PRIORITIES = ["low", "medium", "high", "urgent"]
    CATEGORIES = [
        "general",
        "technical",
        "account",
        "feedback",
        "bug-report",
        "feature-request",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(254), nullable=False)
    subject = db.Column(db.String(200), nullable=True)
    message = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(20), default="medium", nullable=False)
    category = db.Column(db.String(30), default="general", nullable=False)

    # --- Admin workflow ---
    status = db.Column(
        db.String(20), default=ContactStatus.NEW.value, nullable=False
    )
    moderated_by = db.Column(db.String(36), nullable=True)
    moderation_notes = db.Column(db.Text, nullable=True)
    response = db.Column(db.Text, nullable=True)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def display_subject(self):
        """Subject, falling back to a "Subject:" first line in the message."""
        if self.subject and self.subject.strip():
            return self.subject.strip()
        if self.message and self.message.startswith("Subject:"):
            first_line = self.message.split("\n", 1)[0]
            return first_line.replace("Subject:", "", 1).strip() or "No subject"
        return "No subject"

    @property
    def has_response(self):
        return bool(self.response)

    def public_dict(self):
        return {
            "id": self.id,
            "subject": self.display_subject,
            "category": self.category,
            "status": self.status,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "subject": self.display_subject,
            "message": self.message,
            "priority": self.priority,
            "category": self.category,
            "status": self.status,
            "moderated_by": self.moderated_by,
            "moderation_notes": self.moderation_notes,
            "response": self.response,
            "has_response": self.has_response,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Contact {self.display_subject[:30]} ({self.status})>"
