"""Audit entry model.

One row per privileged action attempt, successful or not. Rows are
append-only: nothing in the app updates them, and only the retention
purge deletes them.
"""

import uuid
from datetime import datetime, timezone

from placify.extensions import db


class AuditEntry(db.Model):
    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_actor_created", "actor_id", "created_at"),
        db.Index("ix_audit_entries_action_created", "action", "created_at"),
        db.Index("ix_audit_entries_resource", "resource_type", "resource_id"),
    )

    FAILURE_SUFFIX = "_FAILED"
    RESOURCE_TYPES = ["Experience", "Contact", "Admin", "System"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    actor_id = db.Column(db.String(36), nullable=True)  # null for anonymous login attempts
    action = db.Column(db.String(64), nullable=False)  # e.g. "APPROVE_EXPERIENCE"
    resource_type = db.Column(db.String(32), nullable=False)
    resource_id = db.Column(db.String(36), nullable=True)  # null for batch/system actions
    details = db.Column(db.JSON, default=dict)
    previous_data = db.Column(db.JSON, nullable=True)
    new_data = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def succeeded(self):
        return not self.action.endswith(self.FAILURE_SUFFIX)

    def to_dict(self):
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details or {},
            "previous_data": self.previous_data,
            "new_data": self.new_data,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditEntry {self.action} {self.resource_type}:{self.resource_id}>"
