"""Admin accounts.

Only users with is_admin may sign in to the moderation desk. Repeated
failed logins lock the account for a while; a successful login clears the
counter.
"""

import uuid
from datetime import datetime, timedelta, timezone

from flask_login import UserMixin

from placify.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime(timezone=True), nullable=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def is_locked(self, now=None):
        if self.locked_until is None:
            return False
        now = now or datetime.now(timezone.utc)
        locked_until = self.locked_until
        if locked_until.tzinfo is None:  # SQLite drops the offset
            locked_until = locked_until.replace(tzinfo=timezone.utc)
        return locked_until > now

    def record_failed_login(self, max_attempts, lock_minutes):
        """Count a bad password; lock the account once max_attempts is reached."""
        self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
        if self.failed_login_attempts >= max_attempts:
            self.locked_until = datetime.now(timezone.utc) + timedelta(minutes=lock_minutes)
            self.failed_login_attempts = 0

    def record_login(self):
        self.failed_login_attempts = 0
        self.locked_until = None
        self.last_login_at = datetime.now(timezone.utc)

    def public_dict(self):
        return {
            "id": self.id,
            "name": self.full_name,
            "email": self.email,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }

    def __repr__(self):
        return f"<Admin {self.email}>" if self.is_admin else f"<User {self.email}>"
