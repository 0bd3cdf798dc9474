"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
The moderation service graph is built once per app by init_services()
and stored on app.extensions["placify"].
"""

import atexit
from dataclasses import dataclass

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # limits are set per route
    storage_uri="memory://",
)


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID from session. Imports lazily to avoid circular deps."""
    from placify.models.user import User

    return db.session.get(User, user_id)


@dataclass
class Services:
    """Typed dependency graph, resolved once at startup."""

    event_bus: object
    store: object
    audit: object
    moderation: object
    submissions: object
    notifications: object
    analytics: object
    accounts: object


def init_services(app):
    """Build the moderation service graph for *app* and start the event bus."""
    from placify.events import EventBus
    from placify.services.account_service import AccountService
    from placify.services.analytics_service import AnalyticsService
    from placify.services.audit_service import AuditTrail
    from placify.services.content_gate import BasicContentGate
    from placify.services.moderation_service import ModerationService
    from placify.services.notification_service import NotificationFanout
    from placify.services.record_store import RecordStore
    from placify.services.submission_service import SubmissionService

    event_bus = EventBus(
        workers=app.config["EVENT_BUS_WORKERS"],
        queue_size=app.config["EVENT_BUS_QUEUE_SIZE"],
    )
    store = RecordStore(db.session)
    audit = AuditTrail(db.session)
    moderation = ModerationService(
        store,
        audit,
        event_bus,
        batch_limit=app.config["BATCH_MAX_SIZE"],
        notes_min_length=app.config["REJECTION_NOTES_MIN_LENGTH"],
    )
    submissions = SubmissionService(store, event_bus, BasicContentGate())
    notifications = NotificationFanout(
        event_bus,
        session_queue_size=app.config["NOTIFICATION_SESSION_QUEUE_SIZE"],
    )
    notifications.attach()

    event_bus.start()
    atexit.register(event_bus.shutdown)

    services = Services(
        event_bus=event_bus,
        store=store,
        audit=audit,
        moderation=moderation,
        submissions=submissions,
        notifications=notifications,
        analytics=AnalyticsService(store, audit),
        accounts=AccountService(db.session, audit),
    )
    app.extensions["placify"] = services
    return services


def get_services():
    """Return the service graph of the current app."""
    return current_app.extensions["placify"]
