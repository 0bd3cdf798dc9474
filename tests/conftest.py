"""Shared test fixtures for the Placify moderation test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- services / bus: the app's service graph and its event bus
- events: every domain event published during the test
- make_experience / make_contact: row factories
- seed_data: admin + non-admin users and a handful of submissions
"""

import pytest
from werkzeug.security import generate_password_hash

from placify import create_app
from placify.extensions import db as _db
from placify.models.contact import Contact
from placify.models.experience import Experience
from placify.models.user import User

ADMIN_EMAIL = "admin@placify.local"
ADMIN_PASSWORD = "admin123"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app
    app.extensions["placify"].event_bus.shutdown()


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["placify"]


@pytest.fixture
def bus(services):
    return services.event_bus


@pytest.fixture
def events(bus):
    """Collect every event published while the test runs.

    Call bus.wait_idle() before asserting: delivery is asynchronous.
    """
    received = []
    subscription = bus.subscribe("*", received.append)
    yield received
    bus.unsubscribe(subscription)


@pytest.fixture
def make_experience(db_session):
    """Factory: insert an Experience row directly, bypassing the content gate."""

    def _make(**kwargs):
        defaults = {
            "full_name": "Asha Rao",
            "email": "asha@example.edu",
            "college_name": "State Engineering College",
            "branch": "CSE",
            "batch_year": 2025,
            "company_name": "Acme Corp",
            "job_role": "Software Engineer",
            "position_type": "Placement",
            "number_of_rounds": 3,
            "overall_experience": "Two technical rounds and one HR round, friendly panel.",
            "status": "pending",
        }
        defaults.update(kwargs)
        experience = Experience(**defaults)
        db_session.add(experience)
        db_session.commit()
        return experience

    return _make


@pytest.fixture
def make_contact(db_session):
    """Factory: insert a Contact row directly."""

    def _make(**kwargs):
        defaults = {
            "name": "Ravi Kumar",
            "email": "ravi@example.com",
            "subject": "Question about placements",
            "message": "How do I edit an experience I submitted last week?",
            "status": "new",
        }
        defaults.update(kwargs)
        contact = Contact(**defaults)
        db_session.add(contact)
        db_session.commit()
        return contact

    return _make


@pytest.fixture
def seed_data(app, db_session, make_experience, make_contact):
    """Seed an admin, a non-admin user, experiences in every status and a contact.

    Returns plain ids so tests can use them after the objects expire.
    """
    admin = User(
        email=ADMIN_EMAIL,
        password_hash=generate_password_hash(ADMIN_PASSWORD),
        full_name="Admin User",
        is_admin=True,
    )
    member = User(
        email="member@placify.local",
        password_hash=generate_password_hash("member123"),
        full_name="Regular User",
        is_admin=False,
    )
    db_session.add_all([admin, member])
    db_session.commit()

    pending = make_experience(company_name="Acme Corp")
    pending_2 = make_experience(company_name="Globex", job_role="Data Analyst")
    approved = make_experience(company_name="Initech", status="approved")
    rejected = make_experience(
        company_name="Umbrella",
        status="rejected",
        moderation_notes="Contains personal information.",
    )
    contact = make_contact()

    return {
        "admin_id": admin.id,
        "member_id": member.id,
        "pending_id": pending.id,
        "pending_2_id": pending_2.id,
        "approved_id": approved.id,
        "rejected_id": rejected.id,
        "contact_id": contact.id,
    }

