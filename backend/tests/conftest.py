"""
Pytest fixtures for AttendGuard backend tests.

Provides test database setup, tenant fixtures (two organizations with
seeded roles), session factories and test client helpers.
"""

from datetime import timedelta

import pytest
from attendguard import create_app
from attendguard.extensions import db
from attendguard.models import Organization, Session, SessionStatus
from attendguard.services.auth_service import create_user, create_default_roles, assign_role
from attendguard.services import permission_service, qr_service
from attendguard.time_utils import utcnow


PASSWORD = "Password123!"

# Lagos, Nigeria
VENUE_LAT = 6.5244
VENUE_LNG = 3.3792

TEST_CONFIG = {
    'TESTING': True,
    'SECRET_KEY': 'test-secret-key',
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'DESCRIPTOR_ENCRYPTION_KEYS': '',
    'DESCRIPTOR_ACTIVE_KEY_ID': 'v1',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def seed_org(db_session, name: str, code: str) -> Organization:
    org = Organization(name=name, code=code)
    db_session.add(org)
    db_session.commit()

    create_default_roles(org.id)
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions(org.id)
    db_session.commit()
    return org


def make_user(org, email: str, role: str, name: str | None = None):
    user = create_user(name=name or email.split("@")[0], email=email, password=PASSWORD, org_id=org.id)
    assign_role(user.id, role)
    return user


def actor_for(user, **kwargs):
    return permission_service.resolve_actor(user, **kwargs)


@pytest.fixture(scope='function')
def org_a(db_session):
    """Organization A (first tenant) with default roles and permissions."""
    return seed_org(db_session, "Org A - Acme University", "ACME")


@pytest.fixture(scope='function')
def org_b(db_session):
    """Organization B (second tenant)."""
    return seed_org(db_session, "Org B - Beta College", "BETA")


@pytest.fixture(scope='function')
def admin_a(org_a):
    return make_user(org_a, "admin@acme.edu", "admin")


@pytest.fixture(scope='function')
def manager_a(org_a):
    return make_user(org_a, "manager@acme.edu", "session_manager")


@pytest.fixture(scope='function')
def member_a(org_a):
    return make_user(org_a, "student@acme.edu", "member")


@pytest.fixture(scope='function')
def admin_b(org_b):
    return make_user(org_b, "admin@beta.edu", "admin")


@pytest.fixture(scope='function')
def member_b(org_b):
    return make_user(org_b, "student@beta.edu", "member")


@pytest.fixture(scope='function')
def make_session(db_session):
    """
    Factory for sessions around the current time.

    Defaults: started 10 minutes ago, ends in 50 minutes, 100 m geofence
    around VENUE_LAT/VENUE_LNG, active, no capacity limit.
    """
    def _make(org, creator, **overrides):
        now = utcnow()
        values = {
            "org_id": org.id,
            "title": "Intro to Databases",
            "start_time": now - timedelta(minutes=10),
            "end_time": now + timedelta(minutes=50),
            "location_lat": VENUE_LAT,
            "location_lng": VENUE_LNG,
            "radius_meters": 100,
            "late_threshold_minutes": 15,
            "status": SessionStatus.ACTIVE,
            "created_by_user_id": creator.id,
        }
        values.update(overrides)
        session = Session(**values)
        db_session.add(session)
        db_session.commit()
        return session

    return _make


@pytest.fixture(scope='function')
def session_a(make_session, org_a, admin_a):
    return make_session(org_a, admin_a)


@pytest.fixture(scope='function')
def qr_a(session_a):
    """Active QR token for session_a."""
    return qr_service.issue_token(session_a.id)


def descriptor(value: float = 0.1) -> list[float]:
    """A constant 128-value face descriptor."""
    return [value] * 128


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_a):
    return auth_headers(get_auth_token(client, admin_a.email))


@pytest.fixture(scope='function')
def manager_headers(client, manager_a):
    return auth_headers(get_auth_token(client, manager_a.email))


@pytest.fixture(scope='function')
def member_headers(client, member_a):
    return auth_headers(get_auth_token(client, member_a.email))


@pytest.fixture(scope='function')
def admin_b_headers(client, admin_b):
    return auth_headers(get_auth_token(client, admin_b.email))
