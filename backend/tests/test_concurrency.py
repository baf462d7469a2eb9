"""
Concurrency tests for duplicate attendance submissions.

Several threads submit the same check-in at once against a file-backed
SQLite database (in-memory SQLite is a single shared connection and cannot
race). Exactly one submission may win; every other one must come back as a
duplicate and leave a fraud signal behind.
"""

import threading
from datetime import timedelta

import pytest

from attendguard import create_app
from attendguard.extensions import db
from attendguard.models import Attendance, AuditLog, Session, SessionStatus
from attendguard.services import attendance_service, qr_service
from attendguard.services.attendance_service import DuplicateAttendanceError
from attendguard.time_utils import utcnow

from conftest import TEST_CONFIG, VENUE_LAT, VENUE_LNG, seed_org, make_user, actor_for


THREADS = 5


@pytest.fixture
def race_app(tmp_path):
    db_path = tmp_path / "race.db"
    app = create_app({
        **TEST_CONFIG,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def race_setup(race_app):
    """Org, member, session and QR code committed in the file database."""
    with race_app.app_context():
        org = seed_org(db.session, "Race University", "RACE")
        admin = make_user(org, "admin@race.edu", "admin")
        member = make_user(org, "member@race.edu", "member")
        now = utcnow()
        session = Session(
            org_id=org.id,
            title="Race Lecture",
            start_time=now - timedelta(minutes=10),
            end_time=now + timedelta(minutes=50),
            location_lat=VENUE_LAT,
            location_lng=VENUE_LNG,
            radius_meters=100,
            status=SessionStatus.ACTIVE,
            created_by_user_id=admin.id,
        )
        db.session.add(session)
        db.session.commit()
        token = qr_service.issue_token(session.id)
        setup = {
            "actor": actor_for(member),
            "session_id": session.id,
            "qr_code": token.code,
        }
        db.session.remove()
    return setup


def test_concurrent_duplicates_single_winner(race_app, race_setup):
    barrier = threading.Barrier(THREADS)
    lock = threading.Lock()
    successes = []
    duplicates = []
    failures = []

    def submit():
        with race_app.app_context():
            try:
                barrier.wait(timeout=10)
                result = attendance_service.verify_attendance(
                    race_setup["actor"],
                    session_id=race_setup["session_id"],
                    qr_code=race_setup["qr_code"],
                )
                with lock:
                    successes.append(result.attendance.id)
            except DuplicateAttendanceError as e:
                with lock:
                    duplicates.append(e.existing_attendance_id)
            except Exception as e:
                with lock:
                    failures.append(e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=submit) for _ in range(THREADS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert failures == []
    assert len(successes) == 1
    assert len(duplicates) == THREADS - 1
    assert set(duplicates) == set(successes)

    with race_app.app_context():
        assert db.session.query(Attendance).count() == 1
        fraud = db.session.query(AuditLog).filter_by(action="fraud_attempt_duplicate_attendance").count()
        assert fraud == THREADS - 1
        db.session.remove()
