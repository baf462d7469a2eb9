"""
CLI command tests.

Runs the flask command groups through Flask's CLI runner against the test
database.
"""

from datetime import timedelta

from attendguard.models import Organization, QRToken, Session, SessionStatus, User
from attendguard.services import permission_service
from attendguard.time_utils import utcnow, to_utc_z


class TestSystemCommands:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init", "--org", "Acme", "--org-code", "ACME"])
        second = runner.invoke(args=["system", "init", "--org", "Acme", "--org-code", "ACME"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "already exists" in second.output
        assert db_session.query(Organization).count() == 1

        admin = db_session.query(User).one()
        assert permission_service.get_user_role_names(admin.id) == ["super_admin"]


class TestUserCommands:

    def test_create_and_list(self, app, db_session, org_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "users", "create",
            "--org-id", str(org_a.id),
            "--name", "Ada",
            "--email", "ada@acme.edu",
            "--password", "Password123!",
            "--role", "session_manager",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS Created user: ada@acme.edu" in result.output

        listing = runner.invoke(args=["users", "list", "--org-id", str(org_a.id)])
        assert "ada@acme.edu" in listing.output
        assert "session_manager" in listing.output

    def test_weak_password(self, app, db_session, org_a):
        result = app.test_cli_runner().invoke(args=[
            "users", "create",
            "--org-id", str(org_a.id),
            "--name", "Weak",
            "--email", "weak@acme.edu",
            "--password", "short",
        ])
        assert "FAIL Password validation failed" in result.output
        assert db_session.query(User).filter_by(email="weak@acme.edu").count() == 0


class TestSessionCommands:

    def test_create_session(self, app, db_session, org_a, admin_a):
        result = app.test_cli_runner().invoke(args=[
            "sessions", "create",
            "--org-id", str(org_a.id),
            "--title", "Lecture 1",
            "--start", "2030-01-05T09:00:00Z",
            "--end", "2030-01-05T10:00:00Z",
            "--lat", "6.5244",
            "--lng", "3.3792",
            "--capacity", "40",
        ])
        assert result.exit_code == 0, result.output

        session = db_session.query(Session).one()
        assert session.status == SessionStatus.SCHEDULED
        assert session.radius_meters == 100
        assert session.late_threshold_minutes == 15
        assert session.capacity == 40
        assert session.created_by_user_id == admin_a.id

    def test_end_before_start(self, app, db_session, org_a, admin_a):
        result = app.test_cli_runner().invoke(args=[
            "sessions", "create",
            "--org-id", str(org_a.id),
            "--title", "Backwards",
            "--start", "2030-01-05T10:00:00Z",
            "--end", "2030-01-05T09:00:00Z",
            "--lat", "0",
            "--lng", "0",
        ])
        assert "FAIL --end must be after --start" in result.output
        assert db_session.query(Session).count() == 0

    def test_sync_status(self, app, db_session, make_session, org_a, admin_a):
        now = utcnow()
        session = make_session(
            org_a, admin_a, status=SessionStatus.SCHEDULED,
            start_time=now - timedelta(minutes=5), end_time=now + timedelta(minutes=55),
        )

        result = app.test_cli_runner().invoke(args=["sessions", "sync-status"])

        assert "PASS 1 activated, 0 completed" in result.output
        assert session.status == SessionStatus.ACTIVE


class TestQRCommands:

    def test_rotate_due(self, app, db_session, session_a):
        result = app.test_cli_runner().invoke(args=["qr", "rotate-due"])

        assert "PASS Rotated 1 QR token(s)" in result.output
        token = db_session.query(QRToken).filter_by(session_id=session_a.id).one()
        assert to_utc_z(token.expires_at) in result.output
