"""
Multi-tenant isolation tests.

Verifies:
- Tokens carry the organization they were issued for
- Another tenant's sessions, attendances and audit events are invisible
  (reported as not found, never as forbidden)
- Retired organizations and users lose API access
- Same email may exist in two organizations
"""

from attendguard.models import AuditLog
from attendguard.services import attendance_service, auth_service, token_service
from attendguard.time_utils import utcnow

from conftest import PASSWORD, actor_for, make_user, get_auth_token, auth_headers


class TestTokenTenantContext:

    def test_token_captures_org_id(self, db_session, member_a, org_a):
        record, token = token_service.create_token(user_id=member_a.id)
        assert record.org_id == org_a.id

        context = token_service.validate_token(token)
        assert context.org_id == org_a.id
        assert context.user.id == member_a.id

    def test_retired_org_invalidates_tokens(self, db_session, member_a, org_a):
        _, token = token_service.create_token(user_id=member_a.id)
        org_a.retire(utcnow())
        db_session.commit()

        assert token_service.validate_token(token) is None

    def test_retired_user_invalidates_tokens(self, client, db_session, member_a, member_headers):
        member_a.retire(utcnow())
        db_session.commit()

        resp = client.get("/api/auth/me", headers=member_headers)
        assert resp.status_code == 401


class TestUserTenantIsolation:

    def test_same_email_in_two_orgs(self, db_session, org_a, org_b):
        user_a = make_user(org_a, "shared@example.edu", "member")
        user_b = make_user(org_b, "shared@example.edu", "member")
        assert user_a.id != user_b.id

    def test_login_with_org_id_picks_tenant(self, client, db_session, org_a, org_b):
        make_user(org_a, "shared@example.edu", "member")
        user_b = make_user(org_b, "shared@example.edu", "member")

        resp = client.post(
            "/api/auth/login",
            json={"email": "shared@example.edu", "password": PASSWORD, "org_id": org_b.id},
        )

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["org_id"] == org_b.id
        assert data["user"]["id"] == user_b.id

    def test_authenticate_wrong_org(self, db_session, member_a, org_b):
        assert auth_service.authenticate(member_a.email, PASSWORD, org_id=org_b.id) is None


class TestCrossTenantApi:

    def test_qr_for_other_tenant_session_not_found(self, client, admin_b_headers, session_a):
        resp = client.post(f"/api/sessions/{session_a.id}/qr", headers=admin_b_headers)
        assert resp.status_code == 404

        resp = client.get(f"/api/sessions/{session_a.id}/qr", headers=admin_b_headers)
        assert resp.status_code == 404

    def test_verify_other_tenant_session_not_found(self, client, db_session, member_b, session_a, qr_a):
        headers = auth_headers(get_auth_token(client, member_b.email))
        resp = client.post(
            "/api/attendance/verify",
            json={"session_id": session_a.id, "qr_code": qr_a.code},
            headers=headers,
        )
        assert resp.status_code == 404

    def test_roster_of_other_tenant_session_not_found(self, client, admin_b_headers, session_a):
        resp = client.get(f"/api/attendance/session/{session_a.id}", headers=admin_b_headers)
        assert resp.status_code == 404

    def test_approve_other_tenant_attendance_not_found(
        self, client, db_session, admin_b_headers, member_a, session_a, qr_a
    ):
        result = attendance_service.verify_attendance(actor_for(member_a), session_id=session_a.id, qr_code=qr_a.code)

        resp = client.post(
            f"/api/admin/attendance/{result.attendance.id}/approve", json={}, headers=admin_b_headers
        )
        assert resp.status_code == 404

        resp = client.get(f"/api/admin/attendance/{result.attendance.id}/logs", headers=admin_b_headers)
        assert resp.status_code == 404

    def test_pending_queue_is_per_tenant(self, client, db_session, admin_b_headers, member_a, session_a, qr_a):
        attendance_service.verify_attendance(actor_for(member_a), session_id=session_a.id, qr_code=qr_a.code)

        resp = client.get("/api/admin/attendance/pending", headers=admin_b_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 0

    def test_history_of_other_tenant_user_is_empty(
        self, client, db_session, admin_b_headers, member_a, session_a, qr_a
    ):
        attendance_service.verify_attendance(actor_for(member_a), session_id=session_a.id, qr_code=qr_a.code)

        resp = client.get(f"/api/attendance/history?user_id={member_a.id}", headers=admin_b_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 0


class TestAuditTenantScoping:

    def test_audit_events_carry_org_id(self, db_session, member_a, session_a, qr_a, org_a):
        attendance_service.verify_attendance(actor_for(member_a), session_id=session_a.id, qr_code=qr_a.code)
        event = db_session.query(AuditLog).filter_by(action="attendance_marked").one()
        assert event.org_id == org_a.id

    def test_audit_log_endpoint_filtered_by_org(
        self, client, db_session, admin_b_headers, member_a, session_a, qr_a
    ):
        attendance_service.verify_attendance(actor_for(member_a), session_id=session_a.id, qr_code=qr_a.code)

        resp = client.get("/api/admin/audit-logs?action=attendance_marked", headers=admin_b_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 0
