# Overview: HTTP-level tests for auth, attendance, admin and QR endpoints.

"""
API Route Tests

Verifies request validation, the status code each service error maps to,
and that biometric data never appears in a response body.
"""

from datetime import timedelta

import pytest

from attendguard.models import Attendance, AttendanceStatus, AuditLog, FaceEnrollment
from attendguard.services import qr_service
from attendguard.time_utils import utcnow

from conftest import PASSWORD, VENUE_LAT, VENUE_LNG, descriptor


# =============================================================================
# AUTH
# =============================================================================


class TestAuthRoutes:

    def test_login_returns_token_and_capabilities(self, client, member_a):
        resp = client.post("/api/auth/login", json={"email": member_a.email, "password": PASSWORD})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["token"]
        assert data["roles"] == ["member"]
        assert "MARK_ATTENDANCE" in data["permissions"]
        assert "APPROVE_ATTENDANCE" not in data["permissions"]
        assert "password_hash" not in data["user"]

    def test_login_wrong_password(self, client, db_session, member_a):
        resp = client.post("/api/auth/login", json={"email": member_a.email, "password": "Wrong123!"})
        assert resp.status_code == 401

        assert db_session.query(AuditLog).filter_by(action="login_failed").count() == 1

    @pytest.mark.parametrize("body", [{}, {"email": "a@b.c"}, {"email": "", "password": "x"}])
    def test_login_bad_input(self, client, db_session, body):
        resp = client.post("/api/auth/login", json=body)
        assert resp.status_code == 400

    def test_me(self, client, member_a, member_headers):
        resp = client.get("/api/auth/me", headers=member_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["user"]["id"] == member_a.id
        assert data["org_id"] == member_a.org_id

    def test_logout_revokes_token(self, client, member_headers):
        resp = client.post("/api/auth/logout", headers=member_headers)
        assert resp.status_code == 200

        assert client.get("/api/auth/me", headers=member_headers).status_code == 401
        assert client.post("/api/auth/logout", headers=member_headers).status_code == 401


# =============================================================================
# VERIFY
# =============================================================================


class TestVerifyRoute:

    def test_qr_check_in(self, client, db_session, member_headers, session_a, qr_a):
        resp = client.post(
            "/api/attendance/verify",
            json={"session_id": session_a.id, "qr_code": qr_a.code, "platform": "ios"},
            headers=member_headers,
        )

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["success"] is True
        assert data["status"] == "pending"
        assert data["verification_method"] == "qr"

        record = db_session.get(Attendance, data["attendance_id"])
        assert record.device_info["platform"] == "ios"

    def test_full_evidence_check_in(self, client, member_a, member_headers, session_a, qr_a):
        enroll = client.post(
            "/api/attendance/enroll-face",
            json={"face_descriptor": descriptor(0.1), "consent": True},
            headers=member_headers,
        )
        assert enroll.status_code == 201

        resp = client.post(
            "/api/attendance/verify",
            json={
                "session_id": session_a.id,
                "qr_code": qr_a.code,
                "face_descriptor": descriptor(0.1),
                "location": {"lat": VENUE_LAT, "lng": VENUE_LNG, "accuracy": 6},
                "webauthn_credential_id": "cred-123",
            },
            headers=member_headers,
        )

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["verification_method"] == "qr_face_gps_webauthn"
        assert data["face_match_score"] == 1.0
        assert data["gps_valid"] is True

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"qr_code": "SESSION_1_0_x"},
            {"session_id": 1},
            {"session_id": "abc", "qr_code": "x"},
            {"session_id": 1, "face_descriptor": [0.1] * 10},
            {"session_id": 1, "face_descriptor": [2.0] * 128},
            {"session_id": 1, "qr_code": "x", "location": {"lat": 95, "lng": 0}},
            {"session_id": 1, "qr_code": "x", "location": {"lat": 0}},
        ],
    )
    def test_bad_payloads(self, client, member_headers, body):
        resp = client.post("/api/attendance/verify", json=body, headers=member_headers)
        assert resp.status_code == 400

    def test_invalid_qr(self, client, member_headers, session_a, qr_a):
        resp = client.post(
            "/api/attendance/verify",
            json={"session_id": session_a.id, "qr_code": "SESSION_1_0_" + "0" * 32},
            headers=member_headers,
        )
        assert resp.status_code == 400

    def test_duplicate_is_conflict(self, client, member_headers, session_a, qr_a):
        body = {"session_id": session_a.id, "qr_code": qr_a.code}
        first = client.post("/api/attendance/verify", json=body, headers=member_headers)
        second = client.post("/api/attendance/verify", json=body, headers=member_headers)

        assert second.status_code == 409
        assert second.get_json()["existing_attendance_id"] == first.get_json()["attendance_id"]

    def test_face_mismatch(self, client, member_headers, session_a, qr_a):
        client.post(
            "/api/attendance/enroll-face",
            json={"face_descriptor": descriptor(0.0), "consent": True},
            headers=member_headers,
        )

        resp = client.post(
            "/api/attendance/verify",
            json={
                "session_id": session_a.id,
                "qr_code": qr_a.code,
                "face_descriptor": [0.6] * 4 + [0.0] * 124,
            },
            headers=member_headers,
        )

        assert resp.status_code == 400
        data = resp.get_json()
        assert data["face_match_score"] == pytest.approx(0.4)
        assert data["threshold"] == pytest.approx(0.7)

    def test_full_session(self, client, admin_headers, make_session, org_a, admin_a):
        session = make_session(org_a, admin_a, capacity=1, current_count=1)
        token = qr_service.issue_token(session.id)

        resp = client.post(
            "/api/attendance/verify",
            json={"session_id": session.id, "qr_code": token.code},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_face_only_unknown_session(self, client, member_headers):
        resp = client.post(
            "/api/attendance/verify",
            json={"session_id": 99999, "face_descriptor": descriptor()},
            headers=member_headers,
        )
        assert resp.status_code == 404


# =============================================================================
# FACE ENROLLMENT
# =============================================================================


class TestEnrollmentRoutes:

    def test_enroll_response_has_no_descriptor(self, client, db_session, member_headers):
        resp = client.post(
            "/api/attendance/enroll-face",
            json={"face_descriptor": descriptor(0.123), "consent": True, "image_ref": "s3://faces/1.jpg"},
            headers=member_headers,
        )

        assert resp.status_code == 201
        body = resp.get_data(as_text=True)
        enrollment = db_session.query(FaceEnrollment).one()
        assert "descriptor" not in resp.get_json()["enrollment"]
        assert "encrypted_descriptor" not in body
        assert enrollment.encrypted_descriptor not in body
        assert resp.get_json()["enrollment"]["image_ref"] == "s3://faces/1.jpg"

    def test_enroll_without_consent(self, client, member_headers):
        resp = client.post(
            "/api/attendance/enroll-face",
            json={"face_descriptor": descriptor(), "consent": False},
            headers=member_headers,
        )
        assert resp.status_code == 400

    def test_enroll_twice(self, client, member_headers):
        body = {"face_descriptor": descriptor(), "consent": True}
        client.post("/api/attendance/enroll-face", json=body, headers=member_headers)
        resp = client.post("/api/attendance/enroll-face", json=body, headers=member_headers)
        assert resp.status_code == 409

    def test_enroll_missing_descriptor(self, client, member_headers):
        resp = client.post("/api/attendance/enroll-face", json={"consent": True}, headers=member_headers)
        assert resp.status_code == 400

    def test_re_enroll(self, client, member_headers):
        client.post(
            "/api/attendance/enroll-face",
            json={"face_descriptor": descriptor(0.1), "consent": True},
            headers=member_headers,
        )
        resp = client.post(
            "/api/attendance/re-enroll-face",
            json={"face_descriptor": descriptor(0.2)},
            headers=member_headers,
        )
        assert resp.status_code == 200
        assert "encrypted_descriptor" not in resp.get_data(as_text=True)

    def test_re_enroll_without_consent(self, client, member_headers):
        resp = client.post(
            "/api/attendance/re-enroll-face",
            json={"face_descriptor": descriptor(0.2)},
            headers=member_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# LOCATION AND READ PATHS
# =============================================================================


class TestLocationRoute:

    def test_log_location(self, client, member_headers, session_a):
        resp = client.post(
            "/api/attendance/location",
            json={"session_id": session_a.id, "latitude": VENUE_LAT, "longitude": VENUE_LNG, "accuracy": 4},
            headers=member_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["location"]["within_radius"] is True

    def test_missing_field(self, client, member_headers, session_a):
        resp = client.post(
            "/api/attendance/location",
            json={"session_id": session_a.id, "latitude": VENUE_LAT},
            headers=member_headers,
        )
        assert resp.status_code == 400

    def test_out_of_range(self, client, member_headers, session_a):
        resp = client.post(
            "/api/attendance/location",
            json={"session_id": session_a.id, "latitude": 123.0, "longitude": VENUE_LNG},
            headers=member_headers,
        )
        assert resp.status_code == 400

    def test_unknown_session(self, client, member_headers):
        resp = client.post(
            "/api/attendance/location",
            json={"session_id": 99999, "latitude": VENUE_LAT, "longitude": VENUE_LNG},
            headers=member_headers,
        )
        assert resp.status_code == 404


class TestReadRoutes:

    def test_own_history(self, client, member_headers, session_a, qr_a):
        client.post(
            "/api/attendance/verify",
            json={"session_id": session_a.id, "qr_code": qr_a.code},
            headers=member_headers,
        )

        resp = client.get("/api/attendance/history", headers=member_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1

    def test_history_date_only_end_covers_whole_day(self, client, member_headers, session_a, qr_a):
        client.post(
            "/api/attendance/verify",
            json={"session_id": session_a.id, "qr_code": qr_a.code},
            headers=member_headers,
        )
        today = utcnow().date().isoformat()

        resp = client.get(
            f"/api/attendance/history?start_date={today}&end_date={today}", headers=member_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1

    def test_history_bad_date(self, client, member_headers):
        resp = client.get("/api/attendance/history?start_date=yesterday", headers=member_headers)
        assert resp.status_code == 400

    def test_roster_status_filter(self, client, admin_headers, session_a):
        assert client.get(
            f"/api/attendance/session/{session_a.id}?status=pending", headers=admin_headers
        ).status_code == 200
        assert client.get(
            f"/api/attendance/session/{session_a.id}?status=excused", headers=admin_headers
        ).status_code == 400


# =============================================================================
# ADMIN DECISIONS
# =============================================================================


class TestAdminRoutes:

    @pytest.fixture
    def pending_id(self, client, member_headers, session_a, qr_a):
        resp = client.post(
            "/api/attendance/verify",
            json={"session_id": session_a.id, "qr_code": qr_a.code},
            headers=member_headers,
        )
        return resp.get_json()["attendance_id"]

    def test_approve(self, client, db_session, admin_headers, session_a, pending_id):
        resp = client.post(
            f"/api/admin/attendance/{pending_id}/approve", json={"notes": "seen in class"}, headers=admin_headers
        )

        assert resp.status_code == 200
        assert resp.get_json()["attendance"]["status"] == "present"
        db_session.refresh(session_a)
        assert session_a.current_count == 1

    def test_approve_twice_conflict(self, client, admin_headers, pending_id):
        client.post(f"/api/admin/attendance/{pending_id}/approve", json={}, headers=admin_headers)
        resp = client.post(f"/api/admin/attendance/{pending_id}/approve", json={}, headers=admin_headers)

        assert resp.status_code == 409
        assert resp.get_json()["current_status"] == "present"

    def test_approve_bad_status(self, client, admin_headers, pending_id):
        resp = client.post(
            f"/api/admin/attendance/{pending_id}/approve", json={"status": "absent"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_reject_requires_reason(self, client, admin_headers, pending_id):
        resp = client.post(f"/api/admin/attendance/{pending_id}/reject", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_reject(self, client, admin_headers, pending_id):
        resp = client.post(
            f"/api/admin/attendance/{pending_id}/reject", json={"reason": "Not present"}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["attendance"]["rejection_reason"] == "Not present"

    def test_override(self, client, admin_headers, pending_id):
        resp = client.post(
            f"/api/admin/attendance/{pending_id}/override", json={"status": "late"}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["attendance"]["status"] == AttendanceStatus.LATE.value

    def test_delete_then_logs(self, client, admin_headers, pending_id):
        resp = client.delete(f"/api/admin/attendance/{pending_id}", headers=admin_headers)
        assert resp.status_code == 200

        logs = client.get(f"/api/admin/attendance/{pending_id}/logs", headers=admin_headers)
        assert logs.status_code == 200
        assert [log["action"] for log in logs.get_json()["logs"]] == ["created", "deleted"]

        assert client.delete(f"/api/admin/attendance/{pending_id}", headers=admin_headers).status_code == 404

    def test_pending_queue(self, client, admin_headers, pending_id):
        resp = client.get("/api/admin/attendance/pending", headers=admin_headers)
        assert [a["id"] for a in resp.get_json()["attendances"]] == [pending_id]

    def test_audit_log_filter(self, client, admin_headers, pending_id):
        resp = client.get("/api/admin/audit-logs?action=attendance_marked&limit=5", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1


# =============================================================================
# QR TOKENS
# =============================================================================


class TestQRRoutes:

    def test_issue_rotate_and_read(self, client, admin_headers, session_a):
        issued = client.post(f"/api/sessions/{session_a.id}/qr", headers=admin_headers)
        assert issued.status_code == 201

        rotated = client.post(f"/api/sessions/{session_a.id}/qr/rotate", headers=admin_headers)
        assert rotated.status_code == 201
        assert rotated.get_json()["qr_token"]["code"] != issued.get_json()["qr_token"]["code"]

        current = client.get(f"/api/sessions/{session_a.id}/qr", headers=admin_headers)
        assert current.status_code == 200
        assert current.get_json()["qr_token"]["id"] == rotated.get_json()["qr_token"]["id"]

    def test_no_active_token(self, client, admin_headers, session_a):
        resp = client.get(f"/api/sessions/{session_a.id}/qr", headers=admin_headers)
        assert resp.status_code == 404

    def test_unknown_session(self, client, admin_headers):
        assert client.post("/api/sessions/99999/qr", headers=admin_headers).status_code == 404

    def test_ended_session_is_conflict(self, client, admin_headers, make_session, org_a, admin_a):
        now = utcnow()
        ended = make_session(
            org_a, admin_a, start_time=now - timedelta(hours=2), end_time=now - timedelta(hours=1)
        )

        assert client.post(f"/api/sessions/{ended.id}/qr", headers=admin_headers).status_code == 409
        assert client.post(f"/api/sessions/{ended.id}/qr/rotate", headers=admin_headers).status_code == 409
