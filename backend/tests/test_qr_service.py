# Overview: Pytest coverage for QR token issue, rotation and validation.

import re
from datetime import timedelta

import pytest

from attendguard.models import QRToken, SessionStatus
from attendguard.services import qr_service
from attendguard.services.qr_service import SessionEndedError
from attendguard.services.session_service import SessionNotFoundError
from attendguard.time_utils import utcnow


CODE_PATTERN = re.compile(r"^SESSION_(\d+)_(\d+)_([0-9a-f]{32})$")


def active_tokens(db_session, session_id):
    return db_session.query(QRToken).filter_by(session_id=session_id, is_active=True).all()


class TestIssueToken:

    def test_code_format(self, db_session, session_a):
        token = qr_service.issue_token(session_a.id)
        match = CODE_PATTERN.match(token.code)
        assert match is not None
        assert int(match.group(1)) == session_a.id

    def test_expiry_uses_ttl(self, db_session, session_a):
        now = utcnow()
        token = qr_service.issue_token(session_a.id, now=now)
        assert token.expires_at == now + timedelta(seconds=300)
        assert token.rotation_interval_seconds == 300

    def test_expiry_capped_at_session_end(self, db_session, make_session, org_a, admin_a):
        now = utcnow()
        session = make_session(org_a, admin_a, end_time=now + timedelta(minutes=2))
        token = qr_service.issue_token(session.id, now=now)
        assert token.expires_at == session.end_time

    def test_issue_keeps_earlier_tokens_active(self, db_session, session_a):
        qr_service.issue_token(session_a.id)
        qr_service.issue_token(session_a.id)
        assert len(active_tokens(db_session, session_a.id)) == 2

    def test_unknown_session(self, db_session):
        with pytest.raises(SessionNotFoundError):
            qr_service.issue_token(99999)

    def test_other_tenant_session_not_found(self, db_session, session_a, org_b):
        with pytest.raises(SessionNotFoundError):
            qr_service.issue_token(session_a.id, org_id=org_b.id)


class TestRotateToken:

    def test_rotation_leaves_exactly_one_active(self, db_session, session_a):
        first = qr_service.issue_token(session_a.id)
        second = qr_service.issue_token(session_a.id)

        rotated = qr_service.rotate_token(session_a.id)

        tokens = active_tokens(db_session, session_a.id)
        assert [t.id for t in tokens] == [rotated.id]
        assert rotated.id not in (first.id, second.id)

    def test_old_code_rejected_after_rotation(self, db_session, session_a):
        old = qr_service.issue_token(session_a.id)
        new = qr_service.rotate_token(session_a.id)

        assert qr_service.validate_token(old.code, session_a.id).valid is False
        assert qr_service.validate_token(new.code, session_a.id).valid is True

    def test_rotated_tokens_are_kept(self, db_session, session_a):
        qr_service.issue_token(session_a.id)
        qr_service.rotate_token(session_a.id)
        assert db_session.query(QRToken).filter_by(session_id=session_a.id).count() == 2


class TestValidateToken:

    def test_valid_token(self, db_session, session_a, qr_a):
        result = qr_service.validate_token(qr_a.code, session_a.id)
        assert result.valid is True
        assert result.token_id == qr_a.id
        assert result.session.id == session_a.id

    def test_expired_token(self, db_session, session_a):
        now = utcnow()
        token = qr_service.issue_token(session_a.id, now=now)
        result = qr_service.validate_token(token.code, session_a.id, now=now + timedelta(seconds=301))
        assert result.valid is False
        assert result.message == qr_service.INVALID_TOKEN_MESSAGE

    def test_expiry_is_exclusive(self, db_session, session_a):
        now = utcnow()
        token = qr_service.issue_token(session_a.id, now=now)
        assert qr_service.validate_token(token.code, session_a.id, now=token.expires_at).valid is False

    def test_wrong_session(self, db_session, make_session, org_a, admin_a, qr_a):
        other = make_session(org_a, admin_a, title="Other Session")
        assert qr_service.validate_token(qr_a.code, other.id).valid is False

    @pytest.mark.parametrize("code", ["", None, "SESSION_1_0_deadbeef", 12345])
    def test_garbage_codes(self, db_session, session_a, code):
        result = qr_service.validate_token(code, session_a.id)
        assert result.valid is False
        assert result.message == qr_service.INVALID_TOKEN_MESSAGE


class TestCurrentAndDueTokens:

    def test_current_token_is_newest(self, db_session, session_a):
        now = utcnow()
        qr_service.issue_token(session_a.id, now=now - timedelta(seconds=60))
        newest = qr_service.issue_token(session_a.id, now=now)
        assert qr_service.current_token(session_a.id, now=now).id == newest.id

    def test_current_token_none_when_expired(self, db_session, session_a, qr_a):
        assert qr_service.current_token(session_a.id, now=qr_a.expires_at + timedelta(seconds=1)) is None

    def test_rotate_due_issues_missing_tokens(self, db_session, session_a):
        rotated = qr_service.rotate_due_tokens()
        assert [t.session_id for t in rotated] == [session_a.id]
        assert len(active_tokens(db_session, session_a.id)) == 1

    def test_rotate_due_skips_fresh_tokens(self, db_session, session_a, qr_a):
        assert qr_service.rotate_due_tokens(window_seconds=30) == []

    def test_rotate_due_rotates_expiring_tokens(self, db_session, session_a):
        now = utcnow()
        expiring = qr_service.issue_token(session_a.id, now=now - timedelta(seconds=290))

        rotated = qr_service.rotate_due_tokens(now=now, window_seconds=30)

        assert len(rotated) == 1
        assert rotated[0].id != expiring.id
        assert [t.id for t in active_tokens(db_session, session_a.id)] == [rotated[0].id]

    def test_rotate_due_ignores_inactive_sessions(self, db_session, make_session, org_a, admin_a):
        make_session(org_a, admin_a, status=SessionStatus.SCHEDULED)
        make_session(org_a, admin_a, status=SessionStatus.CANCELLED)
        assert qr_service.rotate_due_tokens() == []


class TestEndedSession:

    def ended_session(self, make_session, org_a, admin_a):
        now = utcnow()
        return make_session(
            org_a, admin_a, start_time=now - timedelta(hours=2), end_time=now - timedelta(hours=1)
        )

    def test_issue_refused(self, db_session, make_session, org_a, admin_a):
        session = self.ended_session(make_session, org_a, admin_a)
        with pytest.raises(SessionEndedError):
            qr_service.issue_token(session.id)
        assert db_session.query(QRToken).filter_by(session_id=session.id).count() == 0

    def test_issue_at_exact_end_refused(self, db_session, session_a):
        with pytest.raises(SessionEndedError):
            qr_service.issue_token(session_a.id, now=session_a.end_time)

    def test_rotate_refused_and_keeps_existing_tokens(self, db_session, session_a):
        token = qr_service.issue_token(session_a.id)

        with pytest.raises(SessionEndedError):
            qr_service.rotate_token(session_a.id, now=session_a.end_time + timedelta(seconds=1))

        db_session.refresh(token)
        assert token.is_active is True
