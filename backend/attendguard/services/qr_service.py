# Overview: Service-layer operations for session QR tokens; issue, rotate and validate.

"""
Rotating QR Tokens

WHY: A scanned code proves the user saw the venue display recently. Codes
expire after QR_TOKEN_TTL_SECONDS (default 300) or at session end, whichever
comes first, and rotation deactivates every earlier code.

FORMAT: SESSION_<session id>_<unix issue time>_<32 random hex chars>. The
embedded ids are informational; validation always goes through the database.

RACE: A code validated just before a concurrent rotation is accepted. The
window is bounded by the request latency.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app

from ..extensions import db
from ..models import QRToken, Session, SessionStatus
from ..time_utils import utcnow
from .session_service import find_session


INVALID_TOKEN_MESSAGE = "Invalid or expired QR code"


class SessionEndedError(ValueError):
    """The session is over; a token issued now would already be expired."""



@dataclass
class TokenValidation:
    valid: bool
    token_id: int | None = None
    session: Session | None = None
    message: str | None = None


def _ttl_seconds() -> int:
    return int(current_app.config.get("QR_TOKEN_TTL_SECONDS", 300))


def generate_code(session_id: int, now: datetime) -> str:
    issued = int(now.replace(tzinfo=timezone.utc).timestamp())
    return f"SESSION_{session_id}_{issued}_{secrets.token_hex(16)}"


def _build_token(session: Session, now: datetime) -> QRToken:
    if session.end_time <= now:
        raise SessionEndedError(f"Session {session.id} has ended; no QR token can be issued")

    ttl = _ttl_seconds()
    expires_at = min(now + timedelta(seconds=ttl), session.end_time)

    token = QRToken(
        session_id=session.id,
        code=generate_code(session.id, now),
        expires_at=expires_at,
        is_active=True,
        rotation_interval_seconds=ttl,
        created_at=now,
    )
    db.session.add(token)
    return token


def issue_token(session_id: int, *, now: datetime | None = None, org_id: int | None = None) -> QRToken:
    """
    Issue a new active token for a session.

    Earlier tokens stay active; use rotate_token() to retire them.
    Raises SessionNotFoundError for unknown (or other-tenant) sessions and
    SessionEndedError once the session is over.
    """
    now = now or utcnow()
    session = find_session(session_id, org_id=org_id)

    token = _build_token(session, now)
    db.session.commit()

    current_app.logger.info("Issued QR token %s for session %s", token.id, session_id)
    return token


def rotate_token(session_id: int, *, now: datetime | None = None, org_id: int | None = None) -> QRToken:
    """Deactivate every active token for the session and issue a new one, in one transaction."""
    now = now or utcnow()
    session = find_session(session_id, org_id=org_id)

    try:
        retired = (
            db.session.query(QRToken)
            .filter(QRToken.session_id == session.id, QRToken.is_active.is_(True))
            .update({QRToken.is_active: False}, synchronize_session=False)
        )
        token = _build_token(session, now)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    # Loaded tokens still hold is_active=True
    db.session.expire_all()

    current_app.logger.info(
        "Rotated QR token for session %s (%s retired, new token %s)", session_id, retired, token.id
    )
    return token


def validate_token(code: str, session_id: int, *, now: datetime | None = None) -> TokenValidation:
    """
    Check a scanned code against a session.

    Valid only if the code exists for this session, is active and has not
    expired. Never raises; every failure carries the same generic message.
    """
    now = now or utcnow()

    if not code or not isinstance(code, str):
        return TokenValidation(valid=False, message=INVALID_TOKEN_MESSAGE)

    token = (
        db.session.query(QRToken)
        .filter(
            QRToken.code == code,
            QRToken.session_id == session_id,
            QRToken.is_active.is_(True),
            QRToken.expires_at > now,
        )
        .first()
    )

    if token is None:
        return TokenValidation(valid=False, message=INVALID_TOKEN_MESSAGE)

    return TokenValidation(valid=True, token_id=token.id, session=token.session)


def current_token(session_id: int, *, now: datetime | None = None) -> QRToken | None:
    """Newest active, unexpired token for the session."""
    now = now or utcnow()
    return (
        db.session.query(QRToken)
        .filter(
            QRToken.session_id == session_id,
            QRToken.is_active.is_(True),
            QRToken.expires_at > now,
        )
        .order_by(QRToken.created_at.desc(), QRToken.id.desc())
        .first()
    )


def rotate_due_tokens(*, now: datetime | None = None, window_seconds: int = 30) -> list[QRToken]:
    """
    Rotate tokens for every active session whose current token is missing
    or expires within `window_seconds`.

    Meant for a periodic job (see `flask qr rotate-due`).
    """
    now = now or utcnow()
    cutoff = now + timedelta(seconds=window_seconds)

    session_ids = [
        sid
        for (sid,) in db.session.query(Session.id)
        .filter(
            Session.status == SessionStatus.ACTIVE,
            Session.start_time <= now,
            Session.end_time > now,
        )
        .order_by(Session.id)
        .all()
    ]

    rotated = []
    for session_id in session_ids:
        token = current_token(session_id, now=now)
        if token is not None and token.expires_at > cutoff:
            continue
        rotated.append(rotate_token(session_id, now=now))

    return rotated
