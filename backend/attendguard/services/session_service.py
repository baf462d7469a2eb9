# Overview: Service-layer operations for sessions; lookup, attendance counter and status updates.

"""
Session Collaborator

WHY: Verification and approvals need three things from a session: a
tenant-checked lookup, a capacity-safe attendance counter and time-driven
status transitions. Scheduling itself lives outside this service.

COUNTER: current_count only ever moves through a single guarded
`UPDATE sessions SET current_count = current_count +/- 1 WHERE ...`, so two
approvals racing for the last seat cannot both succeed and the count never
goes negative.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Session, SessionStatus
from ..time_utils import utcnow


class SessionError(ValueError):
    """Base class for session lookup and counter errors."""


class SessionNotFoundError(SessionError):
    def __init__(self, session_id: int):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionFullError(SessionError):
    def __init__(self, session_id: int, capacity: int | None = None):
        super().__init__(f"Session {session_id} is at capacity")
        self.session_id = session_id
        self.capacity = capacity


def find_session(session_id: int, *, org_id: int | None = None) -> Session:
    """
    Fetch a session by id.

    MULTI-TENANT: With org_id given, a session of another organization is
    reported as not found rather than forbidden.
    """
    session = db.session.get(Session, session_id)
    if session is None or (org_id is not None and session.org_id != org_id):
        raise SessionNotFoundError(session_id)
    return session


def _refresh_count(session_id: int) -> None:
    instance = db.session.get(Session, session_id)
    if instance is not None:
        db.session.expire(instance, ["current_count"])


def increment_attendance_count(session_id: int) -> None:
    """
    Atomically add one to current_count.

    Raises SessionFullError when capacity is reached and SessionNotFoundError
    for unknown ids. Runs inside the caller's transaction.
    """
    updated = (
        db.session.query(Session)
        .filter(
            Session.id == session_id,
            or_(Session.capacity.is_(None), Session.current_count < Session.capacity),
        )
        .update({Session.current_count: Session.current_count + 1}, synchronize_session=False)
    )

    if updated == 0:
        session = db.session.get(Session, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        raise SessionFullError(session_id, session.capacity)

    _refresh_count(session_id)


def decrement_attendance_count(session_id: int) -> None:
    """Atomically subtract one from current_count; a count of zero is left alone."""
    (
        db.session.query(Session)
        .filter(Session.id == session_id, Session.current_count > 0)
        .update({Session.current_count: Session.current_count - 1}, synchronize_session=False)
    )
    _refresh_count(session_id)


def sync_session_statuses(*, now: datetime | None = None) -> dict:
    """
    Move sessions along their time-driven lifecycle.

    - scheduled -> active when start_time <= now < end_time
    - scheduled/active -> completed when end_time <= now
    - draft and cancelled are never touched

    Meant for a periodic job (see `flask sessions sync-status`).
    """
    now = now or utcnow()

    completed = (
        db.session.query(Session)
        .filter(
            Session.status.in_([SessionStatus.SCHEDULED, SessionStatus.ACTIVE]),
            Session.end_time <= now,
        )
        .update({Session.status: SessionStatus.COMPLETED}, synchronize_session=False)
    )

    activated = (
        db.session.query(Session)
        .filter(
            Session.status == SessionStatus.SCHEDULED,
            Session.start_time <= now,
            Session.end_time > now,
        )
        .update({Session.status: SessionStatus.ACTIVE}, synchronize_session=False)
    )

    db.session.commit()
    db.session.expire_all()

    current_app.logger.info("Session status sync: %s activated, %s completed", activated, completed)
    return {"activated": activated, "completed": completed}
