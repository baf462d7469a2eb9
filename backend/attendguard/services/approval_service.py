# Overview: Service-layer operations for attendance approval; approve, reject, override and delete.

"""
Attendance Approval Workflow

STATE MACHINE:
- pending is the only status approve() and reject() accept; any other
  status raises NotPendingError carrying the current status
- override() moves a record between any two statuses
- nothing expires on its own

COUNTER: Session.current_count tracks records in {present, late}. Every
operation that moves a record into that set increments it, every operation
that moves one out decrements it (never below zero). Both go through
session_service's atomic UPDATEs.

Each operation checks the actor's capability and that the record belongs to
the actor's organization, then commits its status change, AttendanceLog
and AuditLog rows together.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import (
    Attendance,
    AttendanceLog,
    AttendanceStatus,
    AttendanceAction,
    APPROVABLE_STATUSES,
    User,
)
from ..time_utils import utcnow
from . import audit_service, session_service
from .attendance_service import log_attendance_change
from .permission_service import require_capability


class ApprovalError(ValueError):
    pass


class AttendanceNotFoundError(ApprovalError):
    def __init__(self, attendance_id: int):
        super().__init__(f"Attendance {attendance_id} not found")
        self.attendance_id = attendance_id


class NotPendingError(ApprovalError):
    def __init__(self, current_status: AttendanceStatus):
        super().__init__(f"Only pending attendances can be changed; current status is {current_status.value}")
        self.current_status = current_status


class InvalidStatusError(ApprovalError):
    pass


def _coerce_status(value) -> AttendanceStatus:
    if isinstance(value, AttendanceStatus):
        return value
    try:
        return AttendanceStatus(value)
    except ValueError:
        raise InvalidStatusError(f"Unknown attendance status: {value!r}") from None


def get_attendance(attendance_id: int, *, org_id: int | None = None) -> Attendance:
    """Fetch an attendance; other tenants' records are reported as not found."""
    attendance = db.session.get(Attendance, attendance_id)
    if attendance is None or (org_id is not None and attendance.session.org_id != org_id):
        raise AttendanceNotFoundError(attendance_id)
    return attendance


def _adjust_counter(session_id: int, old: AttendanceStatus | None, new: AttendanceStatus | None) -> None:
    was_counted = old is not None and old.counts_toward_attendance
    is_counted = new is not None and new.counts_toward_attendance
    if is_counted and not was_counted:
        session_service.increment_attendance_count(session_id)
    elif was_counted and not is_counted:
        session_service.decrement_attendance_count(session_id)


def _commit_or_rollback() -> None:
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def approve_attendance(
    actor,
    attendance_id: int,
    *,
    status=AttendanceStatus.PRESENT,
    notes: str | None = None,
    now: datetime | None = None,
) -> Attendance:
    """
    Approve a pending attendance as present or late.

    Raises NotPendingError, InvalidStatusError, AttendanceNotFoundError,
    PermissionDeniedError or SessionFullError.
    """
    require_capability(actor, "APPROVE_ATTENDANCE")

    new_status = _coerce_status(status)
    if new_status not in APPROVABLE_STATUSES:
        raise InvalidStatusError("Approval status must be present or late")

    attendance = get_attendance(attendance_id, org_id=actor.org_id)
    if not attendance.is_pending:
        raise NotPendingError(attendance.status)

    now = now or utcnow()
    old_status = attendance.status

    try:
        attendance.status = new_status
        attendance.approved_by_user_id = actor.user_id
        attendance.approved_at = now
        attendance.admin_notes = notes

        log_attendance_change(
            attendance, AttendanceAction.APPROVED, actor,
            old_status=old_status, new_status=new_status, notes=notes, now=now,
        )
        audit_service.log_event(
            "attendance_approved",
            actor=actor,
            subject=attendance,
            old_values={"status": old_status.value},
            new_values={"status": new_status.value, "admin_notes": notes},
        )
        _adjust_counter(attendance.session_id, old_status, new_status)
    except Exception:
        db.session.rollback()
        raise

    _commit_or_rollback()
    current_app.logger.info("Attendance %s approved as %s by user %s", attendance.id, new_status.value, actor.user_id)
    return attendance


def reject_attendance(
    actor,
    attendance_id: int,
    *,
    reason: str,
    now: datetime | None = None,
) -> Attendance:
    """Reject a pending attendance. Raises NotPendingError for any other status."""
    require_capability(actor, "APPROVE_ATTENDANCE")

    attendance = get_attendance(attendance_id, org_id=actor.org_id)
    if not attendance.is_pending:
        raise NotPendingError(attendance.status)

    now = now or utcnow()
    old_status = attendance.status

    attendance.status = AttendanceStatus.REJECTED
    attendance.rejection_reason = reason
    attendance.admin_notes = reason
    attendance.approved_by_user_id = actor.user_id
    attendance.approved_at = now

    log_attendance_change(
        attendance, AttendanceAction.REJECTED, actor,
        old_status=old_status, new_status=AttendanceStatus.REJECTED, notes=reason, now=now,
    )
    audit_service.log_event(
        "attendance_rejected",
        actor=actor,
        subject=attendance,
        old_values={"status": old_status.value},
        new_values={"status": AttendanceStatus.REJECTED.value, "rejection_reason": reason},
    )

    _commit_or_rollback()
    current_app.logger.info("Attendance %s rejected by user %s", attendance.id, actor.user_id)
    return attendance


def override_attendance(
    actor,
    attendance_id: int,
    *,
    status,
    notes: str | None = None,
    now: datetime | None = None,
) -> Attendance:
    """Force any status from any status, keeping current_count consistent."""
    require_capability(actor, "OVERRIDE_ATTENDANCE")

    new_status = _coerce_status(status)
    attendance = get_attendance(attendance_id, org_id=actor.org_id)

    now = now or utcnow()
    old_status = attendance.status

    try:
        attendance.status = new_status
        attendance.approved_by_user_id = actor.user_id
        attendance.approved_at = now
        attendance.admin_notes = notes

        log_attendance_change(
            attendance, AttendanceAction.OVERRIDE, actor,
            old_status=old_status, new_status=new_status, notes=notes, now=now,
        )
        audit_service.log_event(
            "attendance_overridden",
            actor=actor,
            subject=attendance,
            old_values={"status": old_status.value},
            new_values={"status": new_status.value, "admin_notes": notes},
        )
        _adjust_counter(attendance.session_id, old_status, new_status)
    except Exception:
        db.session.rollback()
        raise

    _commit_or_rollback()
    current_app.logger.info(
        "Attendance %s overridden %s -> %s by user %s",
        attendance.id, old_status.value, new_status.value, actor.user_id,
    )
    return attendance


def delete_attendance(actor, attendance_id: int, *, now: datetime | None = None) -> None:
    """
    Hard-delete an attendance.

    The AuditLog and AttendanceLog("deleted") rows are flushed before the
    row is removed; the log keeps original_attendance_id afterwards.
    """
    require_capability(actor, "DELETE_ATTENDANCE")

    attendance = get_attendance(attendance_id, org_id=actor.org_id)

    now = now or utcnow()
    old_status = attendance.status
    session_id = attendance.session_id

    try:
        audit_service.log_event(
            "attendance_deleted",
            actor=actor,
            subject=attendance,
            old_values=attendance.to_dict(),
            notes="Attendance record deleted by admin",
        )
        log_attendance_change(
            attendance, AttendanceAction.DELETED, actor,
            old_status=old_status, new_status=None,
            notes="Attendance record deleted by admin", now=now,
        )
        db.session.flush()

        _adjust_counter(session_id, old_status, None)

        db.session.delete(attendance)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Attendance %s deleted by user %s", attendance_id, actor.user_id)


def get_attendance_logs(attendance_id: int, *, org_id: int | None = None) -> list[AttendanceLog]:
    """
    Change history of an attendance, oldest first.

    Works after deletion: logs are matched on original_attendance_id and
    scoped to the tenant through the acting user.
    """
    query = db.session.query(AttendanceLog).filter(AttendanceLog.original_attendance_id == attendance_id)

    if org_id is not None:
        query = query.join(User, User.id == AttendanceLog.user_id).filter(User.org_id == org_id)

    logs = query.order_by(AttendanceLog.created_at, AttendanceLog.id).all()
    if not logs:
        raise AttendanceNotFoundError(attendance_id)
    return logs

