# Overview: Service-layer operations for attendance verification; turns client evidence into a decided record.

"""
Attendance Decision Engine

WHY: Client signals (scanned code, face descriptor, coordinates) are
untrusted. This pipeline checks each one, records every piece of evidence
and picks the initial status so approvers and auditors can rely on the row.

PIPELINE (verify_attendance):
1. Token gate      - QR code must be active, unexpired and for this session.
                     Without a code the session is looked up directly
                     (face-only re-entry).
2. Duplicate gate  - one attendance per (user, session); a second attempt
                     is a fraud signal.
3. Biometric gate  - a supplied descriptor must match; a mismatch aborts.
4. Geofence check  - advisory only: recorded, flagged and appended to the
                     GPS trail, never aborts.
5. Method tag      - ordered join of exercised factors ("qr_face_gps").
6. Status          - pending, or present when the actor may self-approve.
7. Persist         - Attendance + AttendanceLog + AuditLog, counter bump for
                     counted statuses.

TRANSACTIONS: Steps 2-7 share one transaction. Fraud signals raised by a
rejection are written after the rollback so they survive it. The unique
(user_id, session_id) constraint is the final arbiter for concurrent
submissions; its IntegrityError is reported as a duplicate.

Nothing here is retried automatically.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Attendance,
    AttendanceLog,
    AttendanceStatus,
    AttendanceAction,
    EntryType,
    Session,
    VerificationFactor,
)
from ..time_utils import utcnow, to_utc_z
from . import audit_service, biometric_service, geo_service, location_service, qr_service, session_service
from .session_service import SessionNotFoundError


STATUS_MESSAGES = {
    AttendanceStatus.PRESENT: "Attendance marked successfully!",
    AttendanceStatus.LATE: "Attendance marked as late.",
    AttendanceStatus.PENDING: "Attendance submitted and pending admin approval.",
    AttendanceStatus.REJECTED: "Attendance rejected. Please contact your instructor.",
}


class AttendanceError(ValueError):
    """Base class for verification failures surfaced to the caller."""


class InvalidQRCodeError(AttendanceError):
    pass


class MissingEvidenceError(AttendanceError):
    pass


class DuplicateAttendanceError(AttendanceError):
    def __init__(self, existing_attendance_id: int | None = None):
        super().__init__("Attendance already marked for this session")
        self.existing_attendance_id = existing_attendance_id


class FaceVerificationFailedError(AttendanceError):
    def __init__(self, score: float, threshold: float):
        super().__init__("Face verification failed")
        self.score = score
        self.threshold = threshold


@dataclass
class AttendanceResult:
    success: bool
    attendance: Attendance | None
    status: AttendanceStatus
    verification_method: str
    face_match_score: float | None
    gps_valid: bool
    distance_from_venue: float | None
    message: str

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "attendance_id": self.attendance.id if self.attendance is not None else None,
            "status": self.status.value,
            "verification_method": self.verification_method,
            "face_match_score": round(self.face_match_score, 4) if self.face_match_score is not None else None,
            "gps_valid": self.gps_valid,
            "distance_from_venue": self.distance_from_venue,
            "message": self.message,
        }


# ==================================================
# Pure helpers
# ==================================================

def determine_status(session: Session, verified_at: datetime) -> AttendanceStatus:
    """
    Time-based classification against the session start.

    verified_at <= start -> present; <= start + late threshold -> late;
    anything later -> pending (left for an approver).
    """
    if verified_at <= session.start_time:
        return AttendanceStatus.PRESENT
    threshold = timedelta(minutes=session.late_threshold_minutes or 0)
    if verified_at <= session.start_time + threshold:
        return AttendanceStatus.LATE
    return AttendanceStatus.PENDING


def verification_method_tag(factors: set[VerificationFactor]) -> str:
    return "_".join(f.value for f in VerificationFactor if f in factors)


def log_attendance_change(
    attendance: Attendance,
    action: AttendanceAction,
    actor,
    *,
    old_status: AttendanceStatus | None,
    new_status: AttendanceStatus | None,
    notes: str | None = None,
    now: datetime | None = None,
) -> AttendanceLog:
    """Append an AttendanceLog row (not committed)."""
    now = now or utcnow()
    entry = AttendanceLog(
        attendance_id=attendance.id,
        original_attendance_id=attendance.id,
        user_id=actor.user_id,
        action=action,
        old_status=old_status,
        new_status=new_status,
        notes=notes,
        log_metadata={
            "ip": actor.ip_address,
            "user_agent": actor.user_agent,
            "timestamp": to_utc_z(now),
        },
        created_at=now,
    )
    db.session.add(entry)
    return entry


def find_existing_attendance(user_id: int, session_id: int) -> Attendance | None:
    return db.session.query(Attendance).filter_by(user_id=user_id, session_id=session_id).first()


# ==================================================
# Verification
# ==================================================

def _log_location_spoofing(actor, session_id: int, details: dict, *, commit: bool = False):
    audit_service.log_fraud_signal(
        "location_spoofing",
        actor=actor,
        subject=("Session", session_id),
        new_values=details,
        notes="Location validation failed - possible location spoofing",
        commit=commit,
    )


def _reject_duplicate(actor, session_id: int, existing_id: int | None, *, spoofing: dict | None = None):
    db.session.rollback()

    # Signals raised earlier in the rolled-back transaction are re-recorded
    if spoofing is not None:
        _log_location_spoofing(actor, session_id, spoofing)

    if existing_id is None:
        existing = find_existing_attendance(actor.user_id, session_id)
        existing_id = existing.id if existing is not None else None

    audit_service.log_fraud_signal(
        "duplicate_attendance",
        actor=actor,
        subject=("Attendance", existing_id) if existing_id is not None else ("Session", session_id),
        new_values={
            "user_id": actor.user_id,
            "session_id": session_id,
            "existing_attendance_id": existing_id,
        },
        notes="Duplicate attendance attempt detected",
        commit=True,
    )
    raise DuplicateAttendanceError(existing_id)


def _resolve_session(actor, session_id: int, qr_code: str | None, now: datetime) -> tuple[Session, int | None]:
    if qr_code is None:
        return session_service.find_session(session_id, org_id=actor.org_id), None

    validation = qr_service.validate_token(qr_code, session_id, now=now)
    if not validation.valid:
        current_app.logger.info("Rejected QR code for session %s from user %s", session_id, actor.user_id)
        raise InvalidQRCodeError(validation.message)

    session = validation.session
    if session.org_id != actor.org_id:
        raise SessionNotFoundError(session_id)
    return session, validation.token_id


def verify_attendance(
    actor,
    *,
    session_id: int,
    qr_code: str | None = None,
    face_descriptor=None,
    location: dict | None = None,
    webauthn_used: bool = False,
    platform: str | None = None,
    now: datetime | None = None,
) -> AttendanceResult:
    """
    Run the verification pipeline for the acting user.

    `location` is {"lat": float, "lng": float, "accuracy": float | None}.

    Raises InvalidQRCodeError, SessionNotFoundError, DuplicateAttendanceError,
    FaceVerificationFailedError, MissingEvidenceError or SessionFullError.
    """
    now = now or utcnow()

    if qr_code is None and face_descriptor is None:
        raise MissingEvidenceError("A QR code or face descriptor is required")

    # 1. Token gate
    session, qr_token_id = _resolve_session(actor, session_id, qr_code, now)
    session_id = session.id

    # 2. Duplicate gate
    existing = find_existing_attendance(actor.user_id, session_id)
    if existing is not None:
        _reject_duplicate(actor, session_id, existing.id)

    factors: set[VerificationFactor] = set()
    if qr_code is not None:
        factors.add(VerificationFactor.QR)

    # 3. Biometric gate
    face_match = False
    face_score = None
    if face_descriptor is not None:
        factors.add(VerificationFactor.FACE)
        face_result = biometric_service.verify_face(actor.user_id, face_descriptor, now=now)
        if not face_result.match:
            db.session.rollback()
            audit_service.log_fraud_signal(
                "face_mismatch",
                actor=actor,
                subject=("Session", session_id),
                new_values={
                    "user_id": actor.user_id,
                    "session_id": session_id,
                    "face_match_score": round(face_result.score, 4),
                    "threshold": face_result.threshold,
                },
                notes="Face verification failed - possible impersonation attempt",
                commit=True,
            )
            raise FaceVerificationFailedError(face_result.score, face_result.threshold)
        face_match = True
        face_score = face_result.score

    spoofing = None
    try:
        # 4. Geofence check (advisory)
        gps_valid = False
        distance = None
        location_lat = location_lng = None
        if location is not None:
            factors.add(VerificationFactor.GPS)
            location_lat = location["lat"]
            location_lng = location["lng"]
            check = geo_service.validate_location(
                location_lat, location_lng, session.location_lat, session.location_lng, session.radius_meters
            )
            gps_valid = check.valid
            distance = round(check.distance_meters, 2)
            if not gps_valid:
                spoofing = {
                    "user_id": actor.user_id,
                    "session_id": session_id,
                    "distance_from_venue": distance,
                    "allowed_radius": session.radius_meters,
                    "accuracy": location.get("accuracy"),
                }
                _log_location_spoofing(actor, session_id, spoofing)

            location_service.log_location(
                actor.user_id,
                session_id,
                latitude=location_lat,
                longitude=location_lng,
                accuracy=location.get("accuracy"),
                recorded_at=now,
                org_id=actor.org_id,
                commit=False,
            )

        if webauthn_used:
            factors.add(VerificationFactor.WEBAUTHN)

        # 5. Method tag
        method = verification_method_tag(factors)

        # 6. Status
        status = AttendanceStatus.PRESENT if actor.is_admin else AttendanceStatus.PENDING

        # 7. Persist
        attendance = Attendance(
            user_id=actor.user_id,
            session_id=session_id,
            qr_token_id=qr_token_id,
            verified_at=now,
            face_match_score=face_score,
            face_match=face_match,
            gps_valid=gps_valid,
            location_lat=location_lat,
            location_lng=location_lng,
            distance_from_venue=distance,
            ip_address=actor.ip_address,
            device_info={"user_agent": actor.user_agent, "platform": platform or "unknown"},
            webauthn_used=bool(webauthn_used),
            verification_method=method,
            status=status,
            entry_type=EntryType.ENTRY,
            created_at=now,
            updated_at=now,
        )
        db.session.add(attendance)
        db.session.flush()

        log_attendance_change(
            attendance,
            AttendanceAction.CREATED,
            actor,
            old_status=None,
            new_status=status,
            notes=f"Attendance marked via {method}",
            now=now,
        )
        audit_service.log_event(
            "attendance_marked",
            actor=actor,
            subject=attendance,
            new_values={
                "user_id": actor.user_id,
                "session_id": session_id,
                "status": status.value,
                "verification_method": method,
            },
            notes="Attendance marked successfully",
        )

        if status.counts_toward_attendance:
            session_service.increment_attendance_count(session_id)

        db.session.commit()
    except IntegrityError:
        # Lost the race against a concurrent submission
        _reject_duplicate(actor, session_id, None, spoofing=spoofing)
    except Exception:
        db.session.rollback()
        if spoofing is not None:
            _log_location_spoofing(actor, session_id, spoofing, commit=True)
        raise

    current_app.logger.info(
        "Attendance %s recorded for user %s in session %s (%s, %s)",
        attendance.id,
        actor.user_id,
        session_id,
        status.value,
        method,
    )

    return AttendanceResult(
        success=True,
        attendance=attendance,
        status=status,
        verification_method=method,
        face_match_score=face_score,
        gps_valid=gps_valid,
        distance_from_venue=distance,
        message=STATUS_MESSAGES.get(status, "Attendance processed."),
    )


# ==================================================
# Read paths
# ==================================================

def get_user_history(
    user_id: int,
    *,
    session_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    org_id: int | None = None,
) -> list[Attendance]:
    query = db.session.query(Attendance).filter(Attendance.user_id == user_id)

    if org_id is not None:
        query = query.join(Session, Session.id == Attendance.session_id).filter(Session.org_id == org_id)
    if session_id is not None:
        query = query.filter(Attendance.session_id == session_id)
    if start_date is not None:
        query = query.filter(Attendance.verified_at >= start_date)
    if end_date is not None:
        query = query.filter(Attendance.verified_at <= end_date)

    return query.order_by(Attendance.verified_at.desc(), Attendance.id.desc()).all()


def get_session_attendance(
    session_id: int,
    *,
    status: AttendanceStatus | None = None,
    org_id: int | None = None,
) -> list[Attendance]:
    session_service.find_session(session_id, org_id=org_id)

    query = db.session.query(Attendance).filter(Attendance.session_id == session_id)
    if status is not None:
        query = query.filter(Attendance.status == status)

    return query.order_by(Attendance.verified_at.desc(), Attendance.id.desc()).all()


def get_pending_attendance(org_id: int, *, session_id: int | None = None) -> list[Attendance]:
    query = (
        db.session.query(Attendance)
        .join(Session, Session.id == Attendance.session_id)
        .filter(Session.org_id == org_id, Attendance.status == AttendanceStatus.PENDING)
    )
    if session_id is not None:
        query = query.filter(Attendance.session_id == session_id)

    return query.order_by(Attendance.verified_at.asc(), Attendance.id.asc()).all()
