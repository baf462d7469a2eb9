from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import AttendanceStatus, AttendanceAction, EntryType, enum_column

class Attendance(db.Model):
    """
    One user's verified presence at one session.

    WHY: The record keeps every piece of evidence gathered during
    verification (QR token, face score, GPS distance, device) so approvers
    and auditors can judge it after the fact.

    INVARIANTS:
    - unique (user_id, session_id): enforced by the database, the loser of a
      concurrent race gets an IntegrityError
    - status is written once by attendance_service; afterwards only
      approval_service changes it
    """
    __tablename__ = "attendances"
    __table_args__ = (
        db.UniqueConstraint("user_id", "session_id", name="uq_attendances_user_session"),
        db.Index("ix_attendances_session_status", "session_id", "status"),
        db.Index("ix_attendances_user_verified", "user_id", "verified_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    qr_token_id = db.Column(db.Integer, db.ForeignKey("qr_tokens.id"), nullable=True)

    verified_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # Evidence
    face_match_score = db.Column(db.Float, nullable=True)
    face_match = db.Column(db.Boolean, nullable=False, default=False)
    gps_valid = db.Column(db.Boolean, nullable=False, default=False)
    location_lat = db.Column(db.Float, nullable=True)
    location_lng = db.Column(db.Float, nullable=True)
    distance_from_venue = db.Column(db.Float, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    device_info = db.Column(db.JSON, nullable=True)  # {"user_agent": ..., "platform": ...}
    webauthn_used = db.Column(db.Boolean, nullable=False, default=False)
    verification_method = db.Column(db.String(64), nullable=False)  # e.g. "qr_face_gps"

    status = db.Column(
        enum_column(AttendanceStatus, "attendance_status"),
        nullable=False,
        default=AttendanceStatus.PENDING,
        index=True,
    )
    entry_type = db.Column(
        enum_column(EntryType, "attendance_entry_type"),
        nullable=False,
        default=EntryType.ENTRY,
    )

    # Approval workflow
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("attendances", lazy=True))
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])
    session = db.relationship("Session", back_populates="attendances")
    qr_token = db.relationship("QRToken")
    # No delete cascade: the ORM nulls attendance_id so the "deleted" log survives
    logs = db.relationship(
        "AttendanceLog",
        back_populates="attendance",
        order_by="AttendanceLog.id",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Attendance id={self.id} user_id={self.user_id} session_id={self.session_id} status={self.status}>"

    @property
    def is_pending(self) -> bool:
        return self.status == AttendanceStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "qr_token_id": self.qr_token_id,
            "verified_at": to_utc_z(self.verified_at),
            "face_match_score": self.face_match_score,
            "face_match": self.face_match,
            "gps_valid": self.gps_valid,
            "location_lat": self.location_lat,
            "location_lng": self.location_lng,
            "distance_from_venue": self.distance_from_venue,
            "ip_address": self.ip_address,
            "device_info": self.device_info,
            "webauthn_used": self.webauthn_used,
            "verification_method": self.verification_method,
            "status": self.status.value if self.status else None,
            "entry_type": self.entry_type.value if self.entry_type else None,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "admin_notes": self.admin_notes,
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AttendanceLog(db.Model):
    """
    Per-record history of attendance status changes.

    IMMUTABLE: Append-only. The "deleted" entry is written before its
    attendance row is removed; attendance_id is then nulled while
    original_attendance_id keeps the reference.
    """
    __tablename__ = "attendance_logs"
    __table_args__ = (
        db.Index("ix_attendance_logs_original", "original_attendance_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    attendance_id = db.Column(
        db.Integer, db.ForeignKey("attendances.id", ondelete="SET NULL"), nullable=True, index=True
    )
    original_attendance_id = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # Actor

    action = db.Column(enum_column(AttendanceAction, "attendance_log_action"), nullable=False)
    old_status = db.Column(enum_column(AttendanceStatus, "attendance_log_old_status"), nullable=True)
    new_status = db.Column(enum_column(AttendanceStatus, "attendance_log_new_status"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    # "metadata" is reserved on declarative models
    log_metadata = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    attendance = db.relationship("Attendance", back_populates="logs")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "attendance_id": self.original_attendance_id,
            "user_id": self.user_id,
            "action": self.action.value if self.action else None,
            "old_status": self.old_status.value if self.old_status else None,
            "new_status": self.new_status.value if self.new_status else None,
            "notes": self.notes,
            "metadata": self.log_metadata,
            "created_at": to_utc_z(self.created_at),
        }
