from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import SessionStatus, RecurrenceType, enum_column

class Session(db.Model):
    """
    A scheduled event users check into.

    WHY: The session carries everything the verification pipeline checks
    against: the time window, the geofence and the late threshold.

    INVARIANTS:
    - end_time > start_time
    - 0 <= current_count <= capacity (when capacity is set)
    - current_count only moves through session_service's atomic
      increment/decrement, never read-modify-write

    LIFECYCLE: draft/scheduled -> active -> completed, or cancelled.
    Status-by-time transitions are run by an external periodic job.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.CheckConstraint("end_time > start_time", name="ck_sessions_time_window"),
        db.CheckConstraint("current_count >= 0", name="ck_sessions_count_non_negative"),
        db.CheckConstraint(
            "capacity IS NULL OR current_count <= capacity",
            name="ck_sessions_count_within_capacity",
        ),
        db.Index("ix_sessions_org_start", "org_id", "start_time"),
        db.Index("ix_sessions_status_start", "status", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)

    # Geofence
    location_lat = db.Column(db.Float, nullable=False)
    location_lng = db.Column(db.Float, nullable=False)
    location_name = db.Column(db.String(255), nullable=True)
    radius_meters = db.Column(db.Integer, nullable=False, default=100)

    capacity = db.Column(db.Integer, nullable=True)
    current_count = db.Column(db.Integer, nullable=False, default=0)
    late_threshold_minutes = db.Column(db.Integer, nullable=False, default=15)
    allow_entry_exit = db.Column(db.Boolean, nullable=False, default=False)

    # Recurrence metadata only; expansion is handled by the scheduler
    recurrence_type = db.Column(
        enum_column(RecurrenceType, "session_recurrence_type"),
        nullable=False,
        default=RecurrenceType.ONE_TIME,
    )
    recurrence_end_date = db.Column(db.Date, nullable=True)
    parent_session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=True, index=True)

    status = db.Column(
        enum_column(SessionStatus, "session_status"),
        nullable=False,
        default=SessionStatus.DRAFT,
        index=True,
    )

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("sessions", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    parent_session = db.relationship("Session", remote_side=[id], backref=db.backref("child_sessions", lazy=True))
    qr_tokens = db.relationship(
        "QRToken", back_populates="session", cascade="all, delete-orphan", lazy=True
    )
    attendances = db.relationship(
        "Attendance", back_populates="session", cascade="all, delete-orphan", lazy=True
    )

    def __repr__(self) -> str:
        return f"<Session id={self.id} title={self.title!r} status={self.status}>"

    @property
    def late_threshold_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.late_threshold_minutes or 0)

    @property
    def is_full(self) -> bool:
        if not self.capacity:
            return False
        return self.current_count >= self.capacity

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_type != RecurrenceType.ONE_TIME

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "title": self.title,
            "description": self.description,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "location_lat": self.location_lat,
            "location_lng": self.location_lng,
            "location_name": self.location_name,
            "radius_meters": self.radius_meters,
            "capacity": self.capacity,
            "current_count": self.current_count,
            "late_threshold_minutes": self.late_threshold_minutes,
            "allow_entry_exit": self.allow_entry_exit,
            "recurrence_type": self.recurrence_type.value if self.recurrence_type else None,
            "recurrence_end_date": self.recurrence_end_date.isoformat() if self.recurrence_end_date else None,
            "parent_session_id": self.parent_session_id,
            "status": self.status.value if self.status else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class QRToken(db.Model):
    """
    Short-lived code presented to clients for a session.

    WHY: A rotating code proves physical presence at the moment of scanning
    and limits replay of photographed codes to one rotation window.

    IMMUTABLE: Only is_active ever changes (on rotation). Old tokens are kept.
    """
    __tablename__ = "qr_tokens"
    __table_args__ = (
        db.Index("ix_qr_tokens_session_active", "session_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code = db.Column(db.String(128), nullable=False, unique=True, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    rotation_interval_seconds = db.Column(db.Integer, nullable=False, default=300)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    session = db.relationship("Session", back_populates="qr_tokens")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "code": self.code,
            "expires_at": to_utc_z(self.expires_at),
            "is_active": self.is_active,
            "rotation_interval_seconds": self.rotation_interval_seconds,
            "created_at": to_utc_z(self.created_at),
        }
