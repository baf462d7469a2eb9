from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class LocationLog(db.Model):
    """
    GPS trail entry for a user during a session.

    Written independently of attendance verification (periodic pings from
    the client while a session runs). Append-only.
    """
    __tablename__ = "location_logs"
    __table_args__ = (
        db.Index("ix_location_logs_user_session", "user_id", "session_id", "recorded_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    accuracy = db.Column(db.Float, nullable=True)   # meters
    altitude = db.Column(db.Float, nullable=True)
    heading = db.Column(db.Float, nullable=True)
    speed = db.Column(db.Float, nullable=True)

    distance_from_venue = db.Column(db.Float, nullable=False)
    within_radius = db.Column(db.Boolean, nullable=False)

    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")
    session = db.relationship(
        "Session", backref=db.backref("location_logs", lazy=True, cascade="all, delete-orphan")
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "altitude": self.altitude,
            "heading": self.heading,
            "speed": self.speed,
            "distance_from_venue": self.distance_from_venue,
            "within_radius": self.within_radius,
            "recorded_at": to_utc_z(self.recorded_at),
            "created_at": to_utc_z(self.created_at),
        }
