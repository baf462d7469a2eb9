# Overview: Service-layer operations for GPS trails; append location pings during a session.

"""
Location Logging

Periodic GPS pings sent by the client while a session runs. Independent of
attendance verification: a ping outside the geofence is recorded with
within_radius=False and nothing else happens.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import LocationLog
from ..time_utils import utcnow
from . import geo_service
from .session_service import find_session


class LocationValidationError(ValueError):
    pass


def log_location(
    user_id: int,
    session_id: int,
    *,
    latitude: float,
    longitude: float,
    accuracy: float | None = None,
    altitude: float | None = None,
    heading: float | None = None,
    speed: float | None = None,
    recorded_at: datetime | None = None,
    org_id: int | None = None,
    commit: bool = True,
) -> LocationLog:
    """
    Record one GPS ping against the session venue.

    Attendance verification passes commit=False so the trail row lands in
    the same transaction as the attendance record.
    """
    if not geo_service.validate_coordinates(latitude, longitude):
        raise LocationValidationError("Invalid coordinates")
    if accuracy is not None and accuracy < 0:
        raise LocationValidationError("accuracy must be non-negative")

    session = find_session(session_id, org_id=org_id)

    check = geo_service.validate_location(
        latitude, longitude, session.location_lat, session.location_lng, session.radius_meters
    )

    entry = LocationLog(
        user_id=user_id,
        session_id=session.id,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        altitude=altitude,
        heading=heading,
        speed=speed,
        distance_from_venue=round(check.distance_meters, 2),
        within_radius=check.valid,
        recorded_at=recorded_at or utcnow(),
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry


def get_location_trail(user_id: int, session_id: int) -> list[LocationLog]:
    return (
        db.session.query(LocationLog)
        .filter(LocationLog.user_id == user_id, LocationLog.session_id == session_id)
        .order_by(LocationLog.recorded_at, LocationLog.id)
        .all()
    )
