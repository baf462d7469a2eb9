# Overview: Pure geofence helpers; great-circle distance and radius checks.

"""
GPS Geofence Validation

Distances use the haversine formula on a spherical Earth (radius 6,371 km),
which is accurate to well under a meter at venue scale.

Pure functions: no database, no config, no bounds checking inside
validate_location. Callers reject degenerate input with
validate_coordinates() first.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


EARTH_RADIUS_METERS = 6371000

HIGH_ACCURACY_METERS = 10
MEDIUM_ACCURACY_METERS = 50


@dataclass(frozen=True)
class LocationCheck:
    valid: bool
    distance_meters: float
    allowed_radius: float

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "distance_meters": round(self.distance_meters, 2),
            "allowed_radius": self.allowed_radius,
        }


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def validate_location(
    user_lat: float,
    user_lng: float,
    venue_lat: float,
    venue_lng: float,
    radius_meters: float,
) -> LocationCheck:
    """A point exactly on the radius counts as inside."""
    distance = haversine_distance(user_lat, user_lng, venue_lat, venue_lng)
    return LocationCheck(
        valid=distance <= radius_meters,
        distance_meters=distance,
        allowed_radius=radius_meters,
    )


def validate_coordinates(lat, lng) -> bool:
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def accuracy_level(accuracy_meters: float) -> str:
    """Bucket a GPS accuracy reading: high (<= 10 m), medium (<= 50 m), low."""
    if accuracy_meters <= HIGH_ACCURACY_METERS:
        return "high"
    if accuracy_meters <= MEDIUM_ACCURACY_METERS:
        return "medium"
    return "low"
