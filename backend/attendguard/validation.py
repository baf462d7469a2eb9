from __future__ import annotations

import math
from datetime import date, datetime, time
from typing import Any

from .time_utils import parse_iso_datetime


DESCRIPTOR_LENGTH = 128
DESCRIPTOR_MIN = -1.0
DESCRIPTOR_MAX = 1.0

MAX_NOTES_LENGTH = 500
MAX_PLATFORM_LENGTH = 64
MAX_IMAGE_REF_LENGTH = 512


class ValidationError(ValueError):
    """400-level input problem."""


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer parsing: ints and plain digit strings only.

    Booleans, floats, decimals and scientific notation are rejected.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_float(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(value):
        raise ValidationError(f"{field} must be a finite number")
    return float(value)


def optional_str(payload: dict, field: str, *, max_length: int) -> str | None:
    value = payload.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None


def required_str(payload: dict, field: str, *, max_length: int) -> str:
    value = optional_str(payload, field, max_length=max_length)
    if value is None:
        raise ValidationError(f"{field} is required")
    return value


def optional_bool(payload: dict, field: str, default: bool = False) -> bool:
    value = payload.get(field, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


def parse_descriptor(value: Any) -> list[float]:
    """A face descriptor on the wire: exactly 128 numbers in [-1, 1]."""
    if not isinstance(value, list):
        raise ValidationError("face_descriptor must be an array of numbers")
    if len(value) != DESCRIPTOR_LENGTH:
        raise ValidationError(f"face_descriptor must contain exactly {DESCRIPTOR_LENGTH} values")

    values = []
    for item in value:
        number = coerce_float(item, "face_descriptor")
        if not DESCRIPTOR_MIN <= number <= DESCRIPTOR_MAX:
            raise ValidationError("face_descriptor values must be between -1 and 1")
        values.append(number)
    return values


def parse_location(value: Any) -> dict:
    """{"lat": .., "lng": .., "accuracy": ..?} with range-checked coordinates."""
    if not isinstance(value, dict):
        raise ValidationError("location must be an object with lat and lng")
    if "lat" not in value or "lng" not in value:
        raise ValidationError("location.lat and location.lng are required")

    lat = coerce_float(value["lat"], "location.lat")
    lng = coerce_float(value["lng"], "location.lng")
    if not -90 <= lat <= 90:
        raise ValidationError("location.lat must be between -90 and 90")
    if not -180 <= lng <= 180:
        raise ValidationError("location.lng must be between -180 and 180")

    accuracy = None
    if value.get("accuracy") is not None:
        accuracy = coerce_float(value["accuracy"], "location.accuracy")
        if accuracy < 0:
            raise ValidationError("location.accuracy must be non-negative")

    return {"lat": lat, "lng": lng, "accuracy": accuracy}


def parse_verify_payload(payload: Any) -> dict:
    """Validate and normalize a POST /api/attendance/verify body."""
    payload = require_json_object(payload)

    if payload.get("session_id") is None:
        raise ValidationError("session_id is required")

    qr_code = optional_str(payload, "qr_code", max_length=128)
    descriptor = None
    if payload.get("face_descriptor") is not None:
        descriptor = parse_descriptor(payload["face_descriptor"])

    if qr_code is None and descriptor is None:
        raise ValidationError("qr_code or face_descriptor is required")

    location = None
    if payload.get("location") is not None:
        location = parse_location(payload["location"])

    credential_id = optional_str(payload, "webauthn_credential_id", max_length=512)

    return {
        "session_id": coerce_int(payload["session_id"], "session_id"),
        "qr_code": qr_code,
        "face_descriptor": descriptor,
        "location": location,
        "webauthn_used": credential_id is not None,
        "platform": optional_str(payload, "platform", max_length=MAX_PLATFORM_LENGTH),
    }


def parse_optional_int_arg(args, field: str) -> int | None:
    value = args.get(field)
    if value is None or value == "":
        return None
    return coerce_int(value, field)


def parse_optional_datetime_arg(args, field: str, *, end_of_day: bool = False) -> datetime | None:
    """
    Parse an ISO-8601 query argument.

    A date-only value ("2026-10-19") means midnight, or the last instant of
    that day when `end_of_day` is set, so an inclusive end bound covers it.
    """
    value = args.get(field)
    if not value:
        return None
    try:
        if end_of_day and len(value.strip()) == 10:
            return datetime.combine(date.fromisoformat(value.strip()), time.max)
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
