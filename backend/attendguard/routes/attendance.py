# Overview: Flask API routes for attendance verification, face enrollment and history.

"""
Attendance Routes

SECURITY:
- Verification and GPS trail entries require MARK_ATTENDANCE.
- Face enrollment requires ENROLL_FACE; descriptors never appear in responses.
- Own history requires VIEW_OWN_ATTENDANCE; anyone else's history and the
  per-session roster require VIEW_SESSION_ATTENDANCE.
- Every lookup is scoped to the caller's organization; other tenants'
  sessions are reported as not found.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..models import AttendanceStatus
from ..services import attendance_service, biometric_service, location_service, permission_service
from ..services.attendance_service import (
    InvalidQRCodeError,
    MissingEvidenceError,
    DuplicateAttendanceError,
    FaceVerificationFailedError,
)
from ..services.biometric_service import (
    InvalidDescriptorError,
    ConsentRequiredError,
    AlreadyEnrolledError,
)
from ..services.location_service import LocationValidationError
from ..services.permission_service import PermissionDeniedError
from ..services.session_service import SessionNotFoundError, SessionFullError
from ..validation import (
    ValidationError,
    MAX_IMAGE_REF_LENGTH,
    require_json_object,
    coerce_int,
    coerce_float,
    optional_bool,
    optional_str,
    parse_descriptor,
    parse_verify_payload,
    parse_optional_int_arg,
    parse_optional_datetime_arg,
)


attendance_bp = Blueprint("attendance", __name__, url_prefix="/api/attendance")


def unexpected_failure(message: str, error: Exception):
    """500 response; the underlying reason is only exposed when configured."""
    body = {"error": message}
    if current_app.config.get("EXPOSE_ERROR_DETAILS"):
        body["details"] = str(error)
    return jsonify(body), 500


# ==================================================
# Verification
# ==================================================

@attendance_bp.post("/verify")
@require_auth
@require_permission("MARK_ATTENDANCE")
def verify_route():
    """
    Mark attendance for the current user.

    Body: session_id, qr_code?, face_descriptor?, location? {lat, lng,
    accuracy?}, webauthn_credential_id?, platform?
    """
    try:
        payload = parse_verify_payload(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        result = attendance_service.verify_attendance(g.actor, **payload)
        return jsonify(result.to_dict()), 201

    except (InvalidQRCodeError, MissingEvidenceError) as e:
        return jsonify({"error": str(e)}), 400
    except FaceVerificationFailedError as e:
        return jsonify({
            "error": str(e),
            "face_match_score": round(e.score, 4),
            "threshold": e.threshold,
        }), 400
    except DuplicateAttendanceError as e:
        return jsonify({
            "error": str(e),
            "existing_attendance_id": e.existing_attendance_id,
        }), 409
    except SessionFullError as e:
        return jsonify({"error": str(e)}), 409
    except SessionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PermissionDeniedError as e:
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    except Exception as e:
        current_app.logger.exception("Attendance verification failed")
        return unexpected_failure("Attendance verification failed", e)


# ==================================================
# Face enrollment
# ==================================================

@attendance_bp.post("/enroll-face")
@require_auth
@require_permission("ENROLL_FACE")
def enroll_face_route():
    """
    Enroll the current user's face.

    Body: face_descriptor (128 numbers in [-1, 1]), consent (bool), image_ref?
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        if data.get("face_descriptor") is None:
            return jsonify({"error": "face_descriptor is required"}), 400
        descriptor = parse_descriptor(data["face_descriptor"])
        consent = optional_bool(data, "consent")
        image_ref = optional_str(data, "image_ref", max_length=MAX_IMAGE_REF_LENGTH)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        enrollment = biometric_service.enroll_face(
            g.current_user.id,
            descriptor,
            consent_given=consent,
            image_ref=image_ref,
            actor=g.actor,
        )
        return jsonify({
            "enrollment_id": enrollment.id,
            "enrollment": enrollment.to_dict(),
            "message": "Face enrolled successfully",
        }), 201

    except (InvalidDescriptorError, ConsentRequiredError) as e:
        return jsonify({"error": str(e)}), 400
    except AlreadyEnrolledError as e:
        return jsonify({"error": str(e)}), 409
    except Exception as e:
        current_app.logger.exception("Face enrollment failed")
        return unexpected_failure("Face enrollment failed", e)


@attendance_bp.post("/re-enroll-face")
@require_auth
@require_permission("ENROLL_FACE")
def re_enroll_face_route():
    """Replace the current user's enrollment. Body: face_descriptor, image_ref?"""
    try:
        data = require_json_object(request.get_json(silent=True))
        if data.get("face_descriptor") is None:
            return jsonify({"error": "face_descriptor is required"}), 400
        descriptor = parse_descriptor(data["face_descriptor"])
        image_ref = optional_str(data, "image_ref", max_length=MAX_IMAGE_REF_LENGTH)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        enrollment = biometric_service.re_enroll_face(
            g.current_user.id,
            descriptor,
            image_ref=image_ref,
            actor=g.actor,
        )
        return jsonify({
            "enrollment_id": enrollment.id,
            "enrollment": enrollment.to_dict(),
            "message": "Face re-enrolled successfully",
        }), 200

    except (InvalidDescriptorError, ConsentRequiredError) as e:
        return jsonify({"error": str(e)}), 400
    except AlreadyEnrolledError as e:
        return jsonify({"error": str(e)}), 409
    except Exception as e:
        current_app.logger.exception("Face re-enrollment failed")
        return unexpected_failure("Face re-enrollment failed", e)


# ==================================================
# GPS trail
# ==================================================

@attendance_bp.post("/location")
@require_auth
@require_permission("MARK_ATTENDANCE")
def location_route():
    """
    Record one GPS trail point for the current user.

    Body: session_id, latitude, longitude, accuracy?, altitude?, heading?, speed?
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        for field in ("session_id", "latitude", "longitude"):
            if data.get(field) is None:
                return jsonify({"error": f"{field} is required"}), 400

        optional_numbers = {}
        for field in ("accuracy", "altitude", "heading", "speed"):
            if data.get(field) is not None:
                optional_numbers[field] = coerce_float(data[field], field)

        session_id = coerce_int(data["session_id"], "session_id")
        latitude = coerce_float(data["latitude"], "latitude")
        longitude = coerce_float(data["longitude"], "longitude")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        entry = location_service.log_location(
            g.current_user.id,
            session_id,
            latitude=latitude,
            longitude=longitude,
            org_id=g.org_id,
            **optional_numbers,
        )
        return jsonify({"location": entry.to_dict()}), 201

    except LocationValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SessionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        current_app.logger.exception("Failed to record location")
        return unexpected_failure("Failed to record location", e)


# ==================================================
# Read paths
# ==================================================

@attendance_bp.get("/history")
@require_auth
@require_permission("VIEW_OWN_ATTENDANCE")
def history_route():
    """
    Attendance history.

    Query: user_id? (defaults to the caller), session_id?, start_date?, end_date?
    """
    try:
        user_id = parse_optional_int_arg(request.args, "user_id")
        session_id = parse_optional_int_arg(request.args, "session_id")
        start_date = parse_optional_datetime_arg(request.args, "start_date")
        end_date = parse_optional_datetime_arg(request.args, "end_date", end_of_day=True)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    if user_id is None:
        user_id = g.current_user.id

    if user_id != g.current_user.id:
        try:
            permission_service.require_capability(g.actor, "VIEW_SESSION_ATTENDANCE", resource=request.path)
        except PermissionDeniedError as e:
            return jsonify({
                "error": "Permission denied",
                "required_permission": "VIEW_SESSION_ATTENDANCE",
                "message": str(e),
            }), 403

    records = attendance_service.get_user_history(
        user_id,
        session_id=session_id,
        start_date=start_date,
        end_date=end_date,
        org_id=g.org_id,
    )
    return jsonify({
        "user_id": user_id,
        "attendances": [record.to_dict() for record in records],
        "count": len(records),
    }), 200


@attendance_bp.get("/session/<int:session_id>")
@require_auth
@require_permission("VIEW_SESSION_ATTENDANCE")
def session_attendance_route(session_id: int):
    """Every attendance for one session. Query: status?"""
    status = None
    raw_status = request.args.get("status")
    if raw_status:
        try:
            status = AttendanceStatus(raw_status)
        except ValueError:
            return jsonify({"error": f"Unknown attendance status: {raw_status}"}), 400

    try:
        records = attendance_service.get_session_attendance(session_id, status=status, org_id=g.org_id)
    except SessionNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({
        "session_id": session_id,
        "attendances": [record.to_dict() for record in records],
        "count": len(records),
    }), 200
