# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for the attendance approval workflow and the audit trail.

Provides endpoints for:
- Pending queue (list)
- Approval decisions (approve, reject, override, delete)
- Attendance change history and organization audit log

All endpoints require authentication and appropriate permissions. Records
belonging to another organization are reported as not found.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..services import approval_service, attendance_service, audit_service
from ..services.approval_service import (
    AttendanceNotFoundError,
    NotPendingError,
    InvalidStatusError,
)
from ..services.permission_service import PermissionDeniedError
from ..services.session_service import SessionFullError
from ..validation import (
    ValidationError,
    MAX_NOTES_LENGTH,
    require_json_object,
    optional_str,
    required_str,
    parse_optional_int_arg,
)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

MAX_AUDIT_LOG_LIMIT = 1000


def _decision_error_response(e: Exception):
    """Map approval-workflow failures to HTTP; returns None for anything unexpected."""
    if isinstance(e, AttendanceNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, NotPendingError):
        return jsonify({"error": str(e), "current_status": e.current_status.value}), 409
    if isinstance(e, SessionFullError):
        return jsonify({"error": str(e)}), 409
    if isinstance(e, (InvalidStatusError, ValidationError)):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, PermissionDeniedError):
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    return None


# =============================================================================
# PENDING QUEUE
# =============================================================================

@admin_bp.get("/attendance/pending")
@require_auth
@require_permission("APPROVE_ATTENDANCE")
def list_pending_attendance():
    """
    List pending attendances for the caller's organization, oldest first.

    Query params:
    - session_id: int - restrict to one session
    """
    try:
        session_id = parse_optional_int_arg(request.args, "session_id")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    records = attendance_service.get_pending_attendance(g.org_id, session_id=session_id)
    return jsonify({
        "attendances": [record.to_dict() for record in records],
        "count": len(records),
    })


# =============================================================================
# DECISIONS
# =============================================================================

@admin_bp.post("/attendance/<int:attendance_id>/approve")
@require_auth
@require_permission("APPROVE_ATTENDANCE")
def approve_attendance(attendance_id: int):
    """
    Approve a pending attendance.

    Request body:
    {
        "status": "present" | "late" (default "present"),
        "notes": "..." (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        notes = optional_str(data, "notes", max_length=MAX_NOTES_LENGTH)

        attendance = approval_service.approve_attendance(
            g.actor,
            attendance_id,
            status=data.get("status") or "present",
            notes=notes,
        )
        return jsonify({
            "attendance": attendance.to_dict(),
            "message": f"Attendance approved as {attendance.status.value}",
        })

    except Exception as e:
        response = _decision_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to approve attendance %s", attendance_id)
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/attendance/<int:attendance_id>/reject")
@require_auth
@require_permission("APPROVE_ATTENDANCE")
def reject_attendance(attendance_id: int):
    """
    Reject a pending attendance.

    Request body:
    {
        "reason": "..." (required)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        reason = required_str(data, "reason", max_length=MAX_NOTES_LENGTH)

        attendance = approval_service.reject_attendance(g.actor, attendance_id, reason=reason)
        return jsonify({
            "attendance": attendance.to_dict(),
            "message": "Attendance rejected",
        })

    except Exception as e:
        response = _decision_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to reject attendance %s", attendance_id)
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/attendance/<int:attendance_id>/override")
@require_auth
@require_permission("OVERRIDE_ATTENDANCE")
def override_attendance(attendance_id: int):
    """
    Force any status, regardless of the current one.

    Request body:
    {
        "status": "present" | "late" | "pending" | "absent" | "rejected",
        "notes": "..." (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        status = required_str(data, "status", max_length=32)
        notes = optional_str(data, "notes", max_length=MAX_NOTES_LENGTH)

        attendance = approval_service.override_attendance(g.actor, attendance_id, status=status, notes=notes)
        return jsonify({
            "attendance": attendance.to_dict(),
            "message": f"Attendance status set to {attendance.status.value}",
        })

    except Exception as e:
        response = _decision_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to override attendance %s", attendance_id)
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/attendance/<int:attendance_id>")
@require_auth
@require_permission("DELETE_ATTENDANCE")
def delete_attendance(attendance_id: int):
    """Hard-delete an attendance. Its change history is kept."""
    try:
        approval_service.delete_attendance(g.actor, attendance_id)
        return jsonify({"message": "Attendance deleted", "attendance_id": attendance_id})

    except Exception as e:
        response = _decision_error_response(e)
        if response is not None:
            return response
        current_app.logger.exception("Failed to delete attendance %s", attendance_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# HISTORY
# =============================================================================

@admin_bp.get("/attendance/<int:attendance_id>/logs")
@require_auth
@require_permission("VIEW_SESSION_ATTENDANCE")
def list_attendance_logs(attendance_id: int):
    """Change history for one attendance, including after deletion."""
    try:
        logs = approval_service.get_attendance_logs(attendance_id, org_id=g.org_id)
    except AttendanceNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({
        "attendance_id": attendance_id,
        "logs": [log.to_dict() for log in logs],
        "count": len(logs),
    })


@admin_bp.get("/audit-logs")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def list_audit_logs():
    """
    Organization audit trail, newest first.

    Query params:
    - action: str - exact action name (e.g. "fraud_attempt_face_mismatch")
    - user_id: int - acting user
    - limit: int (default 200, max 1000)
    """
    try:
        user_id = parse_optional_int_arg(request.args, "user_id")
        limit = parse_optional_int_arg(request.args, "limit") or 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    limit = max(1, min(limit, MAX_AUDIT_LOG_LIMIT))
    events = audit_service.list_events(
        g.org_id,
        action=request.args.get("action") or None,
        user_id=user_id,
        limit=limit,
    )
    return jsonify({
        "events": [event.to_dict() for event in events],
        "count": len(events),
    })
