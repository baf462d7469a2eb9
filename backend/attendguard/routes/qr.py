# Overview: Flask API routes for session QR tokens; issue, rotate and read the current token.

"""
QR Token Routes

SECURITY:
- All endpoints require MANAGE_QR_CODES.
- Sessions outside the caller's organization are reported as not found.
- Responses carry the code string only; rendering the QR image is the
  client's job.
"""

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..services import qr_service, audit_service
from ..services.qr_service import SessionEndedError
from ..services.session_service import SessionNotFoundError, find_session


qr_bp = Blueprint("qr", __name__, url_prefix="/api/sessions")


@qr_bp.post("/<int:session_id>/qr")
@require_auth
@require_permission("MANAGE_QR_CODES")
def issue_qr_route(session_id: int):
    """Issue an additional active token; earlier tokens stay valid until they expire."""
    try:
        token = qr_service.issue_token(session_id, org_id=g.org_id)
        audit_service.log_event(
            "qr_token_issued",
            actor=g.actor,
            subject=token,
            new_values={"session_id": session_id, "expires_at": token.to_dict()["expires_at"]},
            commit=True,
        )
        return jsonify({"qr_token": token.to_dict()}), 201
    except SessionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SessionEndedError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to issue QR token for session %s", session_id)
        return jsonify({"error": "Internal server error"}), 500


@qr_bp.post("/<int:session_id>/qr/rotate")
@require_auth
@require_permission("MANAGE_QR_CODES")
def rotate_qr_route(session_id: int):
    """Deactivate every active token for the session and issue a fresh one."""
    try:
        token = qr_service.rotate_token(session_id, org_id=g.org_id)
        audit_service.log_event(
            "qr_token_rotated",
            actor=g.actor,
            subject=token,
            new_values={"session_id": session_id, "expires_at": token.to_dict()["expires_at"]},
            commit=True,
        )
        return jsonify({"qr_token": token.to_dict()}), 201
    except SessionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SessionEndedError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to rotate QR token for session %s", session_id)
        return jsonify({"error": "Internal server error"}), 500


@qr_bp.get("/<int:session_id>/qr")
@require_auth
@require_permission("MANAGE_QR_CODES")
def current_qr_route(session_id: int):
    try:
        find_session(session_id, org_id=g.org_id)
    except SessionNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    token = qr_service.current_token(session_id)
    if token is None:
        return jsonify({"error": "No active QR token for this session"}), 404

    return jsonify({"qr_token": token.to_dict()})
