# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- bcrypt password verification (auth_service)
- SHA-256 hashed, expiring bearer tokens (token_service)
- Every login success and failure lands in the audit trail
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import audit_service
from ..services import permission_service
from ..services import token_service
from ..decorators import require_auth, extract_bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create a bearer token.

    Body: {"email": str, "password": str, "org_id": int?}

    Returns user info, capabilities and the plaintext token. The token must
    be sent as `Authorization: Bearer <token>` on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        org_id = data.get("org_id")

        if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
            return jsonify({"error": "email and password required"}), 400
        if org_id is not None and (not isinstance(org_id, int) or isinstance(org_id, bool)):
            return jsonify({"error": "org_id must be an integer"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(email, password, org_id=org_id)

        if not user:
            audit_service.log_event(
                "login_failed",
                org_id=org_id,
                new_values={"email": email.strip().lower()},
                ip_address=ip_address,
                user_agent=user_agent,
                notes="Invalid credentials",
                commit=True,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        record, token = token_service.create_token(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )

        audit_service.log_event(
            "user_login",
            actor_user_id=user.id,
            org_id=record.org_id,
            subject=user,
            ip_address=ip_address,
            user_agent=user_agent,
            commit=True,
        )

        return jsonify({
            "user": user.to_dict(),
            "permissions": sorted(permission_service.get_user_permissions(user.id)),
            "roles": permission_service.get_user_role_names(user.id),
            "token": token,
            "expires_at": record.to_dict()["expires_at"],
            "org_id": record.org_id,
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke the bearer token (logout)."""
    try:
        token = extract_bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not token_service.revoke_token(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user, tenant context and capabilities (for UI filtering)."""
    return jsonify({
        "user": g.current_user.to_dict(),
        "org_id": g.org_id,
        "permissions": sorted(g.actor.capabilities),
        "roles": permission_service.get_user_role_names(g.current_user.id),
    }), 200
