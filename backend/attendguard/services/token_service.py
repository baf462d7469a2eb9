# Overview: Service-layer operations for bearer tokens; issue, validate and revoke login tokens.

"""
Auth Token Management Service with Multi-Tenant Support

WHY: Secure API authentication with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

MULTI-TENANT: Tokens capture org_id at creation time. This establishes the
tenant context for every authenticated request.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (AUTH_TOKEN_TTL_HOURS) and idle timeout (AUTH_TOKEN_IDLE_HOURS)
- Revocable on logout or when the user/organization is retired
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import AuthToken, User
from ..time_utils import utcnow


@dataclass
class TokenContext:
    """
    Result of validate_token.

    org_id comes from the token record, not the user, so the tenant context
    stays fixed for the token's lifetime.
    """
    user: User
    token: AuthToken
    org_id: int


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("AUTH_TOKEN_TTL_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("AUTH_TOKEN_IDLE_HOURS", 2))


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_token(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[AuthToken, str]:
    """
    Create new auth token for user with tenant context.

    Returns (token_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.

    Raises ValueError if the user is missing or its organization is retired.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    org = user.organization
    if not org or not org.is_active:
        raise ValueError("Organization is not active")

    plaintext_token = generate_token()

    now = utcnow()
    record = AuthToken(
        user_id=user_id,
        org_id=user.org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(record)
    db.session.commit()

    return record, plaintext_token


def _revoke(record: AuthToken, reason: str, now) -> None:
    record.is_revoked = True
    record.revoked_at = now
    record.revoked_reason = reason
    db.session.commit()


def validate_token(token: str) -> TokenContext | None:
    """
    Validate bearer token and return TokenContext if valid.

    Returns None if:
    - Token is unknown, expired, idle too long, or revoked
    - User account is retired
    - Organization is retired

    Updates last_used_at on successful validation (activity tracking).
    """
    now = utcnow()

    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not record:
        return None

    if record.expires_at < now:
        return None

    if now - record.last_used_at > _idle_timeout():
        _revoke(record, "Idle timeout", now)
        return None

    user = record.user
    if not user or not user.is_active:
        _revoke(record, "User account deactivated", now)
        return None

    org = record.organization
    if not org or not org.is_active:
        _revoke(record, "Organization deactivated", now)
        return None

    record.last_used_at = now
    db.session.commit()

    return TokenContext(user=user, token=record, org_id=record.org_id)


def revoke_token(token: str, reason: str = "User logout") -> bool:
    """
    Revoke an auth token.

    Returns True if the token was revoked, False if not found.
    """
    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not record:
        return False

    _revoke(record, reason, utcnow())
    return True
