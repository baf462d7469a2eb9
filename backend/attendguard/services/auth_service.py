# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service with Multi-Tenant Support

WHY: Every check-in and approval must be attributable. Uses bcrypt for
secure password hashing and validates password strength.

MULTI-TENANT: Users belong to exactly one organization (org_id).
User creation requires org_id. Email uniqueness is tenant-scoped.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Bearer tokens managed separately (see token_service.py)
- Authentication refuses retired users and retired organizations
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, Role, UserRole, Organization
from ..permissions import DEFAULT_ROLES
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


MIN_PASSWORD_LENGTH = 8

# (pattern, what is missing)
PASSWORD_RULES = [
    (re.compile(r"[A-Z]"), "one uppercase letter"),
    (re.compile(r"[a-z]"), "one lowercase letter"),
    (re.compile(r"\d"), "one digit"),
    (re.compile(r"[!@#$%^&*(),.'\":{}|<>_\-]"), "one special character"),
]


def validate_password_strength(password: str) -> None:
    """Raise PasswordValidationError for the first rule the password breaks."""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    for pattern, requirement in PASSWORD_RULES:
        if not pattern.search(password):
            raise PasswordValidationError(f"Password must contain at least {requirement}")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    name: str,
    email: str,
    password: str,
    org_id: int,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: If org doesn't exist or is retired, or email is taken in the org
        PasswordValidationError: If password doesn't meet requirements
    """
    org = db.session.get(Organization, org_id)
    if not org:
        raise ValueError("Organization not found")
    if not org.is_active:
        raise ValueError("Organization is not active")

    email = email.strip().lower()

    # MULTI-TENANT: Check uniqueness within organization
    existing = db.session.query(User).filter(
        User.org_id == org_id,
        User.email == email,
    ).first()

    if existing:
        raise ValueError("Email already exists in this organization")

    # Hash password with bcrypt (validates strength automatically)
    password_hash = hash_password(password)

    user = User(
        org_id=org_id,
        name=name,
        email=email,
        password_hash=password_hash,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str, org_id: int | None = None) -> User | None:
    """
    Authenticate user with email and password.

    MULTI-TENANT: If org_id is provided, authentication is scoped to that org.
    Without it the email must identify exactly one active user; an email that
    exists in several organizations is refused rather than guessed.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    query = db.session.query(User).filter(
        User.email == email.strip().lower(),
        User.deactivated_at.is_(None),
    )

    if org_id is not None:
        query = query.filter(User.org_id == org_id)

    candidates = query.limit(2).all()
    if len(candidates) != 1:
        return None
    user = candidates[0]

    org = user.organization
    if not org or not org.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign one of the user's organization roles to the user."""
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")

    role = db.session.query(Role).filter_by(org_id=user.org_id, name=role_name).first()
    if not role:
        raise ValueError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(
        user_id=user_id,
        role_id=role.id
    ).first()

    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)

    db.session.add(user_role)
    db.session.commit()
    return user_role


def create_default_roles(org_id: int) -> None:
    """Create standard roles for a specific organization if they don't exist."""
    for name, desc in DEFAULT_ROLES:
        existing = db.session.query(Role).filter_by(org_id=org_id, name=name).first()
        if not existing:
            role = Role(org_id=org_id, name=name, description=desc)
            db.session.add(role)

    db.session.commit()
