# Overview: Service-layer operations for permission; capability resolution and enforcement.

"""
Permission Checking with Multi-Tenant Support

WHY: Enforce role-based access control and create an audit trail of denials.

ACTOR CONTEXT: Capabilities are resolved once per request into an immutable
ActorContext which is then passed explicitly to every core operation.
Services never reach into Flask's `g` for identity.

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission grant
- Log denials only: Permission grants are not logged
- Tenant isolation: Actor carries org_id; services compare it to the
  records they touch
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import User, UserRole, Role, RolePermission, Permission
from ..permissions import PERMISSION_DEFINITIONS, DEFAULT_ROLE_PERMISSIONS
from . import audit_service


# Holders are treated as admins for self check-in
SELF_APPROVE_CAPABILITY = "SELF_APPROVE_ATTENDANCE"


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


@dataclass(frozen=True)
class ActorContext:
    """
    Who is acting, for which tenant, with which capabilities.

    Built once per request by resolve_actor(); services and tests construct
    it directly.
    """
    user_id: int
    org_id: int
    capabilities: frozenset[str] = field(default_factory=frozenset)
    ip_address: str | None = None
    user_agent: str | None = None

    def has_capability(self, code: str) -> bool:
        return code in self.capabilities

    @property
    def is_admin(self) -> bool:
        return self.has_capability(SELF_APPROVE_CAPABILITY)


def get_user_permissions(user_id: int) -> set[str]:
    """
    Get all permission codes for a user.

    Returns set of permission codes (e.g., {"MARK_ATTENDANCE", "ENROLL_FACE"}).

    WHY: Centralized permission resolution. Collects the union of the
    permissions of every role the user holds.
    """
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .distinct()
        .all()
    )
    return {code for (code,) in rows}


def resolve_actor(
    user: User,
    *,
    org_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> ActorContext:
    """
    Build the ActorContext for an authenticated user.

    org_id defaults to the user's organization; token-based callers pass the
    org captured on the token.
    """
    return ActorContext(
        user_id=user.id,
        org_id=org_id if org_id is not None else user.org_id,
        capabilities=frozenset(get_user_permissions(user.id)),
        ip_address=ip_address,
        user_agent=user_agent,
    )


def require_capability(actor: ActorContext, code: str, *, resource: str | None = None) -> None:
    """
    Raise PermissionDeniedError unless the actor holds `code`.

    Denials are written to the audit trail and committed immediately so they
    survive whatever the caller does next.
    """
    if actor.has_capability(code):
        return

    audit_service.log_event(
        "permission_denied",
        actor=actor,
        new_values={"required_permission": code, "resource": resource},
        notes=f"Missing permission: {code}",
        commit=True,
    )
    raise PermissionDeniedError(f"Permission denied: {code}")


def get_user_role_names(user_id: int) -> list[str]:
    """Get list of role names for a user."""
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name)
        .all()
    )
    return [name for (name,) in rows]


def initialize_permissions() -> int:
    """
    Initialize all permission definitions in database.

    Creates Permission records for all codes in PERMISSION_DEFINITIONS.
    Idempotent: Safe to run multiple times.

    WHY: Permissions must exist in DB before they can be assigned to roles.
    """
    created_count = 0

    for code, name, description, category in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(code=code).first()

        if not existing:
            permission = Permission(
                code=code,
                name=name,
                description=description,
                category=category
            )
            db.session.add(permission)
            created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions(org_id: int | None = None) -> int:
    """
    Assign default permissions to roles based on DEFAULT_ROLE_PERMISSIONS.

    Applies to every organization's roles, or only to `org_id` when given.
    Idempotent: Safe to run multiple times (skips existing).
    """
    created_count = 0
    permissions_by_code = {p.code: p for p in db.session.query(Permission).all()}

    for role_name, permission_codes in DEFAULT_ROLE_PERMISSIONS.items():
        roles_query = db.session.query(Role).filter_by(name=role_name)
        if org_id is not None:
            roles_query = roles_query.filter_by(org_id=org_id)

        for role in roles_query.all():
            granted = {
                rp.permission_id
                for rp in db.session.query(RolePermission).filter_by(role_id=role.id).all()
            }

            for permission_code in permission_codes:
                permission = permissions_by_code.get(permission_code)

                if not permission:
                    continue  # Permission doesn't exist, skip

                if permission.id not in granted:
                    db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                    granted.add(permission.id)
                    created_count += 1

    db.session.commit()
    return created_count
