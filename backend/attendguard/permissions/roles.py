# Overview: Default role names and the permission sets they receive.

from .helpers import get_all_permission_codes


# (name, description) in creation order
DEFAULT_ROLES = [
    ("super_admin", "Full system access"),
    ("admin", "Organization administration and attendance approval"),
    ("session_manager", "Runs sessions and reviews attendance"),
    ("member", "Checks into sessions"),
]


MEMBER_PERMISSIONS = [
    "MARK_ATTENDANCE",
    "ENROLL_FACE",
    "VIEW_OWN_ATTENDANCE",
]


DEFAULT_ROLE_PERMISSIONS = {
    "super_admin": get_all_permission_codes(),
    "admin": MEMBER_PERMISSIONS + [
        "VIEW_SESSION_ATTENDANCE",
        "APPROVE_ATTENDANCE",
        "OVERRIDE_ATTENDANCE",
        "DELETE_ATTENDANCE",
        "SELF_APPROVE_ATTENDANCE",
        "MANAGE_SESSIONS",
        "MANAGE_QR_CODES",
        "VIEW_AUDIT_LOG",
    ],
    "session_manager": MEMBER_PERMISSIONS + [
        "VIEW_SESSION_ATTENDANCE",
        "APPROVE_ATTENDANCE",
        "MANAGE_SESSIONS",
        "MANAGE_QR_CODES",
    ],
    "member": list(MEMBER_PERMISSIONS),
}
