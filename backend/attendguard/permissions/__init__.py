# Overview: Permission system package.
# Re-exports all public APIs so callers import from `attendguard.permissions`.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    ATTENDANCE_PERMISSIONS,
    BIOMETRIC_PERMISSIONS,
    APPROVAL_PERMISSIONS,
    SESSION_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLES, DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "ATTENDANCE_PERMISSIONS",
    "BIOMETRIC_PERMISSIONS",
    "APPROVAL_PERMISSIONS",
    "SESSION_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "validate_permission_code",
]
