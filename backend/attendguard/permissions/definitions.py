# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- ATTENDANCE --

ATTENDANCE_PERMISSIONS = [
    (
        "MARK_ATTENDANCE",
        "Mark Attendance",
        "Check into a session with QR, face and GPS evidence",
        PermissionCategory.ATTENDANCE,
    ),
    (
        "VIEW_OWN_ATTENDANCE",
        "View Own Attendance",
        "View own attendance history",
        PermissionCategory.ATTENDANCE,
    ),
    (
        "VIEW_SESSION_ATTENDANCE",
        "View Session Attendance",
        "View attendance records of other users and their change history",
        PermissionCategory.ATTENDANCE,
    ),
]


# -- BIOMETRICS --

BIOMETRIC_PERMISSIONS = [
    (
        "ENROLL_FACE",
        "Enroll Face",
        "Register or replace own face descriptor",
        PermissionCategory.BIOMETRICS,
    ),
]


# -- APPROVALS --

APPROVAL_PERMISSIONS = [
    (
        "APPROVE_ATTENDANCE",
        "Approve Attendance",
        "Approve or reject pending attendance records",
        PermissionCategory.APPROVALS,
    ),
    (
        "OVERRIDE_ATTENDANCE",
        "Override Attendance",
        "Force any attendance status regardless of the current one",
        PermissionCategory.APPROVALS,
    ),
    (
        "DELETE_ATTENDANCE",
        "Delete Attendance",
        "Hard-delete attendance records",
        PermissionCategory.APPROVALS,
    ),
    (
        "SELF_APPROVE_ATTENDANCE",
        "Self-Approve Attendance",
        "Own check-ins are recorded as present without review",
        PermissionCategory.APPROVALS,
    ),
]


# -- SESSIONS --

SESSION_PERMISSIONS = [
    (
        "MANAGE_SESSIONS",
        "Manage Sessions",
        "Create and edit sessions",
        PermissionCategory.SESSIONS,
    ),
    (
        "MANAGE_QR_CODES",
        "Manage QR Codes",
        "Issue, rotate and display session QR codes",
        PermissionCategory.SESSIONS,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "VIEW_AUDIT_LOG",
        "View Audit Log",
        "View audit trail and fraud signals",
        PermissionCategory.SYSTEM,
    ),
    (
        "MANAGE_PERMISSIONS",
        "Manage Permissions",
        "Assign roles and grant capabilities",
        PermissionCategory.SYSTEM,
    ),
    (
        "SYSTEM_ADMIN",
        "System Administrator",
        "Full administrative access",
        PermissionCategory.SYSTEM,
    ),
]


# -- ALL PERMISSIONS --

PERMISSION_DEFINITIONS = (
    ATTENDANCE_PERMISSIONS
    + BIOMETRIC_PERMISSIONS
    + APPROVAL_PERMISSIONS
    + SESSION_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
