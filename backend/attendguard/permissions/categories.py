# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    ATTENDANCE = "ATTENDANCE"
    BIOMETRICS = "BIOMETRICS"
    APPROVALS = "APPROVALS"
    SESSIONS = "SESSIONS"
    SYSTEM = "SYSTEM"
