from .enums import (
    AttendanceStatus, AttendanceAction, EntryType, VerificationFactor,
    SessionStatus, RecurrenceType, COUNTED_STATUSES, APPROVABLE_STATUSES,
)
from .lifecycle import Active, Retired, Lifecycle
from .tenancy import Organization
from .auth import User, Role, UserRole, Permission, RolePermission, AuthToken
from .sessions import Session, QRToken
from .biometrics import FaceEnrollment
from .attendance import Attendance, AttendanceLog
from .security import AuditLog
from .location import LocationLog

__all__ = [
    'AttendanceStatus', 'AttendanceAction', 'EntryType', 'VerificationFactor',
    'SessionStatus', 'RecurrenceType', 'COUNTED_STATUSES', 'APPROVABLE_STATUSES',
    'Active', 'Retired', 'Lifecycle',
    'Organization',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'AuthToken',
    'Session', 'QRToken',
    'FaceEnrollment',
    'Attendance', 'AttendanceLog',
    'AuditLog',
    'LocationLog',
]
