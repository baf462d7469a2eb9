# Overview: Closed value sets for attendance, sessions and verification factors.

"""
Enumerations used inside decision logic.

Strings appear only at the storage and wire edges: columns use
`enum_column()` so SQLAlchemy hands back members, and `to_dict()` emits
`.value`.
"""

from __future__ import annotations

from enum import Enum

from ..extensions import db


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    LATE = "late"
    PENDING = "pending"
    ABSENT = "absent"
    REJECTED = "rejected"

    @property
    def counts_toward_attendance(self) -> bool:
        """present and late are the statuses reflected in Session.current_count."""
        return self in COUNTED_STATUSES


COUNTED_STATUSES = frozenset({AttendanceStatus.PRESENT, AttendanceStatus.LATE})
APPROVABLE_STATUSES = COUNTED_STATUSES


class EntryType(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


class AttendanceAction(str, Enum):
    """Actions recorded in the per-record AttendanceLog."""
    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    OVERRIDE = "override"
    DELETED = "deleted"


class VerificationFactor(str, Enum):
    """Declaration order is the order factors appear in the verification tag."""
    QR = "qr"
    FACE = "face"
    GPS = "gps"
    WEBAUTHN = "webauthn"


class SessionStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RecurrenceType(str, Enum):
    ONE_TIME = "one_time"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def enum_column(enum_cls: type[Enum], name: str) -> db.Enum:
    """VARCHAR-backed enum column storing member values ("pending", not "PENDING")."""
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        validate_strings=True,
        length=16,
        values_callable=lambda members: [m.value for m in members],
    )
