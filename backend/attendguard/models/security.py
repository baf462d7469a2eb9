from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class AuditLog(db.Model):
    """
    System-wide audit trail with tenant context.

    WHY: Every fraud signal (duplicate check-in, face mismatch, location
    spoofing) and every significant state change lands here so security
    reviewers can reconstruct what happened and who did it.

    MULTI-TENANT: org_id is nullable for pre-auth events (failed logins for
    unknown emails) but set everywhere else so events filter by tenant.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_user_action", "user_id", "action"),
        db.Index("ix_audit_logs_org_created", "org_id", "created_at"),
        db.Index("ix_audit_logs_subject", "subject_type", "subject_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # Nullable for anonymous

    # e.g. fraud_attempt_face_mismatch, attendance_approved, user_login
    action = db.Column(db.String(64), nullable=False, index=True)

    # Polymorphic subject reference ("Attendance", 42)
    subject_type = db.Column(db.String(64), nullable=True)
    subject_id = db.Column(db.Integer, nullable=True)

    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    organization = db.relationship("Organization", backref=db.backref("audit_logs", lazy=True))
    user = db.relationship("User", backref=db.backref("audit_logs", lazy=True))

    @property
    def is_fraud_signal(self) -> bool:
        return self.action.startswith("fraud_attempt_")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "action": self.action,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
