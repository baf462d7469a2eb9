from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z

class FaceEnrollment(db.Model):
    """
    Encrypted face descriptor reference for a user.

    SECURITY:
    - encrypted_descriptor is a Fernet token; plaintext never touches disk
    - encryption_key_id names the key-ring entry that sealed it, so keys rotate
      without rewriting old rows
    - to_dict() never includes the descriptor, encrypted or not

    INVARIANT: At most one active enrollment (requires_reverification = false)
    per user, enforced by a partial unique index. Re-enrollment retires the
    old row and inserts a new one; enrollments are never deleted.
    """
    __tablename__ = "face_enrollments"
    __table_args__ = (
        db.Index(
            "uq_face_enrollments_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("requires_reverification = 0"),
            postgresql_where=text("requires_reverification = false"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    encrypted_descriptor = db.Column(db.Text, nullable=False)
    encryption_key_id = db.Column(db.String(32), nullable=False)

    image_ref = db.Column(db.String(512), nullable=True)

    confidence_threshold = db.Column(db.Float, nullable=False, default=0.7)
    verification_count = db.Column(db.Integer, nullable=False, default=0)
    last_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    requires_reverification = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("face_enrollments", lazy=True))

    def __repr__(self) -> str:
        return f"<FaceEnrollment id={self.id} user_id={self.user_id} active={not self.requires_reverification}>"

    @property
    def is_active(self) -> bool:
        return not self.requires_reverification

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "encryption_key_id": self.encryption_key_id,
            "image_ref": self.image_ref,
            "confidence_threshold": self.confidence_threshold,
            "verification_count": self.verification_count,
            "last_verified_at": to_utc_z(self.last_verified_at),
            "requires_reverification": self.requires_reverification,
            "created_at": to_utc_z(self.created_at),
        }
