# Overview: Service-layer operations for face biometrics; enrollment, re-enrollment and matching.

"""
Face Biometric Matching

WHY: A face match ties a check-in to the enrolled person rather than to
whoever holds the phone. Descriptors (128 floats) are extracted client-side;
this service stores them encrypted and compares them by Euclidean distance.

SCORING: score = max(0, 1 - distance / 2), match iff
score >= enrollment.confidence_threshold (default 0.7). Face embeddings are
near unit length, so meaningful distances stay below 2.

FAIL CLOSED: verify_face() never raises. Malformed input, a missing
enrollment and an undecryptable enrollment all return match=False, score=0
with a generic message, and are logged distinctly for operators.

COUNTERS: verification_count and last_verified_at move only on a match.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import FaceEnrollment, User
from ..time_utils import utcnow
from . import audit_service
from .descriptor_cipher import encrypt_descriptor, decrypt_descriptor, DescriptorDecryptionError


SCORE_DISTANCE_SCALE = 2.0
FAILED_MATCH_MESSAGE = "Face verification failed"


class BiometricError(ValueError):
    """Base class for enrollment errors."""


class InvalidDescriptorError(BiometricError):
    pass


class ConsentRequiredError(BiometricError):
    pass


class AlreadyEnrolledError(BiometricError):
    pass


class EnrollmentNotFoundError(BiometricError):
    pass


@dataclass
class FaceMatchResult:
    match: bool
    score: float
    distance: float | None
    threshold: float
    message: str

    def to_dict(self) -> dict:
        return {
            "match": self.match,
            "score": round(self.score, 4),
            "distance": round(self.distance, 4) if self.distance is not None else None,
            "threshold": self.threshold,
            "message": self.message,
        }


# ==================================================
# Pure helpers
# ==================================================

def validate_descriptor(descriptor, *, length: int | None = None) -> list[float]:
    """
    Return the descriptor as a list of floats.

    Raises InvalidDescriptorError unless it is a sequence of exactly `length`
    finite numbers (booleans rejected).
    """
    if length is None:
        length = current_app.config.get("FACE_DESCRIPTOR_LENGTH", 128)

    if not isinstance(descriptor, (list, tuple)):
        raise InvalidDescriptorError("Face descriptor must be an array of numbers")
    if len(descriptor) != length:
        raise InvalidDescriptorError(f"Face descriptor must contain exactly {length} values")

    values = []
    for value in descriptor:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise InvalidDescriptorError("Face descriptor values must be finite numbers")
        values.append(float(value))
    return values


def euclidean_distance(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise InvalidDescriptorError("Descriptors must have the same dimensions")
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def similarity_score(distance: float) -> float:
    """Monotonically decreasing in distance, bounded to [0, 1]."""
    return max(0.0, 1.0 - distance / SCORE_DISTANCE_SCALE)


# ==================================================
# Enrollment
# ==================================================

def get_active_enrollment(user_id: int) -> FaceEnrollment | None:
    return (
        db.session.query(FaceEnrollment)
        .filter(
            FaceEnrollment.user_id == user_id,
            FaceEnrollment.requires_reverification.is_(False),
        )
        .first()
    )


def has_active_enrollment(user_id: int) -> bool:
    return get_active_enrollment(user_id) is not None


def _get_user(user_id: int, actor=None) -> User:
    user = db.session.get(User, user_id)
    if user is None or (actor is not None and user.org_id != actor.org_id):
        raise EnrollmentNotFoundError("User not found")
    return user


def _insert_enrollment(user: User, values: list[float], image_ref: str | None) -> FaceEnrollment:
    blob, key_id = encrypt_descriptor(values)
    enrollment = FaceEnrollment(
        user_id=user.id,
        encrypted_descriptor=blob,
        encryption_key_id=key_id,
        image_ref=image_ref,
        confidence_threshold=current_app.config.get("FACE_MATCH_THRESHOLD", 0.7),
        verification_count=0,
        requires_reverification=False,
        created_at=utcnow(),
    )
    db.session.add(enrollment)
    try:
        db.session.flush()
    except IntegrityError:
        # Partial unique index: a concurrent enrollment won
        db.session.rollback()
        raise AlreadyEnrolledError("User already has an active face enrollment") from None
    return enrollment


def enroll_face(
    user_id: int,
    descriptor,
    *,
    consent_given: bool,
    image_ref: str | None = None,
    actor=None,
) -> FaceEnrollment:
    """
    Create the user's first active enrollment.

    Raises InvalidDescriptorError, ConsentRequiredError or
    AlreadyEnrolledError (use re_enroll_face to replace an enrollment).
    """
    values = validate_descriptor(descriptor)

    if not consent_given:
        raise ConsentRequiredError("Biometric consent is required before face enrollment")

    user = _get_user(user_id, actor)

    if has_active_enrollment(user.id):
        raise AlreadyEnrolledError("User already has an active face enrollment")

    now = utcnow()
    if not user.face_consent:
        user.face_consent = True
        user.face_consent_at = now

    enrollment = _insert_enrollment(user, values, image_ref)

    audit_service.log_event(
        "face_enrolled",
        actor=actor,
        actor_user_id=actor.user_id if actor is not None else user.id,
        org_id=user.org_id,
        subject=enrollment,
        new_values={"encryption_key_id": enrollment.encryption_key_id, "image_ref": image_ref},
    )
    db.session.commit()

    current_app.logger.info("Face enrolled for user %s (enrollment %s)", user.id, enrollment.id)
    return enrollment


def re_enroll_face(
    user_id: int,
    descriptor,
    *,
    image_ref: str | None = None,
    actor=None,
) -> FaceEnrollment:
    """
    Retire every active enrollment and insert a new one, in one transaction.

    Consent is carried over from the user's stored consent flag. Retired
    enrollments are kept for audit.
    """
    values = validate_descriptor(descriptor)
    user = _get_user(user_id, actor)

    if not user.face_consent:
        raise ConsentRequiredError("Biometric consent is required before face enrollment")

    retired = (
        db.session.query(FaceEnrollment)
        .filter(
            FaceEnrollment.user_id == user.id,
            FaceEnrollment.requires_reverification.is_(False),
        )
        .update({FaceEnrollment.requires_reverification: True}, synchronize_session=False)
    )
    db.session.flush()

    enrollment = _insert_enrollment(user, values, image_ref)

    audit_service.log_event(
        "face_reenrolled",
        actor=actor,
        actor_user_id=actor.user_id if actor is not None else user.id,
        org_id=user.org_id,
        subject=enrollment,
        new_values={
            "encryption_key_id": enrollment.encryption_key_id,
            "image_ref": image_ref,
            "retired_enrollments": retired,
        },
    )
    db.session.commit()
    db.session.expire_all()

    current_app.logger.info("Face re-enrolled for user %s (%s retired)", user.id, retired)
    return enrollment


def revoke_enrollment(user_id: int, actor) -> FaceEnrollment:
    """Retire the active enrollment without replacing it."""
    user = _get_user(user_id, actor)

    enrollment = get_active_enrollment(user.id)
    if enrollment is None:
        raise EnrollmentNotFoundError("No active face enrollment")

    enrollment.requires_reverification = True

    audit_service.log_event(
        "face_enrollment_revoked",
        actor=actor,
        org_id=user.org_id,
        subject=enrollment,
        old_values={"requires_reverification": False},
        new_values={"requires_reverification": True},
    )
    db.session.commit()
    return enrollment


# ==================================================
# Matching
# ==================================================

def _failed(threshold: float) -> FaceMatchResult:
    return FaceMatchResult(match=False, score=0.0, distance=None, threshold=threshold, message=FAILED_MATCH_MESSAGE)


def verify_face(user_id: int, live_descriptor, *, now: datetime | None = None) -> FaceMatchResult:
    """
    Compare a live descriptor against the user's active enrollment.

    Does not commit; the caller's transaction carries the counter update.
    """
    logger = current_app.logger
    default_threshold = current_app.config.get("FACE_MATCH_THRESHOLD", 0.7)

    try:
        live = validate_descriptor(live_descriptor)
    except InvalidDescriptorError:
        logger.warning("Face verification for user %s rejected: malformed descriptor", user_id)
        return _failed(default_threshold)

    enrollment = get_active_enrollment(user_id)
    if enrollment is None:
        logger.warning("Face verification for user %s rejected: no active enrollment", user_id)
        return _failed(default_threshold)

    threshold = enrollment.confidence_threshold

    try:
        enrolled = decrypt_descriptor(enrollment.encrypted_descriptor, enrollment.encryption_key_id)
    except DescriptorDecryptionError as e:
        logger.error(
            "Face verification for user %s failed closed: enrollment %s could not be decrypted (%s)",
            user_id,
            enrollment.id,
            e,
        )
        return _failed(threshold)

    if len(enrolled) != len(live):
        logger.error(
            "Face verification for user %s failed closed: enrollment %s has %s dimensions",
            user_id,
            enrollment.id,
            len(enrolled),
        )
        return _failed(threshold)

    distance = euclidean_distance(enrolled, live)
    score = similarity_score(distance)
    match = score >= threshold

    if match:
        db.session.query(FaceEnrollment).filter(FaceEnrollment.id == enrollment.id).update(
            {
                FaceEnrollment.verification_count: FaceEnrollment.verification_count + 1,
                FaceEnrollment.last_verified_at: now or utcnow(),
            },
            synchronize_session=False,
        )
        db.session.expire(enrollment, ["verification_count", "last_verified_at"])

    logger.info(
        "Face verification for user %s: match=%s score=%.4f threshold=%s",
        user_id,
        match,
        score,
        threshold,
    )

    return FaceMatchResult(
        match=match,
        score=score,
        distance=distance,
        threshold=threshold,
        message="Face verified successfully" if match else FAILED_MATCH_MESSAGE,
    )
