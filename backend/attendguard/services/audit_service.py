# Overview: Service-layer operations for the audit trail; append-only event writes and reads.

"""
Audit Trail

WHY: Fraud signals and state changes must be reconstructable after the fact.
Every event records who (user_id), where (org_id, ip, user agent), what
(action, subject) and the before/after values.

TRANSACTIONS: log_event() only adds the row to the current session unless
commit=True. Callers inside a larger unit of work (attendance verification,
approvals) let their own commit carry the audit row so both land or neither
does. Fraud signals recorded after a rollback pass commit=True.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AuditLog
from ..time_utils import utcnow


FRAUD_PREFIX = "fraud_attempt_"


def _subject_ref(subject) -> tuple[str | None, int | None]:
    if subject is None:
        return None, None
    if isinstance(subject, tuple):
        subject_type, subject_id = subject
        return subject_type, subject_id
    return type(subject).__name__, subject.id


def log_event(
    action: str,
    *,
    actor=None,
    actor_user_id: int | None = None,
    org_id: int | None = None,
    subject=None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    notes: str | None = None,
    commit: bool = False,
) -> AuditLog:
    """
    Append an audit event.

    `actor` (an ActorContext) fills user, org and client fields that are not
    passed explicitly. `subject` is a model instance or a (type, id) tuple.
    """
    if actor is not None:
        actor_user_id = actor_user_id if actor_user_id is not None else actor.user_id
        org_id = org_id if org_id is not None else actor.org_id
        ip_address = ip_address or actor.ip_address
        user_agent = user_agent or actor.user_agent

    subject_type, subject_id = _subject_ref(subject)

    event = AuditLog(
        org_id=org_id,
        user_id=actor_user_id,
        action=action,
        subject_type=subject_type,
        subject_id=subject_id,
        old_values=old_values,
        new_values=new_values,
        ip_address=ip_address,
        user_agent=user_agent,
        notes=notes,
        created_at=utcnow(),
    )
    db.session.add(event)

    if commit:
        db.session.commit()

    return event


def log_fraud_signal(signal: str, **kwargs) -> AuditLog:
    """Record a fraud signal (action is prefixed with `fraud_attempt_`)."""
    action = signal if signal.startswith(FRAUD_PREFIX) else f"{FRAUD_PREFIX}{signal}"
    actor = kwargs.get("actor")
    current_app.logger.warning(
        "Fraud signal %s (user_id=%s, subject=%s)",
        action,
        kwargs.get("actor_user_id") or (actor.user_id if actor is not None else None),
        _subject_ref(kwargs.get("subject")),
    )
    return log_event(action, **kwargs)


def list_events(
    org_id: int,
    *,
    action: str | None = None,
    user_id: int | None = None,
    limit: int = 200,
) -> list[AuditLog]:
    """Newest-first audit events for one organization."""
    query = db.session.query(AuditLog).filter(AuditLog.org_id == org_id)

    if action:
        query = query.filter(AuditLog.action == action)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)

    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
