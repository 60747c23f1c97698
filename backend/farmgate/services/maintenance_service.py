# Overview: Retention cleanup for the audit trail and the lockout ledger.

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import LockoutRecord, SecurityEvent
from farmgate.time_utils import utcnow


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """Delete security events older than retention_days."""
    if retention_days < 1:
        raise ValueError("retention_days must be at least 1")

    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def purge_stale_lockouts(*, idle_days: int = 1) -> int:
    """
    Delete ledger rows with no attempt for idle_days and no active lockout.

    A stale row only keeps counting toward the threshold, so removing it is
    equivalent to the counter having been reset.
    """
    now = utcnow()
    cutoff = now - timedelta(days=idle_days)
    deleted = db.session.query(LockoutRecord).filter(
        LockoutRecord.last_attempt_at < cutoff,
        or_(LockoutRecord.locked_until.is_(None), LockoutRecord.locked_until < now),
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
