# Overview: Per-phone ledger of consecutive failed PIN verifications and lockout expiry.

"""
Lockout Ledger

WHY: A 6-digit PIN falls to online guessing quickly without a limit.
After LOCKOUT_THRESHOLD consecutive failures the phone number is locked for
LOCKOUT_DURATION_MINUTES, and verification is refused before the PIN digest
is even consulted.

CONCURRENCY: The counter is only ever changed by single statements:
- failure: UPDATE ... SET failed_count = failed_count + 1 (INSERT if absent,
  falling back to the UPDATE if a parallel request inserted first)
- success: DELETE
No read-modify-write happens in Python, so parallel failures are all counted.
"""

from datetime import timedelta

from flask import current_app, has_app_context
from sqlalchemy import case, delete, literal, null, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import LockoutRecord
from ..validation import KIND_STAFF
from .concurrency import run_with_retry
from farmgate.time_utils import utcnow, seconds_until, as_naive_utc


DEFAULT_THRESHOLD = 4
DEFAULT_DURATION_MINUTES = 15


def lockout_threshold() -> int:
    if has_app_context():
        return int(current_app.config.get("LOCKOUT_THRESHOLD", DEFAULT_THRESHOLD))
    return DEFAULT_THRESHOLD


def lockout_duration() -> timedelta:
    minutes = DEFAULT_DURATION_MINUTES
    if has_app_context():
        minutes = int(current_app.config.get("LOCKOUT_DURATION_MINUTES", DEFAULT_DURATION_MINUTES))
    return timedelta(minutes=minutes)


def _get_record(phone: str, kind: str) -> LockoutRecord | None:
    return db.session.query(LockoutRecord).filter_by(identity_kind=kind, phone=phone).first()


def is_locked(phone: str, *, kind: str = KIND_STAFF) -> tuple[bool, int | None]:
    """
    Check whether verification for this phone is currently refused.

    Returns:
    - (True, seconds_remaining) if a lockout window is active
    - (False, None) otherwise
    """
    record = _get_record(phone, kind)
    if record is None or record.locked_until is None:
        return False, None

    now = utcnow()
    locked_until = as_naive_utc(record.locked_until)
    if now < locked_until:
        return True, seconds_until(locked_until, now)

    return False, None


def record_failure(phone: str, *, kind: str = KIND_STAFF) -> int:
    """
    Count one failed verification for a phone number.

    Sets locked_until = now + duration once the count reaches the threshold,
    otherwise leaves it NULL. Returns the failed count after this attempt.
    """
    threshold = lockout_threshold()
    duration = lockout_duration()

    def _op() -> int:
        now = utcnow()
        lock_expiry = literal(now + duration, type_=db.DateTime(timezone=True))

        stmt = (
            update(LockoutRecord)
            .where(
                LockoutRecord.identity_kind == kind,
                LockoutRecord.phone == phone,
            )
            .values(
                failed_count=LockoutRecord.failed_count + 1,
                last_attempt_at=now,
                # Right-hand side sees the pre-increment value
                locked_until=case(
                    (LockoutRecord.failed_count + 1 >= threshold, lock_expiry),
                    else_=null(),
                ),
            )
            .execution_options(synchronize_session=False)
        )

        result = db.session.execute(stmt)
        if not result.rowcount:
            record = LockoutRecord(
                identity_kind=kind,
                phone=phone,
                failed_count=1,
                last_attempt_at=now,
                locked_until=now + duration if threshold <= 1 else None,
            )
            db.session.add(record)
            try:
                db.session.flush()
            except IntegrityError:
                # A concurrent failure inserted the row first
                db.session.rollback()
                result = db.session.execute(stmt)
                if not result.rowcount:
                    raise

        db.session.commit()

        return (
            db.session.query(LockoutRecord.failed_count)
            .filter_by(identity_kind=kind, phone=phone)
            .scalar()
        ) or 0

    return run_with_retry(_op)


def record_success(phone: str, *, kind: str = KIND_STAFF) -> None:
    """Delete the ledger row: the failure count restarts at zero."""
    def _op() -> None:
        db.session.execute(
            delete(LockoutRecord)
            .where(
                LockoutRecord.identity_kind == kind,
                LockoutRecord.phone == phone,
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()

    run_with_retry(_op)


# Administrative reset (PIN reset, CLI) is the same operation as a success
clear_lockout = record_success


def get_lockout_status(phone: str, *, kind: str = KIND_STAFF) -> dict:
    """
    Get detailed lockout status for a phone number.

    Returns dict with:
    - locked: bool
    - failed_attempts: int
    - max_attempts: int
    - seconds_until_unlock: int | None
    """
    record = _get_record(phone, kind)
    locked, seconds_remaining = is_locked(phone, kind=kind)

    return {
        "locked": locked,
        "failed_attempts": record.failed_count if record else 0,
        "max_attempts": lockout_threshold(),
        "seconds_until_unlock": seconds_remaining,
        "lockout_duration_minutes": int(lockout_duration().total_seconds() / 60),
    }
