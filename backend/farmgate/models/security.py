from __future__ import annotations

from ..extensions import db
from farmgate.time_utils import to_utc_z


class LockoutRecord(db.Model):
    """
    Consecutive failed PIN verifications per phone number.

    Keyed by (identity_kind, phone): staff and customer logins keep separate
    ledgers. The row is deleted on any successful verification.
    Mutated only through single-statement increments (see lockout_service).
    """
    __tablename__ = "lockout_records"
    __table_args__ = (
        db.UniqueConstraint("identity_kind", "phone", name="uq_lockout_records_kind_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    identity_kind = db.Column(db.String(16), nullable=False)
    phone = db.Column(db.String(20), nullable=False, index=True)

    failed_count = db.Column(db.Integer, nullable=False, default=0)
    last_attempt_at = db.Column(db.DateTime(timezone=True), nullable=False)
    locked_until = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "identity_kind": self.identity_kind,
            "phone": self.phone,
            "failed_count": self.failed_count,
            "last_attempt_at": to_utc_z(self.last_attempt_at),
            "locked_until": to_utc_z(self.locked_until) if self.locked_until else None,
        }


class SecurityEvent(db.Model):
    """
    Security event audit log.

    WHY: Track login failures, lockouts, account lifecycle changes and denied
    access checks. Critical for detecting brute-force attempts and for
    reconstructing who changed which account.

    IMMUTABLE: Never update or delete (except retention cleanup).
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_actor_type", "actor_id", "event_type"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Staff or customer identity id; nullable for anonymous (pre-auth) events
    actor_kind = db.Column(db.String(16), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # LOGIN_FAILED, ACCOUNT_LOCKED, ACCESS_DENIED, ...
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(64), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_kind": self.actor_kind,
            "actor_id": self.actor_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
