# Overview: Lookups and credential writes for staff and customer identities.

"""
Credential Store

Staff and customer identities share one credential scheme (phone + bcrypt PIN
digest + active flag) but live in separate tables. This module is the only
place that writes pin_hash; callers validate the PIN format first.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Customer, CustomerIdentity, StaffIdentity
from ..validation import KIND_CUSTOMER, KIND_STAFF
from .hashing_service import hash_pin
from farmgate.time_utils import utcnow


def get_staff(identity_id: int) -> StaffIdentity | None:
    return db.session.get(StaffIdentity, identity_id)


def get_staff_by_phone(phone: str) -> StaffIdentity | None:
    return db.session.query(StaffIdentity).filter_by(phone=phone).first()


def get_customer_account(account_id: int) -> CustomerIdentity | None:
    return db.session.get(CustomerIdentity, account_id)


def get_customer_account_by_phone(phone: str) -> CustomerIdentity | None:
    return db.session.query(CustomerIdentity).filter_by(phone=phone).first()


def get_business_customer_by_phone(phone: str) -> Customer | None:
    # Prefer an active record when the same phone appears on several customers
    return (
        db.session.query(Customer)
        .filter_by(phone=phone)
        .order_by(Customer.is_active.desc(), Customer.id.asc())
        .first()
    )


def get_identity(identity_id: int, kind: str):
    if kind == KIND_CUSTOMER:
        return get_customer_account(identity_id)
    return get_staff(identity_id)


def get_identity_by_phone(phone: str, kind: str):
    if kind == KIND_CUSTOMER:
        return get_customer_account_by_phone(phone)
    return get_staff_by_phone(phone)


def get_identity_by_external_id(external_user_id: str, kind: str | None = None):
    """Resolve a provider identity id to the internal row (staff first)."""
    if not external_user_id:
        return None
    if kind in (None, KIND_STAFF):
        staff = db.session.query(StaffIdentity).filter_by(external_user_id=external_user_id).first()
        if staff is not None or kind == KIND_STAFF:
            return staff
    return db.session.query(CustomerIdentity).filter_by(external_user_id=external_user_id).first()


def set_pin(identity, pin: str, *, commit: bool = True) -> None:
    """Replace the stored digest with a fresh salted hash of pin."""
    identity.pin_hash = hash_pin(pin)
    identity.updated_at = utcnow()
    if commit:
        db.session.commit()


def clear_pin(identity, *, commit: bool = True) -> None:
    identity.pin_hash = None
    identity.updated_at = utcnow()
    if commit:
        db.session.commit()


def set_external_user_id(identity, external_user_id: str | None, *, commit: bool = True) -> None:
    if identity.external_user_id == external_user_id:
        return
    identity.external_user_id = external_user_id
    if commit:
        db.session.commit()


def record_login(identity, *, commit: bool = True) -> None:
    identity.last_login_at = utcnow()
    if commit:
        db.session.commit()


def list_staff(*, include_inactive: bool = False) -> list[StaffIdentity]:
    query = db.session.query(StaffIdentity)
    if not include_inactive:
        query = query.filter(StaffIdentity.is_active.is_(True))
    return query.order_by(StaffIdentity.full_name.asc(), StaffIdentity.id.asc()).all()


def list_customer_accounts(*, approval_state: str | None = None) -> list[CustomerIdentity]:
    query = db.session.query(CustomerIdentity)
    if approval_state:
        query = query.filter_by(approval_state=approval_state)
    return query.order_by(CustomerIdentity.created_at.desc(), CustomerIdentity.id.desc()).all()


def known_phones() -> set[tuple[str, str]]:
    """(kind, phone) pairs that currently have an internal row."""
    pairs = {(KIND_STAFF, phone) for (phone,) in db.session.query(StaffIdentity.phone).all()}
    pairs.update((KIND_CUSTOMER, phone) for (phone,) in db.session.query(CustomerIdentity.phone).all())
    return pairs
