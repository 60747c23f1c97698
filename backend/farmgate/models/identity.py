from __future__ import annotations

from ..extensions import db
from farmgate.time_utils import to_utc_z


# Customer account approval states
APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
APPROVAL_STATES = {APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED}


class Customer(db.Model):
    """
    Business customer record (billing/delivery party).

    Owned by the catalog/billing side of the application. Identity code only
    reads it to match a self-registering phone number, and creates an
    inactive placeholder row when an unknown phone registers.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StaffIdentity(db.Model):
    """
    Staff login credential: phone number + bcrypt PIN digest.

    pin_hash is NULL until a PIN is set and is cleared again on deactivation.
    The role shown here is read from RoleAssignment; the profile row carries
    no writable role field.
    """
    __tablename__ = "staff_identities"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_staff_identities_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=False, index=True)

    # Bcrypt hashed 6-digit PIN
    pin_hash = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Identity id at the hosted session provider (may drift / be missing)
    external_user_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    role_assignment = db.relationship(
        "RoleAssignment",
        foreign_keys="RoleAssignment.identity_id",
        uselist=False,
        backref=db.backref("identity", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
    )

    @property
    def role(self) -> str | None:
        return self.role_assignment.role if self.role_assignment else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "is_active": self.is_active,
            "has_pin": self.pin_hash is not None,
            "external_user_id": self.external_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class CustomerIdentity(db.Model):
    """
    Customer portal login credential.

    Linked to exactly one business Customer. Login is only possible once
    approval_state is "approved" and the account is active.
    """
    __tablename__ = "customer_identities"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_customer_identities_phone"),
        db.Index("ix_customer_identities_customer_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    phone = db.Column(db.String(20), nullable=False, index=True)

    pin_hash = db.Column(db.String(255), nullable=True)

    approval_state = db.Column(db.String(16), nullable=False, default=APPROVAL_PENDING)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey("staff_identities.id", ondelete="SET NULL"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    external_user_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("identities", lazy=True))
    approved_by = db.relationship("StaffIdentity", foreign_keys=[approved_by_id])

    @property
    def is_approved(self) -> bool:
        return self.approval_state == APPROVAL_APPROVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "phone": self.phone,
            "approval_state": self.approval_state,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "is_active": self.is_active,
            "has_pin": self.pin_hash is not None,
            "external_user_id": self.external_user_id,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class RoleAssignment(db.Model):
    """
    Authoritative role per staff identity.

    One row per staff identity. Only the administrative lifecycle API writes
    this table; authorization decisions read nothing else.
    """
    __tablename__ = "role_assignments"
    __table_args__ = (
        db.UniqueConstraint("identity_id", name="uq_role_assignments_identity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    identity_id = db.Column(
        db.Integer,
        db.ForeignKey("staff_identities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = db.Column(db.String(32), nullable=False)

    assigned_by_id = db.Column(db.Integer, db.ForeignKey("staff_identities.id", ondelete="SET NULL"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "identity_id": self.identity_id,
            "role": self.role,
            "assigned_by_id": self.assigned_by_id,
            "assigned_at": to_utc_z(self.assigned_at),
        }
