"""
Cross-store write ordering tests (file-backed SQLite).

Verifies:
- no database write lock is held while the session provider is called
  during staff provisioning or customer auto-approval
- a failed commit removes the provider identity created just before it
"""

import itertools

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError

from conftest import ControllableProvider
from farmgate.extensions import db
from farmgate.models import Customer, StaffIdentity
from farmgate.permissions import Role
from farmgate.services import account_service
from farmgate.services.results import AuthErrorCode
from farmgate.services.session_provider import synthesize_address
from farmgate.validation import KIND_CUSTOMER, KIND_STAFF


ADMIN_PHONE = "9000000001"


class WritingProvider(ControllableProvider):
    """Writes through a second connection while create_identity is in flight."""

    def __init__(self, database_uri):
        super().__init__()
        # timeout=0: fail at once instead of waiting for the lock
        self.engine = create_engine(database_uri, connect_args={"timeout": 0})
        self.writes = []
        self._phone_seq = itertools.count()

    def create_identity(self, address, password, metadata=None):
        phone = f"95000000{next(self._phone_seq):02d}"
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    text(
                        "INSERT INTO lockout_records (identity_kind, phone, failed_count, last_attempt_at) "
                        "VALUES ('staff', :phone, 1, CURRENT_TIMESTAMP)"
                    ),
                    {"phone": phone},
                )
            self.writes.append("ok")
        except OperationalError as e:
            self.writes.append(str(e.orig))
        return super().create_identity(address, password, metadata)


@pytest.fixture()
def provider(file_database_uri):
    provider = WritingProvider(file_database_uri)
    yield provider
    provider.engine.dispose()


@pytest.fixture()
def admin(file_app):
    result = account_service.bootstrap_super_admin(ADMIN_PHONE, "246810", "Farm Owner")
    assert result.ok, result.message
    return db.session.query(StaffIdentity).filter_by(phone=ADMIN_PHONE).one()


def test_provision_staff_holds_no_lock_during_provider_call(file_app, admin, provider):
    provider.writes.clear()

    result = account_service.provision_staff(admin.id, "9876543210", "123456", "Asha Rao", Role.DELIVERY_STAFF)

    assert result.ok, result.message
    assert provider.writes == ["ok"]
    staff = db.session.query(StaffIdentity).filter_by(phone="9876543210").one()
    assert staff.external_user_id is not None


def test_customer_auto_approval_holds_no_lock_during_provider_call(file_app, provider):
    db.session.add(Customer(name="Sharma Dairy Mart", phone="9811111111", is_active=True))
    db.session.commit()

    result = account_service.register_customer("9811111111", "123456")

    assert result.ok, result.message
    assert result.data["approved"] is True
    assert provider.writes == ["ok"]


def test_failed_commit_removes_new_provider_identity(file_app, admin, provider, monkeypatch):
    def _fail(*args, **kwargs):
        raise OperationalError("INSERT INTO role_assignments", {}, Exception("database is locked"))

    monkeypatch.setattr(account_service.role_service, "set_role", _fail)

    with pytest.raises(OperationalError):
        account_service.provision_staff(admin.id, "9876543210", "123456", "Asha Rao", Role.DELIVERY_STAFF)

    assert provider.find_identity(synthesize_address("9876543210", KIND_STAFF)) is None
    assert db.session.query(StaffIdentity).filter_by(phone="9876543210").first() is None


def test_leftover_provider_identity_refuses_customer_auto_approval(file_app, provider):
    db.session.add(Customer(name="Sharma Dairy Mart", phone="9811111111", is_active=True))
    db.session.commit()
    leftover = provider.create_identity(synthesize_address("9811111111", KIND_CUSTOMER), "999999")

    result = account_service.register_customer("9811111111", "123456")

    assert result.error == AuthErrorCode.CONFLICT
    # Left in place for orphan cleanup
    assert provider.find_identity(synthesize_address("9811111111", KIND_CUSTOMER)).id == leftover.id
