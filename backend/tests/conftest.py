"""
Pytest fixtures for farmgate backend tests.

Provides an app per test (in-memory SQLite, bcrypt rounds 4), a file-backed
variant for multi-connection tests, a controllable in-memory session
provider, and identity fixtures.
"""

import pytest

from farmgate import create_app
from farmgate.config import TestingConfig
from farmgate.extensions import db
from farmgate.models import Customer
from farmgate.permissions import Role
from farmgate.services import account_service
from farmgate.services.session_provider import (
    MemorySessionProvider,
    ProviderCredentialsRejected,
    ProviderUnavailableError,
)


ADMIN_PHONE = "9000000001"
ADMIN_PIN = "246810"


class ControllableProvider(MemorySessionProvider):
    """
    In-memory provider whose failures can be switched on per test.

    - down: every call raises ProviderUnavailableError
    - reject_sign_in: sign_in always refuses credentials
    - calls: name -> number of invocations
    """

    def __init__(self):
        super().__init__(hash_rounds=4)
        self.down = False
        self.reject_sign_in = False
        self.calls = {}

    def _enter(self, name):
        self.calls[name] = self.calls.get(name, 0) + 1
        if self.down:
            raise ProviderUnavailableError("provider down")

    def sign_in(self, address, password):
        self._enter("sign_in")
        if self.reject_sign_in:
            raise ProviderCredentialsRejected("Invalid login credentials")
        return super().sign_in(address, password)

    def find_identity(self, address):
        self._enter("find_identity")
        return super().find_identity(address)

    def list_identities(self):
        self._enter("list_identities")
        return super().list_identities()

    def create_identity(self, address, password, metadata=None):
        self._enter("create_identity")
        return super().create_identity(address, password, metadata)

    def update_password(self, identity_id, password):
        self._enter("update_password")
        return super().update_password(identity_id, password)

    def delete_identity(self, identity_id):
        self._enter("delete_identity")
        return super().delete_identity(identity_id)

    def get_identity_for_token(self, access_token):
        self._enter("get_identity_for_token")
        return super().get_identity_for_token(access_token)

    def sign_out(self, access_token):
        self._enter("sign_out")
        return super().sign_out(access_token)


@pytest.fixture()
def provider():
    return ControllableProvider()


@pytest.fixture()
def app(provider):
    """Create application for testing."""
    app = create_app(TestingConfig, session_provider=provider)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_database_uri(tmp_path):
    return f"sqlite:///{tmp_path / 'farmgate.sqlite3'}"


@pytest.fixture()
def file_app(file_database_uri, provider):
    """App on a file-backed SQLite database, for tests that open more than one connection."""

    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = file_database_uri

    app = create_app(FileConfig, session_provider=provider)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def super_admin(app):
    """The bootstrapped owner account."""
    result = account_service.bootstrap_super_admin(ADMIN_PHONE, ADMIN_PIN, "Farm Owner")
    assert result.ok, result.message
    from farmgate.services import credential_store
    return credential_store.get_staff_by_phone(ADMIN_PHONE)


@pytest.fixture()
def make_staff(super_admin):
    """Factory: provision a staff member through the lifecycle API."""
    from farmgate.services import credential_store

    def _make(phone, pin="123456", role=Role.DELIVERY_STAFF, full_name="Test Staff"):
        result = account_service.provision_staff(super_admin.id, phone, pin, full_name, role)
        assert result.ok, result.message
        return credential_store.get_staff_by_phone(phone)

    return _make


@pytest.fixture()
def business_customer(app):
    customer = Customer(name="Sharma Dairy Mart", phone="9811111111", is_active=True)
    db.session.add(customer)
    db.session.commit()
    return customer


def login(client, phone, pin, kind="staff"):
    """Helper: log in and return the JSON body and status."""
    resp = client.post(f"/api/auth/{kind}/login", json={"phone": phone, "pin": pin})
    return resp


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(client, super_admin):
    resp = login(client, ADMIN_PHONE, ADMIN_PIN)
    assert resp.status_code == 200, resp.get_json()
    return auth_headers(resp.get_json()["session"]["access_token"])
