"""
Session provider adapter tests.

Verifies:
- address synthesis round-trips for both identity kinds
- the hosted client maps provider responses onto typed errors
- the in-memory provider revokes tokens on sign-out and delete
"""

import httpx
import pytest

from farmgate.services.session_provider import (
    HostedSessionProvider,
    MemorySessionProvider,
    ProviderCredentialsRejected,
    ProviderError,
    ProviderIdentityExistsError,
    ProviderIdentityNotFoundError,
    ProviderUnavailableError,
    build_session_provider,
    parse_address,
    synthesize_address,
)


DOMAIN = "farm.test"


def _hosted(handler):
    client = httpx.Client(base_url="https://auth.farm.test", transport=httpx.MockTransport(handler))
    return HostedSessionProvider("https://auth.farm.test", "service-key", "anon-key", client=client)


def _user(user_id="u-1", email="9876543210@farm.test"):
    return {"id": user_id, "email": email, "user_metadata": {"kind": "staff"}}


class TestAddresses:

    def test_staff_and_customer_addresses(self):
        assert synthesize_address("9876543210", "staff", DOMAIN) == "9876543210@farm.test"
        assert synthesize_address("9876543210", "customer", DOMAIN) == "customer_9876543210@farm.test"

    def test_parse_inverts_synthesize(self):
        for kind in ("staff", "customer"):
            address = synthesize_address("9876543210", kind, DOMAIN)
            assert parse_address(address, DOMAIN) == (kind, "9876543210")

    def test_foreign_domain_not_parsed(self):
        assert parse_address("9876543210@elsewhere.test", DOMAIN) is None
        assert parse_address("not-an-address", DOMAIN) is None

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            synthesize_address("9876543210", "vendor", DOMAIN)

    def test_domain_from_app_config(self, app):
        domain = app.config["IDENTITY_EMAIL_DOMAIN"]
        assert synthesize_address("9876543210", "staff") == f"9876543210@{domain}"


class TestHostedProvider:

    def test_sign_in_success(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["grant"] = request.url.params["grant_type"]
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(200, json={
                "access_token": "tok",
                "refresh_token": "ref",
                "expires_in": 600,
                "user": _user(),
            })

        session = _hosted(handler).sign_in("9876543210@farm.test", "123456")

        assert session.access_token == "tok"
        assert session.identity_id == "u-1"
        assert session.expires_in == 600
        assert seen == {"path": "/auth/v1/token", "grant": "password", "apikey": "anon-key"}

    def test_sign_in_rejected(self):
        provider = _hosted(lambda request: httpx.Response(400, json={"error_description": "Invalid login credentials"}))

        with pytest.raises(ProviderCredentialsRejected, match="Invalid login credentials"):
            provider.sign_in("9876543210@farm.test", "000000")

    def test_server_error_is_unavailable(self):
        provider = _hosted(lambda request: httpx.Response(503, text="upstream down"))

        with pytest.raises(ProviderUnavailableError):
            provider.sign_in("9876543210@farm.test", "123456")

    def test_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderUnavailableError):
            _hosted(handler).find_identity("9876543210@farm.test")

    def test_create_conflict(self):
        provider = _hosted(lambda request: httpx.Response(
            422, json={"msg": "A user with this email address has already been registered"}
        ))

        with pytest.raises(ProviderIdentityExistsError):
            provider.create_identity("9876543210@farm.test", "123456")

    def test_create_uses_service_key(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=_user("u-9"))

        identity = _hosted(handler).create_identity("9876543210@farm.test", "123456", {"kind": "staff"})

        assert identity.id == "u-9"
        assert seen["auth"] == "Bearer service-key"

    def test_update_missing_identity(self):
        provider = _hosted(lambda request: httpx.Response(404, json={"msg": "User not found"}))

        with pytest.raises(ProviderIdentityNotFoundError):
            provider.update_password("u-404", "123456")

    def test_delete_missing_is_false(self):
        assert _hosted(lambda request: httpx.Response(404, json={})).delete_identity("u-404") is False
        assert _hosted(lambda request: httpx.Response(200, json={})).delete_identity("u-1") is True

    def test_delete_unexpected_status_raises(self):
        with pytest.raises(ProviderError):
            _hosted(lambda request: httpx.Response(403, json={"msg": "forbidden"})).delete_identity("u-1")

    def test_find_identity_pages_through_users(self):
        full_page = [_user(f"u-{i}", f"9{i:09d}@farm.test") for i in range(HostedSessionProvider.PAGE_SIZE)]
        pages = {
            "1": full_page,
            "2": [_user("u-target", "customer_9876543210@farm.test")],
        }

        def handler(request):
            return httpx.Response(200, json={"users": pages.get(request.url.params["page"], [])})

        found = _hosted(handler).find_identity("CUSTOMER_9876543210@farm.test")

        assert found is not None
        assert found.id == "u-target"

    def test_expired_token_resolves_to_none(self):
        assert _hosted(lambda request: httpx.Response(401, json={})).get_identity_for_token("old") is None


class TestMemoryProvider:

    def test_sign_out_revokes_token(self):
        provider = MemorySessionProvider()
        identity = provider.create_identity("9876543210@farm.test", "123456")
        session = provider.sign_in("9876543210@farm.test", "123456")

        assert provider.get_identity_for_token(session.access_token).id == identity.id
        assert provider.sign_out(session.access_token) is True
        assert provider.get_identity_for_token(session.access_token) is None

    def test_password_update_replaces_old_pin(self):
        provider = MemorySessionProvider()
        identity = provider.create_identity("9876543210@farm.test", "123456")
        provider.update_password(identity.id, "654321")

        with pytest.raises(ProviderCredentialsRejected):
            provider.sign_in("9876543210@farm.test", "123456")
        assert provider.sign_in("9876543210@farm.test", "654321").identity_id == identity.id

    def test_delete_revokes_sessions(self):
        provider = MemorySessionProvider()
        identity = provider.create_identity("9876543210@farm.test", "123456")
        session = provider.sign_in("9876543210@farm.test", "123456")

        assert provider.delete_identity(identity.id) is True
        assert provider.delete_identity(identity.id) is False
        assert provider.get_identity_for_token(session.access_token) is None

    def test_duplicate_address(self):
        provider = MemorySessionProvider()
        provider.create_identity("9876543210@farm.test", "123456")

        with pytest.raises(ProviderIdentityExistsError):
            provider.create_identity("9876543210@FARM.test", "654321")


def test_hosted_backend_requires_credentials():
    with pytest.raises(RuntimeError):
        build_session_provider({"SESSION_PROVIDER": "hosted", "SESSION_PROVIDER_URL": "https://auth.farm.test"})
