"""
HTTP surface tests (Flask test client).

Verifies:
- status code mapping for each typed outcome
- bearer sessions resolved per request (deactivation takes effect at once)
- admin routes require a staff session; guards come from the service layer
"""

import pytest
from sqlalchemy.exc import OperationalError

from conftest import ADMIN_PHONE, ADMIN_PIN, auth_headers, login
from farmgate.permissions import Role
from farmgate.services import account_service


PHONE = "9876543210"
PIN = "123456"


def _token(resp):
    return resp.get_json()["session"]["access_token"]


class TestLogin:

    def test_staff_login_returns_session_and_role(self, client, make_staff):
        make_staff(PHONE, PIN, role=Role.DELIVERY_STAFF)

        resp = login(client, PHONE, PIN)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["identity"]["role"] == Role.DELIVERY_STAFF
        assert body["session"]["access_token"]
        assert "pin_hash" not in body["profile"]

    def test_wrong_pin_401_then_lockout_429(self, client, make_staff):
        make_staff(PHONE, PIN)

        for remaining in (3, 2, 1, 0):
            resp = login(client, PHONE, "000000")
            assert resp.status_code == 401
            assert resp.get_json()["attempts_remaining"] == remaining

        locked = login(client, PHONE, PIN)
        assert locked.status_code == 429
        body = locked.get_json()
        assert body["code"] == "ACCOUNT_LOCKED"
        assert body["locked"] is True
        assert body["retry_after_seconds"] > 0
        assert locked.headers["Retry-After"] == str(body["retry_after_seconds"])

    def test_malformed_pin_400(self, client):
        resp = login(client, PHONE, "12345")
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_missing_body_400(self, client):
        resp = client.post("/api/auth/staff/login")
        assert resp.status_code == 400

    def test_provider_outage_503(self, client, provider, make_staff):
        make_staff(PHONE, PIN)
        provider.down = True

        resp = login(client, PHONE, PIN)

        assert resp.status_code == 503
        assert resp.get_json()["code"] == "AUTHENTICATION_UNAVAILABLE"

    def test_lockout_status_endpoint(self, client, make_staff):
        make_staff(PHONE, PIN)
        login(client, PHONE, "000000")

        resp = client.get(f"/api/auth/lockout-status/{PHONE}")

        assert resp.status_code == 200
        assert resp.get_json()["failed_attempts"] == 1
        assert client.get("/api/auth/lockout-status/123").status_code == 400


class TestCustomerFlow:

    def test_register_pending_then_login_403(self, client):
        resp = client.post("/api/auth/customer/register", json={"phone": PHONE, "pin": PIN})
        assert resp.status_code == 201
        assert resp.get_json()["approved"] is False
        assert "session" not in resp.get_json()

        pending = login(client, PHONE, PIN, kind="customer")
        assert pending.status_code == 403
        assert pending.get_json()["pending"] is True

    def test_register_known_customer_auto_login(self, client, business_customer):
        resp = client.post(
            "/api/auth/customer/register",
            json={"phone": business_customer.phone, "pin": PIN},
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["approved"] is True
        validate = client.post("/api/auth/validate", headers=auth_headers(body["session"]["access_token"]))
        assert validate.get_json()["identity"]["customer_id"] == business_customer.id

    def test_manager_approves_pending_account(self, client, make_staff):
        make_staff("9000000002", "222222", role=Role.MANAGER)
        manager_headers = auth_headers(_token(login(client, "9000000002", "222222")))
        client.post("/api/auth/customer/register", json={"phone": PHONE, "pin": PIN})

        pending = client.get("/api/admin/customers?approval_state=pending", headers=manager_headers)
        account_id = pending.get_json()["accounts"][0]["id"]

        decided = client.post(
            f"/api/admin/customers/{account_id}/approval",
            json={"approve": True},
            headers=manager_headers,
        )
        assert decided.status_code == 200
        assert login(client, PHONE, PIN, kind="customer").status_code == 200


class TestSessions:

    def test_validate_and_logout(self, client, make_staff):
        make_staff(PHONE, PIN)
        headers = auth_headers(_token(login(client, PHONE, PIN)))

        assert client.post("/api/auth/validate", headers=headers).status_code == 200
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.post("/api/auth/validate", headers=headers).status_code == 401

    def test_deactivation_applies_to_live_session(self, client, admin_headers, make_staff):
        staff = make_staff(PHONE, PIN)
        headers = auth_headers(_token(login(client, PHONE, PIN)))

        resp = client.post(f"/api/admin/staff/{staff.id}/status", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200

        after = client.post("/api/auth/validate", headers=headers)
        assert after.status_code == 403
        assert after.get_json()["code"] == "ACCOUNT_INACTIVE"

    def test_change_pin_route(self, client, make_staff):
        make_staff(PHONE, PIN)
        headers = auth_headers(_token(login(client, PHONE, PIN)))

        short = client.post("/api/auth/change-pin", json={"current_pin": PIN, "new_pin": "12345"}, headers=headers)
        assert short.status_code == 400

        ok = client.post("/api/auth/change-pin", json={"current_pin": PIN, "new_pin": "654321"}, headers=headers)
        assert ok.status_code == 200
        assert login(client, PHONE, "654321").status_code == 200

    def test_profile_route_rejects_role_field(self, client, make_staff):
        make_staff(PHONE, PIN, role=Role.FARM_WORKER)
        headers = auth_headers(_token(login(client, PHONE, PIN)))

        resp = client.patch("/api/auth/profile", json={"role": Role.SUPER_ADMIN}, headers=headers)

        assert resp.status_code == 400
        assert client.post("/api/auth/validate", headers=headers).get_json()["identity"]["role"] == Role.FARM_WORKER

    def test_profile_route_store_busy_503(self, client, make_staff, monkeypatch):
        make_staff(PHONE, PIN)
        headers = auth_headers(_token(login(client, PHONE, PIN)))

        def _locked(*args, **kwargs):
            raise OperationalError("UPDATE staff_identities", {}, Exception("database is locked"))

        monkeypatch.setattr(account_service, "update_own_profile", _locked)

        resp = client.patch("/api/auth/profile", json={"full_name": "Asha Rao"}, headers=headers)

        assert resp.status_code == 503
        assert resp.get_json()["code"] == "AUTHENTICATION_UNAVAILABLE"


class TestAdmin:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/staff"),
            ("POST", "/api/admin/staff"),
            ("DELETE", "/api/admin/staff/1"),
            ("GET", "/api/admin/phone-availability/9876543210"),
            ("GET", "/api/admin/access-check?resource=cattle"),
            ("POST", "/api/auth/change-pin"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401

    def test_provision_list_and_delete(self, client, admin_headers):
        created = client.post(
            "/api/admin/staff",
            json={"phone": PHONE, "pin": PIN, "full_name": "Ravi Kumar", "role": Role.DELIVERY_STAFF},
            headers=admin_headers,
        )
        assert created.status_code == 201
        staff_id = created.get_json()["staff"]["id"]

        listed = client.get("/api/admin/staff", headers=admin_headers).get_json()
        assert PHONE in [s["phone"] for s in listed["staff"]]

        duplicate = client.post(
            "/api/admin/staff",
            json={"phone": PHONE, "pin": PIN, "full_name": "Again", "role": Role.MANAGER},
            headers=admin_headers,
        )
        assert duplicate.status_code == 409

        deleted = client.delete(f"/api/admin/staff/{staff_id}", headers=admin_headers)
        assert deleted.status_code == 200

        availability = client.get(f"/api/admin/phone-availability/{PHONE}", headers=admin_headers)
        assert availability.get_json()["status"] == "available"

    def test_non_admin_staff_forbidden(self, client, make_staff):
        make_staff(PHONE, PIN, role=Role.DELIVERY_STAFF)
        headers = auth_headers(_token(login(client, PHONE, PIN)))

        create = client.post(
            "/api/admin/staff",
            json={"phone": "9111111111", "pin": PIN, "full_name": "X", "role": Role.MANAGER},
            headers=headers,
        )
        assert create.status_code == 403
        assert create.get_json()["code"] == "UNAUTHORIZED"
        assert client.get("/api/admin/staff", headers=headers).status_code == 403

    def test_customer_session_cannot_use_admin_routes(self, client, business_customer):
        body = client.post(
            "/api/auth/customer/register",
            json={"phone": business_customer.phone, "pin": PIN},
        ).get_json()
        headers = auth_headers(body["session"]["access_token"])

        assert client.delete("/api/admin/staff/1", headers=headers).status_code == 403

    def test_super_admin_cannot_delete_self(self, client, admin_headers, super_admin):
        resp = client.delete(f"/api/admin/staff/{super_admin.id}", headers=admin_headers)
        assert resp.status_code == 403

    def test_status_requires_boolean(self, client, admin_headers, make_staff):
        staff = make_staff(PHONE, PIN)
        resp = client.post(f"/api/admin/staff/{staff.id}/status", json={"is_active": "no"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_target_404(self, client, admin_headers):
        resp = client.post("/api/admin/staff/9999/reset-pin", json={"new_pin": "777777"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_access_check(self, client, make_staff):
        make_staff(PHONE, PIN, role=Role.VET_STAFF)
        headers = auth_headers(_token(login(client, PHONE, PIN)))

        single = client.get("/api/admin/access-check?resource=cattle&operation=update", headers=headers)
        assert single.get_json()["allowed"] is False

        summary = client.get("/api/admin/access-check?resource=cattle_health", headers=headers)
        assert summary.get_json()["allowed_operations"] == ["read", "create", "update", "delete"]

    def test_security_events_gated(self, client, admin_headers, make_staff):
        make_staff(PHONE, PIN, role=Role.FARM_WORKER)
        login(client, PHONE, "000000")
        worker_headers = auth_headers(_token(login(client, PHONE, PIN)))

        assert client.get("/api/admin/security-events", headers=worker_headers).status_code == 403

        events = client.get("/api/admin/security-events?event_type=LOGIN_FAILED", headers=admin_headers)
        assert events.status_code == 200
        assert events.get_json()["count"] >= 1

    def test_admin_phone_is_bootstrapped(self, client, super_admin):
        assert login(client, ADMIN_PHONE, ADMIN_PIN).status_code == 200


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["session_provider"]["status"] == "healthy"
