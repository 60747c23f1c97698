# Overview: Flask API routes for PIN login, registration and self-service.

# backend/farmgate/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- PIN format validated before any store is touched
- Lockout after repeated failed attempts (429 with retry_after_seconds)
- Unknown phone and wrong PIN return the same 401
- Sessions issued by the hosted session provider, re-checked per request
"""

from flask import Blueprint, jsonify, current_app, g, request
from sqlalchemy.exc import OperationalError

from ..services import account_service
from ..services import lockout_service
from ..services import session_service
from ..services.session_provider import ProviderUnavailableError
from ..decorators import require_auth
from ..validation import KIND_STAFF, ValidationError, validate_identity_kind, validate_phone
from .responses import client_context, json_body, result_response, unavailable_response, validation_response


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _login(authenticate):
    try:
        data = json_body()
        result = authenticate(data.get("phone"), data.get("pin"), **client_context())
        return result_response(result)
    except (OperationalError, ProviderUnavailableError):
        current_app.logger.exception("Login dependency unavailable")
        return unavailable_response()
    except Exception:
        current_app.logger.exception("Failed to login")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/staff/login")
def staff_login_route():
    """
    Authenticate staff with phone + 6-digit PIN.

    200: identity (with role) and provider session
    401: invalid phone or PIN (attempts_remaining included)
    403: account deactivated
    429: locked, retry_after_seconds included
    503: provider session could not be established
    """
    return _login(session_service.authenticate_staff)


@auth_bp.post("/customer/login")
def customer_login_route():
    """Authenticate a customer; 403 with pending=true until approved."""
    return _login(session_service.authenticate_customer)


@auth_bp.post("/customer/register")
def customer_register_route():
    """
    Customer self-registration.

    Phones of existing active customers are approved and logged in at once;
    others are queued for approval.
    """
    try:
        data = json_body()
        result = account_service.register_customer(data.get("phone"), data.get("pin"))
        response, status = result_response(result)
        return response, 201 if result.ok else status
    except (OperationalError, ProviderUnavailableError):
        current_app.logger.exception("Registration dependency unavailable")
        return unavailable_response()
    except Exception:
        current_app.logger.exception("Failed to register customer")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/change-pin")
@require_auth
def change_pin_route():
    """Change the caller's own PIN. Requires current_pin and new_pin."""
    try:
        data = json_body()
        result = account_service.change_own_pin(
            g.principal.identity_id,
            data.get("current_pin"),
            data.get("new_pin"),
            kind=g.principal.kind,
        )
        return result_response(result)
    except OperationalError:
        current_app.logger.exception("PIN change dependency unavailable")
        return unavailable_response()
    except Exception:
        current_app.logger.exception("Failed to change PIN")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the caller's provider session."""
    try:
        revoked = session_service.logout(g.access_token, actor=g.principal)
        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401
        return jsonify({"message": "Logout successful"}), 200
    except ProviderUnavailableError:
        return unavailable_response()
    except Exception:
        current_app.logger.exception("Failed to logout")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/validate")
@require_auth
def validate_route():
    """
    Validate the bearer token and return the resolved identity.

    Frontends call this on load to decide which screens to show.
    """
    return jsonify({
        "identity": g.principal.to_dict(),
        "profile": g.identity.to_dict(),
        "message": "Session valid",
    }), 200


@auth_bp.patch("/profile")
@require_auth
def update_profile_route():
    """Update the caller's own profile (staff; full_name only)."""
    if g.principal.kind != KIND_STAFF:
        return validation_response("Customer profiles are managed by the dairy")
    try:
        result = account_service.update_own_profile(g.principal.identity_id, json_body())
        return result_response(result)
    except (OperationalError, ProviderUnavailableError):
        current_app.logger.exception("Profile update dependency unavailable")
        return unavailable_response()
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/lockout-status/<phone>")
def lockout_status_route(phone: str):
    """
    Lockout status for a phone number (kind=staff|customer query param).

    Public so the login screen can show a countdown.
    """
    try:
        phone = validate_phone(phone)
        kind = validate_identity_kind(request.args.get("kind", KIND_STAFF))
    except ValidationError as e:
        return validation_response(str(e))

    return jsonify(lockout_service.get_lockout_status(phone, kind=kind))
