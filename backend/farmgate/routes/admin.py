# Overview: Flask API routes for account administration; parses input and returns JSON responses.

# backend/farmgate/routes/admin.py
"""
Admin routes for staff and customer account lifecycle.

Provides endpoints for:
- Staff provisioning, PIN reset, deactivation/reactivation, permanent delete
- Customer approval, status and deletion
- Phone availability and orphaned provider identity cleanup
- Authorization checks and the security audit trail

Actor guards (super_admin only, no self-targeting, super_admin targets
protected) are enforced in account_service; routes only require a staff
session.
"""

from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import OperationalError

from ..extensions import db
from ..models import APPROVAL_STATES, SecurityEvent
from ..permissions import ALL_ROLES, CUSTOMER_APPROVER_ROLES, Role
from ..services import account_service, authorization_service, credential_store
from ..services.session_provider import ProviderUnavailableError
from ..decorators import require_auth, require_staff_role, require_access
from ..validation import KIND_CUSTOMER, KIND_STAFF, ValidationError, validate_identity_kind
from .responses import json_body, result_response, unavailable_response, validation_response

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field} must be true or false")


def _run(operation, description: str, success_status: int = 200):
    """Call a service returning AuthResult and map infrastructure failures to 503."""
    try:
        result = operation()
        response, status = result_response(result)
        return response, success_status if result.ok else status
    except ValidationError as e:
        return validation_response(str(e))
    except (OperationalError, ProviderUnavailableError):
        current_app.logger.exception("Dependency unavailable while trying to %s", description)
        return unavailable_response()
    except Exception:
        current_app.logger.exception("Failed to %s", description)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STAFF
# =============================================================================

@admin_bp.get("/staff")
@require_auth
@require_access("staff_identities", "read")
def list_staff():
    """
    List staff identities with their assigned roles.

    Query params:
    - include_inactive: bool (default false)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    staff = credential_store.list_staff(include_inactive=include_inactive)
    return jsonify({"staff": [s.to_dict() for s in staff], "count": len(staff)})


@admin_bp.post("/staff")
@require_auth
@require_staff_role(*ALL_ROLES)
def create_staff():
    """
    Provision a staff member.

    Body: {"phone", "pin", "full_name", "role"}
    409 when the phone is in use, belongs to a deactivated account, or has an
    orphaned provider identity.
    """
    data = json_body()
    return _run(
        lambda: account_service.provision_staff(
            g.principal.identity_id,
            data.get("phone"),
            data.get("pin"),
            data.get("full_name"),
            data.get("role"),
        ),
        "provision staff",
        success_status=201,
    )


@admin_bp.post("/staff/<int:staff_id>/reset-pin")
@require_auth
@require_staff_role(*ALL_ROLES)
def reset_staff_pin(staff_id: int):
    """Body: {"new_pin"}. Clears the target's lockout."""
    data = json_body()
    return _run(
        lambda: account_service.admin_reset_pin(g.principal.identity_id, staff_id, data.get("new_pin")),
        "reset staff PIN",
    )


def _update_status(target_id: int, kind: str):
    data = json_body()
    try:
        is_active = _parse_bool(data.get("is_active"), "is_active")
    except ValidationError as e:
        return validation_response(str(e))

    return _run(
        lambda: account_service.admin_update_status(
            g.principal.identity_id,
            target_id,
            is_active,
            kind=kind,
            new_pin=data.get("new_pin"),
            role=data.get("role"),
        ),
        f"update {kind} status",
    )


@admin_bp.post("/staff/<int:staff_id>/status")
@require_auth
@require_staff_role(*ALL_ROLES)
def update_staff_status(staff_id: int):
    """
    Body: {"is_active": false} to deactivate (PIN cleared, role kept), or
    {"is_active": true, "new_pin": "...", "role": optional} to reactivate.
    """
    return _update_status(staff_id, KIND_STAFF)


@admin_bp.delete("/staff/<int:staff_id>")
@require_auth
@require_staff_role(*ALL_ROLES)
def delete_staff(staff_id: int):
    """Permanently delete from provider, role assignments and credential store."""
    return _run(
        lambda: account_service.admin_permanent_delete(g.principal.identity_id, staff_id),
        "delete staff",
    )


# =============================================================================
# CUSTOMERS
# =============================================================================

@admin_bp.get("/customers")
@require_auth
@require_staff_role(*CUSTOMER_APPROVER_ROLES)
def list_customer_accounts():
    """
    List customer portal accounts.

    Query params:
    - approval_state: pending | approved | rejected
    """
    approval_state = request.args.get("approval_state")
    if approval_state and approval_state not in APPROVAL_STATES:
        return validation_response(f"Invalid approval_state '{approval_state}'")

    accounts = credential_store.list_customer_accounts(approval_state=approval_state)
    return jsonify({"accounts": [a.to_dict() for a in accounts], "count": len(accounts)})


@admin_bp.post("/customers/<int:account_id>/approval")
@require_auth
@require_staff_role(*CUSTOMER_APPROVER_ROLES)
def decide_customer(account_id: int):
    """Body: {"approve": true|false}."""
    data = json_body()
    try:
        approve = _parse_bool(data.get("approve", True), "approve")
    except ValidationError as e:
        return validation_response(str(e))

    return _run(
        lambda: account_service.approve_customer(g.principal.identity_id, account_id, approve),
        "decide customer approval",
    )


@admin_bp.post("/customers/<int:account_id>/status")
@require_auth
@require_staff_role(*ALL_ROLES)
def update_customer_status(account_id: int):
    return _update_status(account_id, KIND_CUSTOMER)


@admin_bp.delete("/customers/<int:account_id>")
@require_auth
@require_staff_role(*ALL_ROLES)
def delete_customer(account_id: int):
    return _run(
        lambda: account_service.admin_permanent_delete(g.principal.identity_id, account_id, kind=KIND_CUSTOMER),
        "delete customer account",
    )


# =============================================================================
# PHONE AVAILABILITY / ORPHANS
# =============================================================================

@admin_bp.get("/phone-availability/<phone>")
@require_auth
@require_staff_role(Role.SUPER_ADMIN)
def phone_availability(phone: str):
    """
    Classify a phone number: available, in_use_active, in_use_inactive or
    orphaned_external. Query param kind=staff|customer (default staff).
    """
    try:
        kind = validate_identity_kind(request.args.get("kind", KIND_STAFF))
        return jsonify(account_service.check_phone_availability(phone, kind))
    except ValidationError as e:
        return validation_response(str(e))
    except ProviderUnavailableError:
        current_app.logger.exception("Session provider unavailable during phone check")
        return unavailable_response()


@admin_bp.post("/orphans/cleanup")
@require_auth
@require_staff_role(*ALL_ROLES)
def cleanup_orphans():
    """Body: {"dry_run": bool}. Deletes provider identities with no internal row."""
    dry_run = bool(json_body().get("dry_run", False))
    return _run(
        lambda: account_service.cleanup_orphaned_identities(g.principal.identity_id, dry_run=dry_run),
        "clean up orphaned identities",
    )


# =============================================================================
# AUTHORIZATION / AUDIT
# =============================================================================

@admin_bp.get("/access-check")
@require_auth
def access_check():
    """
    Evaluate the authorization gate for the caller.

    Query params: resource (required), operation (optional), customer_id
    (record owner, for customer-scoped resources).
    """
    resource = request.args.get("resource")
    if not resource:
        return validation_response("resource is required")

    operation = request.args.get("operation")
    record_customer_id = request.args.get("customer_id", type=int)

    if operation:
        allowed = authorization_service.evaluate(g.principal, resource, operation, record_customer_id)
        return jsonify({"resource": resource, "operation": operation, "allowed": allowed})

    return jsonify({
        "resource": resource,
        "allowed_operations": authorization_service.allowed_operations(g.principal, resource, record_customer_id),
    })


@admin_bp.get("/security-events")
@require_auth
@require_access("activity_logs", "read")
def list_security_events():
    """
    Recent security events.

    Query params:
    - event_type: filter
    - limit: default 100, max 500
    """
    limit = min(request.args.get("limit", 100, type=int) or 100, 500)
    query = db.session.query(SecurityEvent)
    event_type = request.args.get("event_type")
    if event_type:
        query = query.filter_by(event_type=event_type)
    events = query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
    return jsonify({"events": [e.to_dict() for e in events], "count": len(events)})
