# Overview: Administrative and self-service account lifecycle across both identity stores.

"""
Account Lifecycle

States per identity:

    [nonexistent] --provision/register--> [active]
    [active]      --deactivate-->          [inactive]   (PIN cleared, role kept)
    [inactive]    --reactivate(PIN, role)-> [active]
    [any]         --permanent delete-->    [nonexistent]

Guards for administrative transitions are checked in one place
(_lifecycle_guard) before anything is written:
- the actor must hold super_admin
- a super_admin target cannot be deactivated or deleted
- an identity cannot deactivate or delete itself

CROSS-STORE ORDER:
- provisioning creates the provider identity first, with no transaction
  open, then inserts and commits the internal rows; a failed commit deletes
  the provider identity again
- permanent delete removes the provider identity first, then the internal
  rows; re-running after a partial failure completes the delete
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    Customer,
    CustomerIdentity,
    RoleAssignment,
    StaffIdentity,
)
from ..permissions import CUSTOMER_APPROVER_ROLES, Role
from ..validation import (
    KIND_CUSTOMER,
    KIND_STAFF,
    ValidationError,
    mask_phone,
    validate_full_name,
    validate_identity_kind,
    validate_phone,
    validate_pin,
    validate_role,
)
from . import credential_store, lockout_service, reconciler_service, role_service
from .authorization_service import log_security_event
from .hashing_service import hash_pin, verify_pin
from .session_service import principal_for
from .results import AuthErrorCode, AuthResult, invalid_credentials, unauthorized, validation_failure
from .session_provider import (
    ProviderError,
    ProviderIdentityExistsError,
    get_session_provider,
    parse_address,
    synthesize_address,
)
from farmgate.time_utils import utcnow


# Phone availability classification
AVAILABLE = "available"
IN_USE_ACTIVE = "in_use_active"
IN_USE_INACTIVE = "in_use_inactive"
ORPHANED_EXTERNAL = "orphaned_external"

PLACEHOLDER_CUSTOMER_NAME = "Pending Registration"

# Fields a signed-in identity may change on its own profile
SELF_EDITABLE_FIELDS = {"full_name"}


def _not_found(kind: str) -> AuthResult:
    label = "Customer account" if kind == KIND_CUSTOMER else "Staff member"
    return AuthResult.failure(AuthErrorCode.NOT_FOUND, f"{label} not found")


def _conflict(message: str, **data) -> AuthResult:
    return AuthResult.failure(AuthErrorCode.CONFLICT, message, data=data)


def _actor_role(actor_id: int | None) -> str | None:
    if actor_id is None:
        return None
    actor = credential_store.get_staff(actor_id)
    if actor is None or not actor.is_active:
        return None
    return role_service.get_role(actor_id)


def _require_super_admin(actor_id: int | None) -> AuthResult | None:
    if _actor_role(actor_id) != Role.SUPER_ADMIN:
        return unauthorized()
    return None


def _lifecycle_guard(actor_id: int | None, target, kind: str, action: str) -> AuthResult | None:
    """
    Single check point for administrative transitions on an existing target.

    action is "deactivate", "delete" or "update". Returns a failure result or
    None when the transition may proceed.
    """
    denied = _require_super_admin(actor_id)
    if denied:
        return denied

    if target is None:
        return _not_found(kind)

    if kind == KIND_STAFF and action in ("deactivate", "delete"):
        if target.id == actor_id:
            return unauthorized(f"You cannot {action} your own account")
        if role_service.get_role(target.id) == Role.SUPER_ADMIN:
            return unauthorized(f"A super_admin account cannot be {action}d")

    return None


def _audit(actor_id, event_type: str, target_kind: str, target, reason: str | None = None, success: bool = True):
    log_security_event(
        actor_id=actor_id,
        event_type=event_type,
        success=success,
        resource=f"{target_kind}:{target.id}",
        action=event_type.lower(),
        reason=reason,
    )


# =============================================================================
# AVAILABILITY
# =============================================================================

def check_phone_availability(phone, kind: str = KIND_STAFF) -> dict:
    """
    Classify a phone number across the internal store and the provider.

    Returns dict with:
    - status: available | in_use_active | in_use_inactive | orphaned_external
    - identity_id / external_user_id when known

    Raises ValidationError for malformed input and ProviderUnavailableError
    when the provider cannot be asked.
    """
    phone = validate_phone(phone)
    validate_identity_kind(kind)

    result = {"phone": phone, "kind": kind, "identity_id": None, "external_user_id": None}

    identity = credential_store.get_identity_by_phone(phone, kind)
    if identity is not None:
        result["identity_id"] = identity.id
        result["external_user_id"] = identity.external_user_id
        result["status"] = IN_USE_ACTIVE if identity.is_active else IN_USE_INACTIVE
        if kind == KIND_STAFF:
            result["role"] = identity.role
        return result

    external = get_session_provider().find_identity(synthesize_address(phone, kind))
    if external is not None:
        result["external_user_id"] = external.id
        result["status"] = ORPHANED_EXTERNAL
        return result

    result["status"] = AVAILABLE
    return result


def _refuse_unavailable(availability: dict) -> AuthResult:
    status = availability["status"]
    if status == IN_USE_ACTIVE:
        return _conflict("Phone number already in use by an active account", availability=availability)
    if status == IN_USE_INACTIVE:
        return _conflict(
            "Phone number belongs to a deactivated account; reactivate it instead",
            availability=availability,
        )
    return _conflict(
        "Phone number has a leftover login at the session provider; run orphan cleanup first",
        availability=availability,
    )


# =============================================================================
# PROVISIONING AND REGISTRATION
# =============================================================================

def _create_provider_identity(identity, kind: str, pin: str):
    """
    Create the provider login for a transient identity.

    Returns (external_identity, None) or (None, failure result).
    """
    try:
        return reconciler_service.create_identity(identity, kind, pin), None
    except ProviderIdentityExistsError:
        return None, _conflict(
            "Phone number has a leftover login at the session provider; run orphan cleanup first"
        )
    except ProviderError:
        current_app.logger.exception("Provider identity creation failed for %s %s", kind, mask_phone(identity.phone))
        return None, reconciler_service.unavailable("Could not create login at the session provider")


def _persist_with_provider_identity(external_id: str, write) -> None:
    """
    Run write() and commit; on any failure roll back and delete the
    just-created provider identity.
    """
    try:
        write()
        db.session.commit()
    except Exception:
        db.session.rollback()
        try:
            get_session_provider().delete_identity(external_id)
        except ProviderError:
            current_app.logger.exception("Failed to remove provider identity %s after rollback", external_id)
        raise


def provision_staff(actor_id: int, phone, pin, full_name, role) -> AuthResult:
    """Create an active staff identity with PIN, role and provider identity."""
    try:
        phone = validate_phone(phone)
        validate_pin(pin)
        full_name = validate_full_name(full_name)
        validate_role(role)
    except ValidationError as e:
        return validation_failure(str(e))

    denied = _require_super_admin(actor_id)
    if denied:
        return denied

    availability = check_phone_availability(phone, KIND_STAFF)
    if availability["status"] != AVAILABLE:
        return _refuse_unavailable(availability)

    staff = StaffIdentity(
        full_name=full_name,
        phone=phone,
        pin_hash=hash_pin(pin),
        is_active=True,
    )
    external, failure = _create_provider_identity(staff, KIND_STAFF, pin)
    if failure:
        return failure
    staff.external_user_id = external.id

    def _write():
        db.session.add(staff)
        db.session.flush()
        role_service.set_role(staff.id, role, assigned_by_id=actor_id, commit=False)

    try:
        _persist_with_provider_identity(external.id, _write)
    except IntegrityError:
        return _conflict("Phone number already in use by an active account")

    _audit(actor_id, "STAFF_PROVISIONED", KIND_STAFF, staff, reason=f"role={role}")
    current_app.logger.info("Provisioned staff %s as %s", mask_phone(phone), role)

    return AuthResult.success("Staff member created", data={"staff": staff.to_dict()})


def register_customer(phone, pin) -> AuthResult:
    """
    Customer self-registration.

    - phone of an active business customer: approved immediately, provider
      identity created, and a session returned (auto-login)
    - unknown phone: inactive placeholder customer + pending account, no session
    """
    try:
        phone = validate_phone(phone)
        validate_pin(pin)
    except ValidationError as e:
        return validation_failure(str(e))

    if credential_store.get_customer_account_by_phone(phone) is not None:
        return _conflict("An account with this phone number already exists")

    customer = credential_store.get_business_customer_by_phone(phone)
    auto_approve = customer is not None and customer.is_active

    if not auto_approve:
        if customer is None:
            customer = Customer(name=PLACEHOLDER_CUSTOMER_NAME, phone=phone, is_active=False)
            db.session.add(customer)
            db.session.flush()

        account = CustomerIdentity(
            customer_id=customer.id,
            phone=phone,
            pin_hash=hash_pin(pin),
            approval_state=APPROVAL_PENDING,
            is_active=True,
        )
        db.session.add(account)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return _conflict("An account with this phone number already exists")

        log_security_event(
            actor_id=account.id,
            actor_kind=KIND_CUSTOMER,
            event_type="CUSTOMER_REGISTERED",
            success=True,
            resource=f"{KIND_CUSTOMER}:{account.id}",
            action="register",
            reason="pending approval",
        )
        return AuthResult.success(
            "Registration submitted. Your account is pending approval.",
            data={"approved": False, "customer_id": customer.id},
        )

    account = CustomerIdentity(
        customer_id=customer.id,
        phone=phone,
        pin_hash=hash_pin(pin),
        approval_state=APPROVAL_APPROVED,
        approved_at=utcnow(),
        is_active=True,
    )
    external, failure = _create_provider_identity(account, KIND_CUSTOMER, pin)
    if failure:
        return failure
    account.external_user_id = external.id

    try:
        _persist_with_provider_identity(external.id, lambda: db.session.add(account))
    except IntegrityError:
        return _conflict("An account with this phone number already exists")

    log_security_event(
        actor_id=account.id,
        actor_kind=KIND_CUSTOMER,
        event_type="CUSTOMER_REGISTERED",
        success=True,
        resource=f"{KIND_CUSTOMER}:{account.id}",
        action="register",
        reason="auto-approved",
    )

    data = {"approved": True, "customer_id": customer.id}
    session_result = reconciler_service.establish_session(account, KIND_CUSTOMER, pin)
    if not session_result.ok:
        # Registered; the customer can still log in once the provider recovers
        return AuthResult.success("Registration complete. Please log in.", data=data)

    credential_store.record_login(account)
    return AuthResult.success(
        "Registration complete",
        principal=principal_for(account, KIND_CUSTOMER),
        session=session_result.session,
        data=data,
    )


def approve_customer(actor_id: int, account_id: int, approve: bool = True) -> AuthResult:
    """
    Decide a pending customer registration (super_admin or manager).

    Approval activates the linked business customer. The provider identity is
    created by the reconciler on the customer's first login, since the PIN
    is only known in plaintext at that point.
    """
    if _actor_role(actor_id) not in CUSTOMER_APPROVER_ROLES:
        return unauthorized("Only super_admin or manager can approve customer accounts")

    account = credential_store.get_customer_account(account_id)
    if account is None:
        return _not_found(KIND_CUSTOMER)

    if account.approval_state != APPROVAL_PENDING:
        return _conflict(f"Account is already {account.approval_state}")

    if approve:
        account.approval_state = APPROVAL_APPROVED
        account.approved_at = utcnow()
        account.approved_by_id = actor_id
        account.is_active = True
        if account.customer is not None:
            account.customer.is_active = True
        event_type = "CUSTOMER_APPROVED"
    else:
        account.approval_state = APPROVAL_REJECTED
        account.is_active = False
        event_type = "CUSTOMER_REJECTED"

    account.updated_at = utcnow()
    db.session.commit()
    _audit(actor_id, event_type, KIND_CUSTOMER, account)

    return AuthResult.success(
        "Customer account approved" if approve else "Customer account rejected",
        data={"account": account.to_dict()},
    )


def bootstrap_super_admin(phone, pin, full_name) -> AuthResult:
    """
    Create (or promote) the first super_admin.

    Refused once any other identity holds super_admin.
    """
    try:
        phone = validate_phone(phone)
        validate_pin(pin)
        full_name = validate_full_name(full_name)
    except ValidationError as e:
        return validation_failure(str(e))

    existing_admin = (
        db.session.query(StaffIdentity)
        .join(RoleAssignment, RoleAssignment.identity_id == StaffIdentity.id)
        .filter(RoleAssignment.role == Role.SUPER_ADMIN, StaffIdentity.phone != phone)
        .first()
    )
    if existing_admin is not None:
        return _conflict("A super_admin already exists")

    staff = credential_store.get_staff_by_phone(phone)
    if staff is None:
        staff = StaffIdentity(full_name=full_name, phone=phone)
        db.session.add(staff)
    staff.full_name = full_name
    staff.pin_hash = hash_pin(pin)
    staff.is_active = True
    staff.updated_at = utcnow()
    db.session.flush()

    role_service.set_role(staff.id, Role.SUPER_ADMIN, commit=False)
    db.session.commit()
    lockout_service.clear_lockout(phone, kind=KIND_STAFF)

    try:
        external = reconciler_service.ensure_identity(staff, KIND_STAFF, pin)
        credential_store.set_external_user_id(staff, external.id)
    except ProviderError:
        # Repaired by the reconciler at first login
        current_app.logger.warning("Provider identity for bootstrap admin not created", exc_info=True)

    _audit(None, "SUPER_ADMIN_BOOTSTRAPPED", KIND_STAFF, staff)
    return AuthResult.success("Super admin ready", data={"staff": staff.to_dict()})


# =============================================================================
# PIN MANAGEMENT
# =============================================================================

def change_own_pin(identity_id: int, current_pin, new_pin, *, kind: str = KIND_STAFF) -> AuthResult:
    """
    Self-service PIN change.

    Both PINs are validated before any store is read. The current PIN is
    verified under the same lockout rules as login.
    """
    try:
        validate_pin(current_pin, field="Current PIN")
        validate_pin(new_pin, field="New PIN")
    except ValidationError as e:
        return validation_failure(str(e))

    identity = credential_store.get_identity(identity_id, kind)
    if identity is None:
        return _not_found(kind)
    if not identity.is_active:
        return AuthResult.failure(AuthErrorCode.ACCOUNT_INACTIVE, "Account is deactivated")

    locked, seconds_remaining = lockout_service.is_locked(identity.phone, kind=kind)
    if locked:
        return AuthResult.failure(
            AuthErrorCode.ACCOUNT_LOCKED,
            "Account temporarily locked due to too many failed attempts",
            retry_after_seconds=seconds_remaining,
        )

    if not verify_pin(current_pin, identity.pin_hash):
        lockout_service.record_failure(identity.phone, kind=kind)
        result = invalid_credentials()
        result.message = "Current PIN is incorrect"
        return result

    lockout_service.record_success(identity.phone, kind=kind)
    credential_store.set_pin(identity, new_pin)
    synced = reconciler_service.sync_password(identity, kind, new_pin)

    log_security_event(
        actor_id=identity.id,
        actor_kind=kind,
        event_type="PIN_CHANGED",
        success=True,
        resource=f"{kind}:{identity.id}",
        action="change_pin",
    )
    return AuthResult.success("PIN updated", data={"provider_synced": synced})


def admin_reset_pin(actor_id: int, target_id: int, new_pin, *, kind: str = KIND_STAFF) -> AuthResult:
    """Set a new PIN for another identity and clear its lockout (super_admin only)."""
    try:
        validate_pin(new_pin, field="New PIN")
        validate_identity_kind(kind)
    except ValidationError as e:
        return validation_failure(str(e))

    target = credential_store.get_identity(target_id, kind)
    denied = _lifecycle_guard(actor_id, target, kind, "update")
    if denied:
        return denied

    if not target.is_active:
        return _conflict("Account is deactivated; reactivate it with a new PIN instead")

    credential_store.set_pin(target, new_pin)
    lockout_service.clear_lockout(target.phone, kind=kind)
    synced = reconciler_service.sync_password(target, kind, new_pin)

    _audit(actor_id, "PIN_RESET", kind, target)
    return AuthResult.success("PIN reset", data={"provider_synced": synced})


# =============================================================================
# STATUS AND DELETION
# =============================================================================

def admin_update_status(
    actor_id: int,
    target_id: int,
    is_active: bool,
    *,
    kind: str = KIND_STAFF,
    new_pin=None,
    role: str | None = None,
) -> AuthResult:
    """
    Deactivate or reactivate an identity.

    Deactivation clears the PIN and keeps the role. Reactivation requires a
    new PIN; role defaults to the one kept from before deactivation.
    """
    try:
        validate_identity_kind(kind)
        if is_active:
            validate_pin(new_pin, field="New PIN")
            if role is not None:
                validate_role(role)
    except ValidationError as e:
        return validation_failure(str(e))

    target = credential_store.get_identity(target_id, kind)
    denied = _lifecycle_guard(actor_id, target, kind, "update" if is_active else "deactivate")
    if denied:
        return denied

    if not is_active:
        if not target.is_active:
            return AuthResult.success("Account already deactivated", data={"identity": target.to_dict()})
        target.is_active = False
        credential_store.clear_pin(target, commit=False)
        db.session.commit()
        _audit(actor_id, f"{kind.upper()}_DEACTIVATED", kind, target)
        return AuthResult.success("Account deactivated", data={"identity": target.to_dict()})

    if target.is_active:
        return _conflict("Account is already active")

    if kind == KIND_STAFF:
        effective_role = role or role_service.get_role(target.id)
        if effective_role is None:
            return validation_failure("Role is required to reactivate this account")
        role_service.set_role(target.id, effective_role, assigned_by_id=actor_id, commit=False)
    elif not target.is_approved:
        return _conflict("Account has not been approved")

    target.is_active = True
    credential_store.set_pin(target, new_pin, commit=False)
    db.session.commit()

    lockout_service.clear_lockout(target.phone, kind=kind)
    synced = reconciler_service.sync_password(target, kind, new_pin)

    _audit(actor_id, f"{kind.upper()}_REACTIVATED", kind, target)
    return AuthResult.success(
        "Account reactivated",
        data={"identity": target.to_dict(), "provider_synced": synced},
    )


def _delete_provider_identities(target, kind: str) -> int:
    """Remove every provider identity tied to target. Provider errors propagate."""
    provider = get_session_provider()
    external_ids = set()
    if target.external_user_id:
        external_ids.add(target.external_user_id)
    found = provider.find_identity(synthesize_address(target.phone, kind))
    if found is not None:
        external_ids.add(found.id)

    deleted = 0
    for external_id in external_ids:
        if provider.delete_identity(external_id):
            deleted += 1
    return deleted


def admin_permanent_delete(actor_id: int, target_id: int, *, kind: str = KIND_STAFF) -> AuthResult:
    """
    Remove an identity from the provider, role_assignments and the credential
    store. The provider goes first; if it fails nothing internal is deleted and
    the failure is reported.
    """
    try:
        validate_identity_kind(kind)
    except ValidationError as e:
        return validation_failure(str(e))

    target = credential_store.get_identity(target_id, kind)
    denied = _lifecycle_guard(actor_id, target, kind, "delete")
    if denied:
        return denied

    try:
        removed_external = _delete_provider_identities(target, kind)
    except ProviderError:
        current_app.logger.exception("Provider delete failed for %s %s", kind, mask_phone(target.phone))
        return reconciler_service.unavailable(
            "Could not remove the login at the session provider; nothing was deleted"
        )

    phone = target.phone
    if kind == KIND_STAFF:
        # Null out references that would otherwise rely on ON DELETE SET NULL
        db.session.query(CustomerIdentity).filter_by(approved_by_id=target.id).update(
            {"approved_by_id": None}, synchronize_session=False
        )
        db.session.query(RoleAssignment).filter_by(assigned_by_id=target.id).update(
            {"assigned_by_id": None}, synchronize_session=False
        )
        # role_assignment goes with the row (delete-orphan cascade)
        db.session.delete(target)
    else:
        customer = target.customer
        db.session.delete(target)
        if customer is not None and not customer.is_active and customer.name == PLACEHOLDER_CUSTOMER_NAME:
            db.session.flush()
            remaining = db.session.query(CustomerIdentity).filter_by(customer_id=customer.id).count()
            if not remaining:
                db.session.delete(customer)

    db.session.commit()
    lockout_service.clear_lockout(phone, kind=kind)

    log_security_event(
        actor_id=actor_id,
        event_type=f"{kind.upper()}_DELETED",
        success=True,
        resource=f"{kind}:{target_id}",
        action="permanent_delete",
        reason=f"phone {mask_phone(phone)}",
    )
    return AuthResult.success(
        "Account permanently deleted",
        data={"provider_identities_removed": removed_external},
    )


# =============================================================================
# ORPHAN CLEANUP
# =============================================================================

def find_orphaned_identities(exclude_ids: set[str] | None = None) -> list[dict]:
    """
    Provider identities under our address domain with no internal row.

    Addresses outside the domain are never considered.
    """
    exclude_ids = exclude_ids or set()
    known = credential_store.known_phones()

    orphans = []
    for external in get_session_provider().list_identities():
        if external.id in exclude_ids:
            continue
        parsed = parse_address(external.address)
        if parsed is None or parsed in known:
            continue
        kind, phone = parsed
        orphans.append({"id": external.id, "address": external.address, "kind": kind, "phone": phone})
    return orphans


def delete_orphaned_identities(*, actor_id: int | None = None, exclude_ids=None, dry_run: bool = False) -> dict:
    orphans = find_orphaned_identities(exclude_ids)
    deleted = 0
    if not dry_run:
        provider = get_session_provider()
        for orphan in orphans:
            if provider.delete_identity(orphan["id"]):
                deleted += 1
                log_security_event(
                    actor_id=actor_id,
                    event_type="ORPHAN_IDENTITY_DELETED",
                    success=True,
                    resource=f"{orphan['kind']}:{mask_phone(orphan['phone'])}",
                    action="cleanup_orphans",
                )
    return {"orphans": orphans, "deleted": deleted, "dry_run": dry_run}


def cleanup_orphaned_identities(actor_id: int, *, dry_run: bool = False) -> AuthResult:
    """Delete leftover provider identities (super_admin only, never the actor's own)."""
    denied = _require_super_admin(actor_id)
    if denied:
        return denied

    actor = credential_store.get_staff(actor_id)
    exclude = {actor.external_user_id} if actor.external_user_id else set()
    summary = delete_orphaned_identities(actor_id=actor_id, exclude_ids=exclude, dry_run=dry_run)
    return AuthResult.success(
        f"Removed {summary['deleted']} orphaned identities" if not dry_run else "Dry run",
        data=summary,
    )


# =============================================================================
# PROFILE
# =============================================================================

def update_own_profile(identity_id: int, changes: dict) -> AuthResult:
    """
    Self-service profile edit for staff.

    Only SELF_EDITABLE_FIELDS are accepted. Role, status, phone and PIN are
    not reachable from here.
    """
    if not isinstance(changes, dict) or not changes:
        return validation_failure("No changes supplied")

    forbidden = sorted(set(changes) - SELF_EDITABLE_FIELDS)
    if forbidden:
        return validation_failure(f"Field(s) not editable: {', '.join(forbidden)}")

    try:
        full_name = validate_full_name(changes.get("full_name"))
    except ValidationError as e:
        return validation_failure(str(e))

    staff = credential_store.get_staff(identity_id)
    if staff is None:
        return _not_found(KIND_STAFF)

    staff.full_name = full_name
    staff.updated_at = utcnow()
    db.session.commit()
    return AuthResult.success("Profile updated", data={"profile": staff.to_dict()})
