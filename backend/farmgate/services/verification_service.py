# Overview: PIN verification for staff and customer identities (lockout-aware).

"""
Credential Verifier

Order of checks (both identity kinds):
1. Lockout window active -> ACCOUNT_LOCKED; the identity row is not read
2. Unknown phone -> count a failure, INVALID_CREDENTIALS
3. Inactive identity -> ACCOUNT_INACTIVE; the ledger is untouched
4. Wrong PIN -> count a failure, INVALID_CREDENTIALS
5. Correct PIN -> clear the ledger; customers must also be approved
   (checked only after the PIN matched so a guesser learns nothing)

Unknown phone and wrong PIN produce the same result and the same ledger
effect, so the response does not reveal which phone numbers exist.
"""

from __future__ import annotations

from flask import current_app

from . import credential_store, lockout_service, role_service
from .authorization_service import log_security_event
from .hashing_service import verify_pin
from .results import AuthErrorCode, AuthResult, Principal, invalid_credentials, validation_failure
from ..validation import (
    KIND_CUSTOMER,
    KIND_STAFF,
    ValidationError,
    mask_phone,
    validate_phone,
    validate_pin,
)


def _locked_result(seconds_remaining: int | None) -> AuthResult:
    return AuthResult.failure(
        AuthErrorCode.ACCOUNT_LOCKED,
        "Account temporarily locked due to too many failed attempts",
        retry_after_seconds=seconds_remaining,
    )


def _count_failure(phone: str, kind: str, *, reason: str, ip_address, user_agent) -> AuthResult:
    failed_count = lockout_service.record_failure(phone, kind=kind)
    threshold = lockout_service.lockout_threshold()

    log_security_event(
        actor_id=None,
        event_type="LOGIN_FAILED",
        success=False,
        resource=f"{kind}:{mask_phone(phone)}",
        action="verify_pin",
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    if failed_count >= threshold:
        current_app.logger.warning("Lockout engaged for %s login %s", kind, mask_phone(phone))
        log_security_event(
            actor_id=None,
            event_type="ACCOUNT_LOCKED",
            success=False,
            resource=f"{kind}:{mask_phone(phone)}",
            action="verify_pin",
            reason=f"{failed_count} consecutive failed attempts",
            ip_address=ip_address,
            user_agent=user_agent,
        )

    result = invalid_credentials()
    result.data["attempts_remaining"] = max(threshold - failed_count, 0)
    return result


def _verify(phone, pin, kind: str, *, ip_address=None, user_agent=None) -> AuthResult:
    try:
        phone = validate_phone(phone)
        validate_pin(pin)
    except ValidationError as e:
        return validation_failure(str(e))

    locked, seconds_remaining = lockout_service.is_locked(phone, kind=kind)
    if locked:
        return _locked_result(seconds_remaining)

    identity = credential_store.get_identity_by_phone(phone, kind)
    if identity is None:
        # Same bcrypt cost as a wrong PIN
        verify_pin(pin, None)
        return _count_failure(phone, kind, reason="Unknown phone", ip_address=ip_address, user_agent=user_agent)

    if not identity.is_active:
        return AuthResult.failure(AuthErrorCode.ACCOUNT_INACTIVE, "Account is deactivated")

    if not verify_pin(pin, identity.pin_hash):
        return _count_failure(phone, kind, reason="Wrong PIN", ip_address=ip_address, user_agent=user_agent)

    lockout_service.record_success(phone, kind=kind)

    if kind == KIND_CUSTOMER:
        if not identity.is_approved:
            return AuthResult.failure(
                AuthErrorCode.PENDING_APPROVAL,
                "Account pending approval",
            )
        principal = Principal(
            kind=KIND_CUSTOMER,
            identity_id=identity.id,
            phone=identity.phone,
            customer_id=identity.customer_id,
            approval_state=identity.approval_state,
        )
    else:
        principal = Principal(
            kind=KIND_STAFF,
            identity_id=identity.id,
            phone=identity.phone,
            role=role_service.get_role(identity.id),
        )

    return AuthResult.success("PIN verified", principal=principal)


def verify_staff_pin(phone, pin, *, ip_address=None, user_agent=None) -> AuthResult:
    """Resolve phone + PIN to a staff principal carrying its assigned role."""
    return _verify(phone, pin, KIND_STAFF, ip_address=ip_address, user_agent=user_agent)


def verify_customer_pin(phone, pin, *, ip_address=None, user_agent=None) -> AuthResult:
    """Resolve phone + PIN to an approved customer principal."""
    return _verify(phone, pin, KIND_CUSTOMER, ip_address=ip_address, user_agent=user_agent)
