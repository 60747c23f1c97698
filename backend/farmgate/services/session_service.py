# Overview: Login, logout and per-request session resolution over the hosted provider.

"""
Session Service

Sessions are issued by the hosted session provider. This module ties them to
internal identities:

- authenticate_*: verify the PIN internally, then let the reconciler obtain
  a provider session
- resolve_session: bearer token -> internal identity, re-checking active and
  approval state on every request (no cached verification results)
- logout: revoke the provider session
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from . import credential_store, reconciler_service, role_service
from .authorization_service import log_security_event
from .results import AuthErrorCode, AuthResult, Principal
from .session_provider import ProviderError, get_session_provider, parse_address
from .verification_service import verify_customer_pin, verify_staff_pin
from ..models import CustomerIdentity
from ..validation import KIND_CUSTOMER, KIND_STAFF


@dataclass
class SessionContext:
    """Resolved caller for an authenticated request."""
    principal: Principal
    identity: object
    access_token: str


def _authenticate(verify, kind: str, phone, pin, *, ip_address=None, user_agent=None) -> AuthResult:
    result = verify(phone, pin, ip_address=ip_address, user_agent=user_agent)
    if not result.ok:
        return result

    principal = result.principal
    identity = credential_store.get_identity(principal.identity_id, kind)

    session_result = reconciler_service.establish_session(identity, kind, pin)
    if not session_result.ok:
        log_security_event(
            actor_id=identity.id,
            actor_kind=kind,
            event_type="AUTHENTICATION_UNAVAILABLE",
            success=False,
            action="login",
            reason="Provider session could not be established",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return session_result

    credential_store.record_login(identity)
    log_security_event(
        actor_id=identity.id,
        actor_kind=kind,
        event_type="LOGIN_SUCCESS",
        success=True,
        action="login",
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return AuthResult.success(
        "Login successful",
        principal=principal,
        session=session_result.session,
        data={"profile": identity.to_dict()},
    )


def authenticate_staff(phone, pin, *, ip_address=None, user_agent=None) -> AuthResult:
    return _authenticate(verify_staff_pin, KIND_STAFF, phone, pin, ip_address=ip_address, user_agent=user_agent)


def authenticate_customer(phone, pin, *, ip_address=None, user_agent=None) -> AuthResult:
    return _authenticate(verify_customer_pin, KIND_CUSTOMER, phone, pin, ip_address=ip_address, user_agent=user_agent)


def principal_for(identity, kind: str) -> Principal:
    if kind == KIND_CUSTOMER:
        return Principal(
            kind=KIND_CUSTOMER,
            identity_id=identity.id,
            phone=identity.phone,
            customer_id=identity.customer_id,
            approval_state=identity.approval_state,
        )
    return Principal(
        kind=KIND_STAFF,
        identity_id=identity.id,
        phone=identity.phone,
        role=role_service.get_role(identity.id),
    )


def _lookup_internal(provider_identity):
    identity = credential_store.get_identity_by_external_id(provider_identity.id)
    if identity is not None:
        kind = KIND_CUSTOMER if isinstance(identity, CustomerIdentity) else KIND_STAFF
        return identity, kind

    # external_user_id not synced yet: fall back to the synthesized address
    parsed = parse_address(provider_identity.address)
    if parsed is None:
        return None, None
    kind, phone = parsed
    return credential_store.get_identity_by_phone(phone, kind), kind


def resolve_session(access_token: str | None) -> tuple[AuthResult, SessionContext | None]:
    """
    Map a provider access token to the internal identity behind it.

    Failures:
    - INVALID_CREDENTIALS: missing/expired token or no internal identity
    - ACCOUNT_INACTIVE: identity deactivated since the session was issued
    - PENDING_APPROVAL: customer account no longer approved
    """
    if not access_token:
        return AuthResult.failure(AuthErrorCode.INVALID_CREDENTIALS, "Authentication required"), None

    provider_identity = get_session_provider().get_identity_for_token(access_token)
    if provider_identity is None:
        return AuthResult.failure(AuthErrorCode.INVALID_CREDENTIALS, "Invalid or expired token"), None

    identity, kind = _lookup_internal(provider_identity)
    if identity is None:
        current_app.logger.warning("Session for unknown provider identity %s", provider_identity.id)
        return AuthResult.failure(AuthErrorCode.INVALID_CREDENTIALS, "Invalid or expired token"), None

    if not identity.is_active:
        return AuthResult.failure(AuthErrorCode.ACCOUNT_INACTIVE, "Account is deactivated"), None

    if kind == KIND_CUSTOMER and not identity.is_approved:
        return AuthResult.failure(AuthErrorCode.PENDING_APPROVAL, "Account pending approval"), None

    principal = principal_for(identity, kind)
    return AuthResult.success(principal=principal), SessionContext(principal, identity, access_token)


def logout(access_token: str, *, actor=None) -> bool:
    """Revoke the provider session. Returns False for unknown tokens."""
    try:
        revoked = get_session_provider().sign_out(access_token)
    except ProviderError:
        current_app.logger.exception("Failed to revoke provider session")
        raise

    if revoked and actor is not None:
        log_security_event(
            actor_id=actor.identity_id,
            actor_kind=actor.kind,
            event_type="LOGOUT",
            success=True,
            action="logout",
        )
    return revoked
