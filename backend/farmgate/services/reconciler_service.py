# Overview: Keeps provider identities in step with internal credentials at login time.

"""
Identity Reconciler

The internal credential row and the provider identity are written separately
and drift apart: an admin PIN reset whose provider update failed, an identity
never created, one deleted by hand at the provider. At login, after the PIN
has already been verified internally, this module repairs what it can:

1. sign in with the synthesized address and the verified PIN
2. rejected and no provider identity: create it, sign in again
3. still rejected (or the identity existed): set its password to the PIN,
   sign in again
4. otherwise AUTHENTICATION_UNAVAILABLE

At most one create and one password repair per call. Never called before
the internal PIN check passed, so it cannot be used to bypass the lockout.
"""

from __future__ import annotations

from flask import current_app

from . import credential_store
from .results import AuthErrorCode, AuthResult
from .session_provider import (
    ProviderCredentialsRejected,
    ProviderError,
    ProviderIdentity,
    ProviderIdentityExistsError,
    ProviderSession,
    ProviderUnavailableError,
    get_session_provider,
    synthesize_address,
)
from ..validation import KIND_CUSTOMER, mask_phone


def identity_metadata(identity, kind: str) -> dict:
    if kind == KIND_CUSTOMER:
        return {"phone": identity.phone, "customer_id": identity.customer_id, "is_customer": True}
    return {"phone": identity.phone, "full_name": identity.full_name, "is_customer": False}


def unavailable(message: str = "Authentication service unavailable, please try again") -> AuthResult:
    return AuthResult.failure(AuthErrorCode.AUTHENTICATION_UNAVAILABLE, message)


def _try_sign_in(provider, address: str, pin: str) -> ProviderSession | None:
    try:
        return provider.sign_in(address, pin)
    except ProviderCredentialsRejected:
        return None


def _reconcile(provider, identity, kind: str, address: str, pin: str) -> ProviderSession | None:
    session = _try_sign_in(provider, address, pin)
    if session is not None:
        return session

    existing = provider.find_identity(address)
    if existing is None:
        current_app.logger.warning(
            "No provider identity for %s %s, provisioning", kind, mask_phone(identity.phone)
        )
        try:
            provider.create_identity(address, pin, identity_metadata(identity, kind))
        except ProviderIdentityExistsError:
            # Created concurrently by another login
            existing = provider.find_identity(address)
            if existing is None:
                return None
        else:
            session = _try_sign_in(provider, address, pin)
            if session is not None:
                return session
            existing = provider.find_identity(address)
            if existing is None:
                return None

    current_app.logger.warning(
        "Provider password drift for %s %s, repairing", kind, mask_phone(identity.phone)
    )
    provider.update_password(existing.id, pin)
    return _try_sign_in(provider, address, pin)


def establish_session(identity, kind: str, pin: str) -> AuthResult:
    """
    Obtain a provider session for an identity whose PIN was just verified.

    On success the internal row's external_user_id is synced to the provider
    identity that issued the session.
    """
    provider = get_session_provider()
    address = synthesize_address(identity.phone, kind)

    try:
        session = _reconcile(provider, identity, kind, address, pin)
    except ProviderUnavailableError:
        current_app.logger.exception("Session provider unavailable for %s %s", kind, mask_phone(identity.phone))
        return unavailable()
    except ProviderError:
        current_app.logger.exception("Session provider refused repair for %s %s", kind, mask_phone(identity.phone))
        return unavailable()

    if session is None:
        current_app.logger.error(
            "Could not reconcile provider identity for %s %s", kind, mask_phone(identity.phone)
        )
        return unavailable()

    credential_store.set_external_user_id(identity, session.identity_id)
    return AuthResult.success(session=session)


def create_identity(identity, kind: str, pin: str) -> ProviderIdentity:
    """
    Create the provider identity for a not yet persisted internal row.

    Raises ProviderIdentityExistsError when the address is taken; the
    caller must not adopt an identity another request may own.
    """
    provider = get_session_provider()
    address = synthesize_address(identity.phone, kind)
    return provider.create_identity(address, pin, identity_metadata(identity, kind))


def ensure_identity(identity, kind: str, pin: str) -> ProviderIdentity:
    """
    Make sure a provider identity exists for identity with password = pin.

    Used when bootstrapping the super_admin. An identity already present
    under the address (left over or created earlier) is adopted and its
    password reset. Provider errors propagate to the caller.
    """
    provider = get_session_provider()
    address = synthesize_address(identity.phone, kind)

    try:
        return provider.create_identity(address, pin, identity_metadata(identity, kind))
    except ProviderIdentityExistsError:
        existing = provider.find_identity(address)
        if existing is None:
            raise
        provider.update_password(existing.id, pin)
        return existing


def sync_password(identity, kind: str, pin: str) -> bool:
    """
    Best-effort push of a new PIN to the provider identity.

    Returns False when the provider could not be updated; the next login
    repairs the drift through establish_session.
    """
    provider = get_session_provider()
    try:
        external_id = identity.external_user_id
        if not external_id:
            found = provider.find_identity(synthesize_address(identity.phone, kind))
            if found is None:
                return False
            external_id = found.id
        provider.update_password(external_id, pin)
        return True
    except ProviderError:
        current_app.logger.warning(
            "Provider password update failed for %s %s; will repair at next login",
            kind,
            mask_phone(identity.phone),
            exc_info=True,
        )
        return False
