# Overview: Adapters for the hosted identity/session provider (external collaborator).

"""
Hosted Session Provider

The provider owns its own identity records, keyed by a synthesized address
built from the phone number, with the current PIN as password equivalent.
This system references those identities but does not own them: they can be
missing, stale (old PIN), or left behind after an internal delete.
IdentityReconciler absorbs that drift; this module only talks to the provider.

Implementations:
- HostedSessionProvider: GoTrue-compatible REST API over httpx
- MemorySessionProvider: in-process provider for development and tests

SECURITY NOTES:
- The in-memory provider keeps bcrypt digests of password equivalents and
  SHA-256 digests of issued access tokens, never plaintext.
- Transport failures and 5xx responses raise ProviderUnavailableError so
  callers can tell "provider down" apart from "credentials rejected".
"""

from __future__ import annotations

import hashlib
import secrets
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import httpx
from flask import current_app

from ..validation import KIND_CUSTOMER, KIND_STAFF
from .hashing_service import hash_pin, verify_pin
from farmgate.time_utils import utcnow


EXTENSION_KEY = "farmgate.session_provider"


class ProviderError(Exception):
    """Provider rejected a request for a reason other than credentials."""


class ProviderUnavailableError(ProviderError):
    """Provider could not be reached or failed server-side."""


class ProviderCredentialsRejected(ProviderError):
    """Sign-in refused: unknown address or wrong password equivalent."""


class ProviderIdentityExistsError(ProviderError):
    """An identity with this address already exists at the provider."""


class ProviderIdentityNotFoundError(ProviderError):
    """The referenced provider identity does not exist."""


@dataclass
class ProviderIdentity:
    id: str
    address: str
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "address": self.address, "metadata": dict(self.metadata)}


@dataclass
class ProviderSession:
    access_token: str
    identity_id: str
    expires_in: int
    refresh_token: str | None = None

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": "bearer",
        }


def synthesize_address(phone: str, kind: str, domain: str | None = None) -> str:
    """
    Build the provider address for a phone number.

    staff:    <phone>@<domain>
    customer: customer_<phone>@<domain>
    """
    domain = domain or current_app.config["IDENTITY_EMAIL_DOMAIN"]
    if kind == KIND_CUSTOMER:
        return f"customer_{phone}@{domain}"
    if kind == KIND_STAFF:
        return f"{phone}@{domain}"
    raise ValueError(f"Unknown identity kind '{kind}'")


def parse_address(address: str, domain: str | None = None) -> tuple[str, str] | None:
    """
    Inverse of synthesize_address.

    Returns (kind, phone) for addresses under our domain, None otherwise.
    """
    domain = domain or current_app.config["IDENTITY_EMAIL_DOMAIN"]
    local, sep, addr_domain = (address or "").lower().rpartition("@")
    if not sep or addr_domain != domain.lower():
        return None
    if local.startswith("customer_"):
        return KIND_CUSTOMER, local[len("customer_"):]
    return KIND_STAFF, local


class SessionProvider(ABC):
    """Operations this system needs from the hosted identity/session provider."""

    @abstractmethod
    def sign_in(self, address: str, password: str) -> ProviderSession:
        """Raises ProviderCredentialsRejected when the address/password pair is refused."""

    @abstractmethod
    def find_identity(self, address: str) -> ProviderIdentity | None:
        ...

    @abstractmethod
    def list_identities(self) -> list[ProviderIdentity]:
        ...

    @abstractmethod
    def create_identity(self, address: str, password: str, metadata: dict | None = None) -> ProviderIdentity:
        """Create a pre-verified identity. Raises ProviderIdentityExistsError."""

    @abstractmethod
    def update_password(self, identity_id: str, password: str) -> None:
        """Raises ProviderIdentityNotFoundError."""

    @abstractmethod
    def delete_identity(self, identity_id: str) -> bool:
        """Returns False if the identity was already gone."""

    @abstractmethod
    def get_identity_for_token(self, access_token: str) -> ProviderIdentity | None:
        ...

    @abstractmethod
    def sign_out(self, access_token: str) -> bool:
        ...


# =============================================================================
# IN-MEMORY PROVIDER
# =============================================================================

@dataclass
class _StoredIdentity:
    id: str
    address: str
    password_hash: str
    metadata: dict
    created_at: Any


class MemorySessionProvider(SessionProvider):
    """
    Process-local provider.

    Behaves like the hosted provider for sign-in, admin identity management
    and token introspection. State is lost on restart, so it is intended for
    development servers and tests.
    """

    def __init__(self, *, hash_rounds: int = 4, session_ttl: timedelta = timedelta(hours=1)):
        self._hash_rounds = hash_rounds
        self._session_ttl = session_ttl
        self._identities: dict[str, _StoredIdentity] = {}
        self._tokens: dict[str, tuple[str, Any]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _hash_token(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    def _by_address(self, address: str) -> _StoredIdentity | None:
        wanted = address.lower()
        for stored in self._identities.values():
            if stored.address == wanted:
                return stored
        return None

    @staticmethod
    def _public(stored: _StoredIdentity) -> ProviderIdentity:
        return ProviderIdentity(id=stored.id, address=stored.address, metadata=dict(stored.metadata))

    def sign_in(self, address: str, password: str) -> ProviderSession:
        with self._lock:
            stored = self._by_address(address)
        if stored is None or not verify_pin(password, stored.password_hash):
            raise ProviderCredentialsRejected("Invalid login credentials")

        token = secrets.token_hex(32)
        with self._lock:
            self._tokens[self._hash_token(token)] = (stored.id, utcnow() + self._session_ttl)
        return ProviderSession(
            access_token=token,
            identity_id=stored.id,
            expires_in=int(self._session_ttl.total_seconds()),
            refresh_token=secrets.token_hex(16),
        )

    def find_identity(self, address: str) -> ProviderIdentity | None:
        with self._lock:
            stored = self._by_address(address)
            return self._public(stored) if stored else None

    def list_identities(self) -> list[ProviderIdentity]:
        with self._lock:
            return [self._public(stored) for stored in self._identities.values()]

    def create_identity(self, address: str, password: str, metadata: dict | None = None) -> ProviderIdentity:
        password_hash = hash_pin(password, rounds=self._hash_rounds)
        with self._lock:
            if self._by_address(address) is not None:
                raise ProviderIdentityExistsError("A user with this email address has already been registered")
            stored = _StoredIdentity(
                id=str(uuid.uuid4()),
                address=address.lower(),
                password_hash=password_hash,
                metadata=dict(metadata or {}),
                created_at=utcnow(),
            )
            self._identities[stored.id] = stored
            return self._public(stored)

    def update_password(self, identity_id: str, password: str) -> None:
        password_hash = hash_pin(password, rounds=self._hash_rounds)
        with self._lock:
            stored = self._identities.get(identity_id)
            if stored is None:
                raise ProviderIdentityNotFoundError("User not found")
            stored.password_hash = password_hash

    def delete_identity(self, identity_id: str) -> bool:
        with self._lock:
            stored = self._identities.pop(identity_id, None)
            if stored is None:
                return False
            self._tokens = {
                digest: entry for digest, entry in self._tokens.items() if entry[0] != identity_id
            }
            return True

    def get_identity_for_token(self, access_token: str) -> ProviderIdentity | None:
        with self._lock:
            entry = self._tokens.get(self._hash_token(access_token))
            if entry is None:
                return None
            identity_id, expires_at = entry
            if expires_at < utcnow():
                self._tokens.pop(self._hash_token(access_token), None)
                return None
            stored = self._identities.get(identity_id)
            return self._public(stored) if stored else None

    def sign_out(self, access_token: str) -> bool:
        with self._lock:
            return self._tokens.pop(self._hash_token(access_token), None) is not None


# =============================================================================
# HOSTED (GoTrue-compatible) PROVIDER
# =============================================================================

class HostedSessionProvider(SessionProvider):
    """
    REST client for a GoTrue-compatible auth server.

    Admin calls authenticate with the service key; sign-in and token
    introspection use the public (anon) key.
    """

    PAGE_SIZE = 200

    def __init__(
        self,
        base_url: str,
        service_key: str,
        anon_key: str,
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self._service_key = service_key
        self._anon_key = anon_key
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _admin_headers(self) -> dict:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
        }

    def _user_headers(self, access_token: str | None = None) -> dict:
        headers = {"apikey": self._anon_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise ProviderUnavailableError(f"Session provider unreachable: {exc}") from exc
        if response.status_code >= 500:
            raise ProviderUnavailableError(
                f"Session provider error {response.status_code} on {method} {path}"
            )
        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text
        if isinstance(payload, dict):
            return payload.get("msg") or payload.get("message") or payload.get("error_description") or payload.get("error") or ""
        return str(payload)

    @staticmethod
    def _identity_from_payload(payload: dict) -> ProviderIdentity:
        return ProviderIdentity(
            id=str(payload["id"]),
            address=(payload.get("email") or "").lower(),
            metadata=payload.get("user_metadata") or {},
        )

    def sign_in(self, address: str, password: str) -> ProviderSession:
        response = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            headers=self._user_headers(),
            json={"email": address, "password": password},
        )
        if response.status_code in (400, 401, 422):
            raise ProviderCredentialsRejected(self._error_message(response) or "Invalid login credentials")
        if response.status_code != 200:
            raise ProviderError(f"Sign-in failed ({response.status_code}): {self._error_message(response)}")

        payload = response.json()
        return ProviderSession(
            access_token=payload["access_token"],
            identity_id=str(payload["user"]["id"]),
            expires_in=int(payload.get("expires_in") or 3600),
            refresh_token=payload.get("refresh_token"),
        )

    def _iter_users(self):
        page = 1
        while True:
            response = self._request(
                "GET",
                "/auth/v1/admin/users",
                params={"page": page, "per_page": self.PAGE_SIZE},
                headers=self._admin_headers(),
            )
            if response.status_code != 200:
                raise ProviderError(f"Listing users failed ({response.status_code}): {self._error_message(response)}")
            users = response.json().get("users") or []
            for user in users:
                yield self._identity_from_payload(user)
            if len(users) < self.PAGE_SIZE:
                return
            page += 1

    def find_identity(self, address: str) -> ProviderIdentity | None:
        wanted = address.lower()
        for identity in self._iter_users():
            if identity.address == wanted:
                return identity
        return None

    def list_identities(self) -> list[ProviderIdentity]:
        return list(self._iter_users())

    def create_identity(self, address: str, password: str, metadata: dict | None = None) -> ProviderIdentity:
        response = self._request(
            "POST",
            "/auth/v1/admin/users",
            headers=self._admin_headers(),
            json={
                "email": address,
                "password": password,
                "email_confirm": True,
                "user_metadata": metadata or {},
            },
        )
        if response.status_code in (200, 201):
            return self._identity_from_payload(response.json())

        message = self._error_message(response)
        if response.status_code == 422 or "already been registered" in message:
            raise ProviderIdentityExistsError(message or "Identity already exists")
        raise ProviderError(f"Creating identity failed ({response.status_code}): {message}")

    def update_password(self, identity_id: str, password: str) -> None:
        response = self._request(
            "PUT",
            f"/auth/v1/admin/users/{identity_id}",
            headers=self._admin_headers(),
            json={"password": password, "email_confirm": True},
        )
        if response.status_code == 404:
            raise ProviderIdentityNotFoundError(self._error_message(response) or "User not found")
        if response.status_code != 200:
            raise ProviderError(f"Updating identity failed ({response.status_code}): {self._error_message(response)}")

    def delete_identity(self, identity_id: str) -> bool:
        response = self._request(
            "DELETE",
            f"/auth/v1/admin/users/{identity_id}",
            headers=self._admin_headers(),
        )
        if response.status_code == 404:
            return False
        if response.status_code not in (200, 204):
            raise ProviderError(f"Deleting identity failed ({response.status_code}): {self._error_message(response)}")
        return True

    def get_identity_for_token(self, access_token: str) -> ProviderIdentity | None:
        response = self._request("GET", "/auth/v1/user", headers=self._user_headers(access_token))
        if response.status_code in (401, 403, 404):
            return None
        if response.status_code != 200:
            raise ProviderError(f"Token lookup failed ({response.status_code}): {self._error_message(response)}")
        return self._identity_from_payload(response.json())

    def sign_out(self, access_token: str) -> bool:
        response = self._request("POST", "/auth/v1/logout", headers=self._user_headers(access_token))
        return response.status_code in (200, 204)


# =============================================================================
# APPLICATION WIRING
# =============================================================================

def build_session_provider(config) -> SessionProvider:
    backend = (config.get("SESSION_PROVIDER") or "memory").lower()

    if backend == "memory":
        return MemorySessionProvider(hash_rounds=int(config.get("PIN_HASH_ROUNDS", 12)))

    if backend == "hosted":
        url = config.get("SESSION_PROVIDER_URL")
        service_key = config.get("SESSION_PROVIDER_SERVICE_KEY")
        anon_key = config.get("SESSION_PROVIDER_ANON_KEY")
        if not all([url, service_key, anon_key]):
            raise RuntimeError(
                "SESSION_PROVIDER=hosted requires SESSION_PROVIDER_URL, "
                "SESSION_PROVIDER_SERVICE_KEY and SESSION_PROVIDER_ANON_KEY"
            )
        return HostedSessionProvider(
            url,
            service_key,
            anon_key,
            timeout=float(config.get("SESSION_PROVIDER_TIMEOUT", 10)),
        )

    raise RuntimeError(f"Unknown SESSION_PROVIDER '{backend}'")


def init_session_provider(app, provider: SessionProvider | None = None) -> SessionProvider:
    provider = provider or build_session_provider(app.config)
    app.extensions[EXTENSION_KEY] = provider
    return provider


def get_session_provider() -> SessionProvider:
    return current_app.extensions[EXTENSION_KEY]
