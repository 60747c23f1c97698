# Overview: Typed outcomes returned by credential and account operations.

"""
Expected business outcomes (wrong PIN, locked, inactive, pending approval,
missing privilege) are values, not exceptions. Only unreachable stores raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class AuthErrorCode:
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    UNAUTHORIZED = "UNAUTHORIZED"
    AUTHENTICATION_UNAVAILABLE = "AUTHENTICATION_UNAVAILABLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"


HTTP_STATUS_BY_ERROR = {
    AuthErrorCode.INVALID_CREDENTIALS: 401,
    AuthErrorCode.ACCOUNT_LOCKED: 429,
    AuthErrorCode.ACCOUNT_INACTIVE: 403,
    AuthErrorCode.PENDING_APPROVAL: 403,
    AuthErrorCode.UNAUTHORIZED: 403,
    AuthErrorCode.AUTHENTICATION_UNAVAILABLE: 503,
    AuthErrorCode.VALIDATION_ERROR: 400,
    AuthErrorCode.NOT_FOUND: 404,
    AuthErrorCode.CONFLICT: 409,
}


@dataclass
class Principal:
    """
    Resolved identity after a successful verification.

    Staff principals carry the role from RoleAssignment; customer principals
    carry the linked business customer id and approval state.
    """
    kind: str
    identity_id: int
    phone: str
    role: str | None = None
    customer_id: int | None = None
    approval_state: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "kind": self.kind,
            "identity_id": self.identity_id,
            "phone": self.phone,
        }
        if self.role is not None:
            data["role"] = self.role
        if self.customer_id is not None:
            data["customer_id"] = self.customer_id
        if self.approval_state is not None:
            data["approval_state"] = self.approval_state
        return data


@dataclass
class AuthResult:
    ok: bool
    error: str | None = None
    message: str | None = None
    principal: Principal | None = None
    session: Any = None
    retry_after_seconds: int | None = None
    data: dict = field(default_factory=dict)

    @classmethod
    def success(cls, message: str | None = None, **kwargs) -> "AuthResult":
        return cls(ok=True, message=message, **kwargs)

    @classmethod
    def failure(cls, error: str, message: str, **kwargs) -> "AuthResult":
        return cls(ok=False, error=error, message=message, **kwargs)

    @property
    def http_status(self) -> int:
        if self.ok:
            return 200
        return HTTP_STATUS_BY_ERROR.get(self.error, 400)

    def to_dict(self) -> dict:
        if self.ok:
            body: dict[str, Any] = {"success": True}
            if self.message:
                body["message"] = self.message
        else:
            body = {"success": False, "code": self.error, "error": self.message}
            if self.error == AuthErrorCode.ACCOUNT_LOCKED:
                body["locked"] = True
                body["retry_after_seconds"] = self.retry_after_seconds
            if self.error == AuthErrorCode.PENDING_APPROVAL:
                body["pending"] = True
        if self.principal is not None:
            body["identity"] = self.principal.to_dict()
        if self.session is not None:
            body["session"] = self.session.to_dict()
        body.update(self.data)
        return body


def invalid_credentials() -> AuthResult:
    # Same outcome for unknown phone and wrong PIN
    return AuthResult.failure(AuthErrorCode.INVALID_CREDENTIALS, "Invalid phone number or PIN")


def validation_failure(message: str) -> AuthResult:
    return AuthResult.failure(AuthErrorCode.VALIDATION_ERROR, message)


def unauthorized(message: str = "Only super_admin can perform this action") -> AuthResult:
    return AuthResult.failure(AuthErrorCode.UNAUTHORIZED, message)
