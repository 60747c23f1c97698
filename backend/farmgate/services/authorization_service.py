# Overview: Authorization gate and security event audit trail.

"""
Authorization Gate

WHY: Every read or write of a farm-operations resource is decided here from
(role, resource, operation), so no resource is reachable by role alone.

DESIGN PRINCIPLES:
- Fail closed: unknown roles, resources and operations are denied
- Role comes from role_assignments, never from a profile field
- Customer principals only see rows whose customer_id is their own
- Log denials only: grants are not logged
"""

from __future__ import annotations

from ..extensions import db
from ..models import SecurityEvent
from ..permissions import (
    ALL_OPERATIONS,
    CUSTOMER_GRANTS,
    is_known_operation,
    is_known_resource,
    role_allows,
)
from ..validation import KIND_CUSTOMER, KIND_STAFF
from . import role_service
from farmgate.time_utils import utcnow


class AccessDeniedError(Exception):
    """Raised when a principal may not perform an operation on a resource."""

    def __init__(self, message: str, *, resource: str | None = None, operation: str | None = None):
        super().__init__(message)
        self.resource = resource
        self.operation = operation


def log_security_event(
    actor_id: int | None,
    event_type: str,
    success: bool,
    *,
    actor_kind: str | None = KIND_STAFF,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append a row to the security audit trail.

    event_type examples:
    - LOGIN_FAILED / LOGIN_SUCCESS
    - ACCOUNT_LOCKED
    - AUTHENTICATION_UNAVAILABLE
    - ACCESS_DENIED
    - STAFF_PROVISIONED / STAFF_DEACTIVATED / STAFF_DELETED
    - CUSTOMER_APPROVED / CUSTOMER_REJECTED
    - PIN_CHANGED / PIN_RESET
    - ORPHAN_IDENTITY_DELETED
    """
    event = SecurityEvent(
        actor_kind=actor_kind if actor_id is not None else None,
        actor_id=actor_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def can_access(role: str | None, resource: str, operation: str) -> bool:
    """Staff policy lookup. Default deny."""
    if not role or not is_known_resource(resource) or not is_known_operation(operation):
        return False
    return role_allows(role, resource, operation)


def can_customer_access(
    customer_id: int | None,
    resource: str,
    operation: str,
    record_customer_id: int | None = None,
) -> bool:
    """
    Customer policy lookup.

    Scoped resources require record_customer_id to equal the principal's own
    linked customer id; a missing record_customer_id is denied.
    """
    grant = CUSTOMER_GRANTS.get(resource)
    if grant is None or customer_id is None:
        return False

    operations, scoped = grant
    if operation not in operations:
        return False
    if scoped:
        return record_customer_id is not None and record_customer_id == customer_id
    return True


def evaluate(principal, resource: str, operation: str, record_customer_id: int | None = None) -> bool:
    if principal is None:
        return False
    if principal.kind == KIND_CUSTOMER:
        return can_customer_access(principal.customer_id, resource, operation, record_customer_id)
    if principal.kind == KIND_STAFF:
        # Re-read the authoritative assignment rather than trusting the principal
        return can_access(role_service.get_role(principal.identity_id), resource, operation)
    return False


def allowed_operations(principal, resource: str, record_customer_id: int | None = None) -> list[str]:
    return [
        operation
        for operation in ALL_OPERATIONS
        if evaluate(principal, resource, operation, record_customer_id)
    ]


def require_access(
    principal,
    resource: str,
    operation: str,
    record_customer_id: int | None = None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Enforce the gate.

    Raises AccessDeniedError (after logging an ACCESS_DENIED event) when the
    principal may not perform operation on resource.
    """
    if evaluate(principal, resource, operation, record_customer_id):
        return

    log_security_event(
        actor_id=principal.identity_id if principal else None,
        actor_kind=principal.kind if principal else None,
        event_type="ACCESS_DENIED",
        success=False,
        resource=resource,
        action=operation,
        reason=f"{operation} on {resource} not granted",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise AccessDeniedError(
        f"Access denied: {operation} on {resource}",
        resource=resource,
        operation=operation,
    )
