from .identity import (
    Customer,
    StaffIdentity,
    CustomerIdentity,
    RoleAssignment,
    APPROVAL_PENDING,
    APPROVAL_APPROVED,
    APPROVAL_REJECTED,
    APPROVAL_STATES,
)
from .security import LockoutRecord, SecurityEvent

__all__ = [
    'Customer', 'StaffIdentity', 'CustomerIdentity', 'RoleAssignment',
    'APPROVAL_PENDING', 'APPROVAL_APPROVED', 'APPROVAL_REJECTED', 'APPROVAL_STATES',
    'LockoutRecord', 'SecurityEvent',
]
