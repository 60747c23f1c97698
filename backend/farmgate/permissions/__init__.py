# Overview: Role, resource and policy definitions.
# Re-exports all public APIs for package-level imports.

from .roles import Role, ALL_ROLES, CUSTOMER_APPROVER_ROLES, is_valid_role
from .resources import (
    Operation,
    Domain,
    ALL_OPERATIONS,
    WRITE_OPERATIONS,
    RESOURCE_DOMAINS,
    resources_in,
    is_known_resource,
    is_known_operation,
)
from .policy import Access, ROLE_GRANTS, CUSTOMER_GRANTS, role_allows

__all__ = [
    "Role",
    "ALL_ROLES",
    "CUSTOMER_APPROVER_ROLES",
    "is_valid_role",
    "Operation",
    "Domain",
    "ALL_OPERATIONS",
    "WRITE_OPERATIONS",
    "RESOURCE_DOMAINS",
    "resources_in",
    "is_known_resource",
    "is_known_operation",
    "Access",
    "ROLE_GRANTS",
    "CUSTOMER_GRANTS",
    "role_allows",
]
