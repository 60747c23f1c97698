# Overview: Role -> resource grant table evaluated by the authorization gate.
#
# Default deny: a (role, resource) pair missing from ROLE_GRANTS grants nothing.

from .roles import Role
from .resources import Domain, Operation, ALL_OPERATIONS, resources_in


class Access:
    FULL = "FULL"
    READ = "READ"


ACCESS_OPERATIONS = {
    Access.FULL: set(ALL_OPERATIONS),
    Access.READ: {Operation.READ},
}

OPERATIONAL_DOMAINS = (
    Domain.LIVESTOCK,
    Domain.DELIVERY,
    Domain.FINANCE,
    Domain.CUSTOMERS,
    Domain.CATALOG,
    Domain.WORKFORCE,
    Domain.EQUIPMENT,
)


def _grant(access: str, resources) -> dict[str, str]:
    return {name: access for name in resources}


def _merge(*grant_maps: dict[str, str]) -> dict[str, str]:
    """Later maps win, except that FULL is never downgraded to READ."""
    merged: dict[str, str] = {}
    for grants in grant_maps:
        for resource, access in grants.items():
            if merged.get(resource) == Access.FULL:
                continue
            merged[resource] = access
    return merged


ROLE_GRANTS: dict[str, dict[str, str]] = {
    Role.SUPER_ADMIN: _merge(
        _grant(Access.FULL, resources_in(*OPERATIONAL_DOMAINS, Domain.SYSTEM)),
        _grant(Access.READ, resources_in(Domain.IDENTITY)),
    ),
    Role.MANAGER: _merge(
        _grant(Access.FULL, resources_in(*OPERATIONAL_DOMAINS)),
        _grant(Access.READ, resources_in(Domain.SYSTEM)),
    ),
    Role.AUDITOR: _merge(
        _grant(Access.READ, resources_in(*OPERATIONAL_DOMAINS)),
        _grant(Access.READ, ["activity_logs"]),
    ),
    Role.ACCOUNTANT: _merge(
        _grant(Access.FULL, resources_in(Domain.FINANCE)),
        _grant(Access.READ, ["customers"]),
        _grant(Access.READ, resources_in(Domain.CATALOG)),
    ),
    Role.DELIVERY_STAFF: _merge(
        _grant(Access.FULL, [
            "deliveries",
            "delivery_items",
            "route_stops",
            "bottle_transactions",
            "customer_bottles",
        ]),
        _grant(Access.READ, ["routes", "customers"]),
        _grant(Access.READ, resources_in(Domain.CATALOG)),
    ),
    Role.FARM_WORKER: _merge(
        _grant(Access.FULL, [
            "cattle",
            "cattle_health",
            "breeding_records",
            "milk_production",
            "feed_consumption",
        ]),
        _grant(Access.READ, ["feed_inventory"]),
        _grant(Access.READ, resources_in(Domain.CATALOG)),
    ),
    Role.VET_STAFF: _merge(
        _grant(Access.FULL, ["cattle_health", "breeding_records"]),
        _grant(Access.READ, ["cattle"]),
        _grant(Access.READ, resources_in(Domain.CATALOG)),
    ),
}


# Customer principals: resource -> (allowed operations, scoped to own customer_id)
CUSTOMER_GRANTS: dict[str, tuple[frozenset[str], bool]] = {
    "customers": (frozenset({Operation.READ, Operation.UPDATE}), True),
    "deliveries": (frozenset({Operation.READ}), True),
    "delivery_items": (frozenset({Operation.READ}), True),
    "invoices": (frozenset({Operation.READ}), True),
    "payments": (frozenset({Operation.READ}), True),
    "customer_ledger": (frozenset({Operation.READ}), True),
    "customer_bottles": (frozenset({Operation.READ}), True),
    "customer_products": (frozenset(ALL_OPERATIONS), True),
    "customer_vacations": (frozenset(ALL_OPERATIONS), True),
    "products": (frozenset({Operation.READ}), False),
    "bottles": (frozenset({Operation.READ}), False),
}


def role_allows(role, resource, operation) -> bool:
    access = ROLE_GRANTS.get(role, {}).get(resource)
    if access is None:
        return False
    return operation in ACCESS_OPERATIONS[access]
