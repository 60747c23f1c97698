# Overview: Protected resources grouped by business domain, and operations on them.


class Operation:
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


ALL_OPERATIONS = (Operation.READ, Operation.CREATE, Operation.UPDATE, Operation.DELETE)
WRITE_OPERATIONS = {Operation.CREATE, Operation.UPDATE, Operation.DELETE}


class Domain:
    """Resource domains used by the policy table."""
    LIVESTOCK = "LIVESTOCK"
    DELIVERY = "DELIVERY"
    FINANCE = "FINANCE"
    CUSTOMERS = "CUSTOMERS"
    CATALOG = "CATALOG"
    WORKFORCE = "WORKFORCE"
    EQUIPMENT = "EQUIPMENT"
    SYSTEM = "SYSTEM"
    IDENTITY = "IDENTITY"


RESOURCE_DOMAINS = {
    # -- LIVESTOCK --
    "cattle": Domain.LIVESTOCK,
    "cattle_health": Domain.LIVESTOCK,
    "breeding_records": Domain.LIVESTOCK,
    "milk_production": Domain.LIVESTOCK,
    "feed_inventory": Domain.LIVESTOCK,
    "feed_consumption": Domain.LIVESTOCK,
    # -- DELIVERY --
    "deliveries": Domain.DELIVERY,
    "delivery_items": Domain.DELIVERY,
    "routes": Domain.DELIVERY,
    "route_stops": Domain.DELIVERY,
    "bottle_transactions": Domain.DELIVERY,
    "customer_bottles": Domain.DELIVERY,
    # -- FINANCE --
    "invoices": Domain.FINANCE,
    "payments": Domain.FINANCE,
    "expenses": Domain.FINANCE,
    "customer_ledger": Domain.FINANCE,
    "payroll_records": Domain.FINANCE,
    # -- CUSTOMERS --
    "customers": Domain.CUSTOMERS,
    "customer_products": Domain.CUSTOMERS,
    "customer_vacations": Domain.CUSTOMERS,
    # -- CATALOG --
    "products": Domain.CATALOG,
    "bottles": Domain.CATALOG,
    "price_rules": Domain.CATALOG,
    # -- WORKFORCE --
    "employees": Domain.WORKFORCE,
    "attendance": Domain.WORKFORCE,
    "shifts": Domain.WORKFORCE,
    "employee_shifts": Domain.WORKFORCE,
    # -- EQUIPMENT --
    "equipment": Domain.EQUIPMENT,
    "maintenance_records": Domain.EQUIPMENT,
    # -- SYSTEM --
    "dairy_settings": Domain.SYSTEM,
    "notification_templates": Domain.SYSTEM,
    "notification_logs": Domain.SYSTEM,
    "activity_logs": Domain.SYSTEM,
    # -- IDENTITY (written only through the account lifecycle API) --
    "staff_identities": Domain.IDENTITY,
    "customer_identities": Domain.IDENTITY,
    "role_assignments": Domain.IDENTITY,
}


def resources_in(*domains) -> list[str]:
    """All resource names belonging to any of the given domains."""
    return [name for name, domain in RESOURCE_DOMAINS.items() if domain in domains]


def is_known_resource(resource) -> bool:
    return resource in RESOURCE_DOMAINS


def is_known_operation(operation) -> bool:
    return operation in ALL_OPERATIONS
