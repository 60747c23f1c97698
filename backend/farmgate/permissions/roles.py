# Overview: Staff role identifiers (stable external contract).


class Role:
    """Staff roles. Values are persisted and exchanged with clients verbatim."""
    SUPER_ADMIN = "super_admin"
    MANAGER = "manager"
    ACCOUNTANT = "accountant"
    DELIVERY_STAFF = "delivery_staff"
    FARM_WORKER = "farm_worker"
    VET_STAFF = "vet_staff"
    AUDITOR = "auditor"


ALL_ROLES = (
    Role.SUPER_ADMIN,
    Role.MANAGER,
    Role.ACCOUNTANT,
    Role.DELIVERY_STAFF,
    Role.FARM_WORKER,
    Role.VET_STAFF,
    Role.AUDITOR,
)

# Roles that may approve or reject customer self-registrations
CUSTOMER_APPROVER_ROLES = {Role.SUPER_ADMIN, Role.MANAGER}


def is_valid_role(role) -> bool:
    return role in ALL_ROLES
