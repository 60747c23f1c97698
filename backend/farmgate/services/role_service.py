# Overview: Authoritative role assignment per staff identity.

"""
Role Registry

Authorization reads roles from role_assignments only. Profile updates
(update_own_profile) have no path into this table; set_role is called by
the administrative lifecycle operations and the bootstrap CLI.
"""

from __future__ import annotations

from ..extensions import db
from ..models import RoleAssignment
from ..validation import validate_role
from farmgate.time_utils import utcnow


def get_role(identity_id: int) -> str | None:
    return (
        db.session.query(RoleAssignment.role)
        .filter_by(identity_id=identity_id)
        .scalar()
    )


def set_role(
    identity_id: int,
    role: str,
    *,
    assigned_by_id: int | None = None,
    commit: bool = True,
) -> RoleAssignment:
    """Create or replace the single role assignment for a staff identity."""
    validate_role(role)

    assignment = db.session.query(RoleAssignment).filter_by(identity_id=identity_id).first()
    if assignment is None:
        assignment = RoleAssignment(identity_id=identity_id, role=role)
        db.session.add(assignment)
    else:
        assignment.role = role
    assignment.assigned_by_id = assigned_by_id
    assignment.assigned_at = utcnow()

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return assignment
