"""
auth/policy.py -- Role Policy: every allow/deny decision lives here.

Two levels of decision:
  Coarse (endpoint class):  may this role call this endpoint at all?
      can_access_endpoint(role, EndpointClass.STAFF_ONLY)
  Fine (row scope):         which rows may this principal see or modify?
      scope_filter(role, principal_id)   -> customers
      identity_scope(role, principal_id) -> users

Every function here is pure: no I/O, no mutation. A deny is total -- the
scope functions either return a complete RowScope or raise Forbidden; they
never hand back a half-applied filter.

Handlers must not compare roles themselves. If a route needs a new rule,
add a Capability and a row in ROLE_CAPABILITIES.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import true
from sqlalchemy.sql.elements import ColumnElement

from auth.models import Principal, Role
from core.errors import Forbidden

# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class Capability(str, Enum):
    MANAGE_IDENTITIES = "manage_identities"
    LIST_IDENTITIES = "list_identities"
    CHANGE_ROLES = "change_roles"
    VIEW_EMPLOYEE_TOTALS = "view_employee_totals"
    VIEW_DASHBOARD = "view_dashboard"
    READ_CUSTOMERS = "read_customers"
    WRITE_CUSTOMERS = "write_customers"
    VIEW_OWN_PROFILE = "view_own_profile"
    EDIT_OWN_PROFILE = "edit_own_profile"


_SELF_SERVICE = frozenset({Capability.VIEW_OWN_PROFILE, Capability.EDIT_OWN_PROFILE})
_CUSTOMER_DESK = frozenset({Capability.VIEW_DASHBOARD, Capability.READ_CUSTOMERS, Capability.WRITE_CUSTOMERS})

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.EMPLOYEE: _CUSTOMER_DESK | _SELF_SERVICE,
    Role.CUSTOMER: _SELF_SERVICE,
}


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def require_capability(principal: Principal, capability: Capability) -> None:
    """Raise Forbidden unless the principal's role carries the capability."""
    if not has_capability(principal.role, capability):
        raise Forbidden()


# ---------------------------------------------------------------------------
# Endpoint classes (coarse check)
# ---------------------------------------------------------------------------


class EndpointClass(str, Enum):
    ADMIN_ONLY = "admin_only"
    STAFF_ONLY = "staff_only"
    # Every role may call a SELF_ONLY endpoint; identity_scope then narrows
    # non-administrators to their own record.
    SELF_ONLY = "self_only"


_ENDPOINT_ROLES: dict[EndpointClass, frozenset[Role]] = {
    EndpointClass.ADMIN_ONLY: frozenset({Role.ADMIN}),
    EndpointClass.STAFF_ONLY: frozenset({Role.ADMIN, Role.EMPLOYEE}),
    EndpointClass.SELF_ONLY: frozenset(Role),
}


def can_access_endpoint(role: Role, endpoint_class: EndpointClass) -> bool:
    return role in _ENDPOINT_ROLES[endpoint_class]


# ---------------------------------------------------------------------------
# Row scope (fine check)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RowScope:
    """Row-filtering condition a role imposes on one collection.

    owner_id None means unrestricted. Otherwise only rows whose scoped column
    equals owner_id are visible -- created_by for customers, id for users.
    """

    owner_id: int | None = None

    def clause(self, column) -> ColumnElement[bool]:
        """Return the SQL condition for this scope, to be AND-ed into a WHERE."""
        if self.owner_id is None:
            return true()
        return column == self.owner_id


UNRESTRICTED = RowScope()


def scope_filter(role: Role, principal_id: int) -> RowScope:
    """Scope for Owned Records (customers).

    Administrator: unrestricted.
    Employee:      created_by == principal_id.
    Customer:      no access -- Forbidden before any query is built.
    """
    if role is Role.ADMIN:
        return UNRESTRICTED
    if role is Role.EMPLOYEE:
        return RowScope(owner_id=principal_id)
    raise Forbidden()


def identity_scope(role: Role, principal_id: int) -> RowScope:
    """Scope for the users collection: administrators see all, others only themselves."""
    if role is Role.ADMIN:
        return UNRESTRICTED
    return RowScope(owner_id=principal_id)
