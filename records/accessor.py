"""
records/accessor.py -- Scoped Resource Accessor for customers and users.

Every read and write of a customer or user row on behalf of a principal
passes through one of the two accessors here. Each operation:

  1. asks auth/policy.py for the principal's RowScope (or gets Forbidden),
  2. AND-s scope.clause(...) into the WHERE of the statement that reads or
     mutates -- never a fetch-then-check in Python,
  3. runs inside a single transaction wrapped by translate_db_errors(), so a
     failure rolls back completely and surfaces as a taxonomy error.

A row outside the caller's scope is reported as NotFound, exactly like a row
that does not exist, so ids belonging to other employees cannot be probed.

Uniqueness (email, username) is checked inside the same transaction as the
write and backed by the tables' UNIQUE constraints. If two requests race past
the check, the constraint rejects the loser and translate_db_errors() turns
that into Conflict.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import and_, func, or_, select, true
from sqlalchemy.engine import Connection, Engine

from auth.models import Identity, Principal, Role
from auth.policy import (
    Capability,
    identity_scope,
    require_capability,
    scope_filter,
)
from auth.store import IDENTITY_SELECT, role_id_subquery, row_to_identity
from auth.tokens import hash_password, verify_password
from core.database import customers, now_iso, roles, transaction, translate_db_errors, users
from core.errors import Conflict, InvalidOperation, NotFound, ValidationFailed
from records.models import Customer, Page, PageRequest, ProfileUpdate, is_row_id

logger = logging.getLogger("bizrecords.records")

_CUSTOMER_NOT_FOUND = "Customer not found."
_USER_NOT_FOUND = "User not found."
_CUSTOMER_EMAIL_TAKEN = "Customer with this email already exists."
_USER_EMAIL_TAKEN = "Email already exists."
_USERNAME_OR_EMAIL_TAKEN = "Username or email already exists."

# ---------------------------------------------------------------------------
# Query building blocks
# ---------------------------------------------------------------------------

_creator = users.alias("creator")

_CUSTOMER_SELECT = select(
    customers,
    (_creator.c.first_name + " " + _creator.c.last_name).label("created_by_name"),
).select_from(customers.outerjoin(_creator, customers.c.created_by == _creator.c.id))

_CUSTOMER_SEARCH_COLUMNS = (
    customers.c.first_name,
    customers.c.last_name,
    customers.c.email,
    customers.c.phone,
    customers.c.business_name,
)

_IDENTITY_SEARCH_COLUMNS = (users.c.username, users.c.email, users.c.first_name, users.c.last_name)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_clause(columns, term: str):
    """Case-insensitive substring match of term against any of columns.

    An empty or whitespace-only term matches everything. LIKE wildcards in
    the term are escaped so "50%" searches for the literal string.
    """
    term = (term or "").strip()
    if not term:
        return true()
    pattern = f"%{_escape_like(term)}%"
    return or_(*(col.ilike(pattern, escape="\\") for col in columns))


def _exists(conn: Connection, stmt) -> bool:
    return conn.execute(stmt.limit(1)).first() is not None


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


class CustomerAccessor:
    """Scoped access to the customers collection.

    Usage:
        accessor = CustomerAccessor(engine)
        page = accessor.list(principal, PageRequest(page=2, page_size=10, search="acme"))
        customer = accessor.get(principal, 42)      # NotFound if out of scope
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def list(self, principal: Principal, request: PageRequest) -> Page[Customer]:
        """Return one page of customers visible to the principal, newest first.

        total is computed over the same WHERE as the page, so page counts are
        consistent for a scoped employee.
        """
        request.validate()
        scope = scope_filter(principal.role, principal.id)
        where = and_(
            scope.clause(customers.c.created_by),
            search_clause(_CUSTOMER_SEARCH_COLUMNS, request.search),
        )
        count_stmt = select(func.count()).select_from(customers).where(where)
        page_stmt = (
            _CUSTOMER_SELECT.where(where)
            .order_by(customers.c.created_at.desc(), customers.c.id.desc())
            .limit(request.page_size)
            .offset(request.offset)
        )
        with translate_db_errors("list_customers"), self.engine.connect() as conn:
            total = conn.execute(count_stmt).scalar() or 0
            rows = conn.execute(page_stmt).fetchall()
        return Page(
            items=[row_to_customer(r) for r in rows],
            page=request.page,
            page_size=request.page_size,
            total=total,
        )

    def count(self, principal: Principal) -> int:
        """Number of customers visible to the principal."""
        scope = scope_filter(principal.role, principal.id)
        stmt = select(func.count()).select_from(customers).where(scope.clause(customers.c.created_by))
        with translate_db_errors("count_customers"), self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def recent(self, principal: Principal, limit: int = 5) -> list[Customer]:
        """Newest customers visible to the principal (dashboard widget)."""
        scope = scope_filter(principal.role, principal.id)
        stmt = (
            _CUSTOMER_SELECT.where(scope.clause(customers.c.created_by))
            .order_by(customers.c.created_at.desc(), customers.c.id.desc())
            .limit(limit)
        )
        with translate_db_errors("recent_customers"), self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [row_to_customer(r) for r in rows]

    def get(self, principal: Principal, customer_id: int) -> Customer:
        scope = scope_filter(principal.role, principal.id)
        if not is_row_id(customer_id):
            raise NotFound(_CUSTOMER_NOT_FOUND)
        stmt = _CUSTOMER_SELECT.where(customers.c.id == customer_id, scope.clause(customers.c.created_by))
        with translate_db_errors("get_customer"), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        if row is None:
            raise NotFound(_CUSTOMER_NOT_FOUND)
        return row_to_customer(row)

    def create(self, principal: Principal, customer: Customer) -> Customer:
        """Insert a customer owned by the principal and return the stored record."""
        require_capability(principal, Capability.WRITE_CUSTOMERS)
        now = now_iso()
        with transaction(self.engine, "create_customer", conflict_message=_CUSTOMER_EMAIL_TAKEN) as conn:
            if _exists(conn, select(customers.c.id).where(customers.c.email == customer.email)):
                raise Conflict(_CUSTOMER_EMAIL_TAKEN)
            result = conn.execute(
                customers.insert().values(
                    **customer.writable_fields(),
                    created_by=principal.id,
                    created_at=now,
                    updated_at=now,
                )
            )
            customer_id = result.inserted_primary_key[0]
            row = conn.execute(_CUSTOMER_SELECT.where(customers.c.id == customer_id)).fetchone()
        logger.info("Customer id=%s created by user id=%s", customer_id, principal.id)
        return row_to_customer(row)

    def update(self, principal: Principal, customer_id: int, customer: Customer) -> Customer:
        """Replace a customer's writable fields. Ownership never changes.

        Scope is re-checked in the same transaction as the UPDATE, and the
        UPDATE itself carries the scope clause, so there is no window between
        the visibility check and the write.
        """
        require_capability(principal, Capability.WRITE_CUSTOMERS)
        scope = scope_filter(principal.role, principal.id)
        if not is_row_id(customer_id):
            raise NotFound(_CUSTOMER_NOT_FOUND)
        in_scope = and_(customers.c.id == customer_id, scope.clause(customers.c.created_by))
        with transaction(self.engine, "update_customer", conflict_message=_CUSTOMER_EMAIL_TAKEN) as conn:
            if conn.execute(select(customers.c.id).where(in_scope).with_for_update()).first() is None:
                raise NotFound(_CUSTOMER_NOT_FOUND)
            taken = select(customers.c.id).where(customers.c.email == customer.email, customers.c.id != customer_id)
            if _exists(conn, taken):
                raise Conflict(_CUSTOMER_EMAIL_TAKEN)
            result = conn.execute(
                customers.update().where(in_scope).values(**customer.writable_fields(), updated_at=now_iso())
            )
            if result.rowcount == 0:
                raise NotFound(_CUSTOMER_NOT_FOUND)
            row = conn.execute(_CUSTOMER_SELECT.where(customers.c.id == customer_id)).fetchone()
        return row_to_customer(row)

    def delete(self, principal: Principal, customer_id: int) -> None:
        require_capability(principal, Capability.WRITE_CUSTOMERS)
        scope = scope_filter(principal.role, principal.id)
        if not is_row_id(customer_id):
            raise NotFound(_CUSTOMER_NOT_FOUND)
        stmt = customers.delete().where(customers.c.id == customer_id, scope.clause(customers.c.created_by))
        with transaction(self.engine, "delete_customer") as conn:
            result = conn.execute(stmt)
            if result.rowcount == 0:
                raise NotFound(_CUSTOMER_NOT_FOUND)
        logger.info("Customer id=%s deleted by user id=%s", customer_id, principal.id)


# ---------------------------------------------------------------------------
# Users (identities)
# ---------------------------------------------------------------------------


class IdentityAccessor:
    """Scoped access to the users collection.

    Administrators see every identity. Everyone else sees exactly one row:
    their own. Creating employees, listing them, and deleting identities are
    administrator capabilities; public self-registration creates customers.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def list_employees(self, principal: Principal, request: PageRequest) -> Page[Identity]:
        require_capability(principal, Capability.LIST_IDENTITIES)
        request.validate()
        where = and_(
            roles.c.name == Role.EMPLOYEE.value,
            search_clause(_IDENTITY_SEARCH_COLUMNS, request.search),
        )
        count_stmt = (
            select(func.count()).select_from(users.join(roles, users.c.role_id == roles.c.id)).where(where)
        )
        page_stmt = (
            IDENTITY_SELECT.where(where)
            .order_by(users.c.created_at.desc(), users.c.id.desc())
            .limit(request.page_size)
            .offset(request.offset)
        )
        with translate_db_errors("list_employees"), self.engine.connect() as conn:
            total = conn.execute(count_stmt).scalar() or 0
            rows = conn.execute(page_stmt).fetchall()
        return Page(
            items=[row_to_identity(r) for r in rows],
            page=request.page,
            page_size=request.page_size,
            total=total,
        )

    def count_employees(self, principal: Principal) -> int:
        require_capability(principal, Capability.VIEW_EMPLOYEE_TOTALS)
        stmt = (
            select(func.count())
            .select_from(users.join(roles, users.c.role_id == roles.c.id))
            .where(roles.c.name == Role.EMPLOYEE.value)
        )
        with translate_db_errors("count_employees"), self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def get(self, principal: Principal, user_id: int) -> Identity:
        scope = identity_scope(principal.role, principal.id)
        if not is_row_id(user_id):
            raise NotFound(_USER_NOT_FOUND)
        stmt = IDENTITY_SELECT.where(users.c.id == user_id, scope.clause(users.c.id))
        with translate_db_errors("get_user"), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        if row is None:
            raise NotFound(_USER_NOT_FOUND)
        return row_to_identity(row)

    def create_employee(self, principal: Principal, identity: Identity, password: str) -> Identity:
        """Create an Employee identity. The role on the passed identity is ignored."""
        require_capability(principal, Capability.MANAGE_IDENTITIES)
        created = self._insert(identity, password, Role.EMPLOYEE)
        logger.info("Employee id=%s created by user id=%s", created.id, principal.id)
        return created

    def register_customer(self, identity: Identity, password: str) -> Identity:
        """Public self-registration: create a Customer-viewer identity."""
        created = self._insert(identity, password, Role.CUSTOMER)
        logger.info("Customer account id=%s self-registered", created.id)
        return created

    def _insert(self, identity: Identity, password: str, role: Role) -> Identity:
        password_hash = hash_password(password)
        now = now_iso()
        taken = select(users.c.id).where(or_(users.c.username == identity.username, users.c.email == identity.email))
        with transaction(self.engine, "create_user", conflict_message=_USERNAME_OR_EMAIL_TAKEN) as conn:
            if _exists(conn, taken):
                raise Conflict(_USERNAME_OR_EMAIL_TAKEN)
            result = conn.execute(
                users.insert().values(
                    username=identity.username,
                    email=identity.email,
                    password_hash=password_hash,
                    first_name=identity.first_name,
                    last_name=identity.last_name,
                    role_id=role_id_subquery(role),
                    created_at=now,
                    updated_at=now,
                )
            )
            user_id = result.inserted_primary_key[0]
            row = conn.execute(IDENTITY_SELECT.where(users.c.id == user_id)).fetchone()
        return row_to_identity(row)

    def update(self, principal: Principal, user_id: int, changes: ProfileUpdate) -> Identity:
        """Update profile fields, and optionally password and role.

        Password: changing your own requires current_password. An
        administrator resetting someone else's password does not.
        Role: administrator only, and never on their own account.
        """
        scope = identity_scope(principal.role, principal.id)
        if not is_row_id(user_id):
            raise NotFound(_USER_NOT_FOUND)
        in_scope = and_(users.c.id == user_id, scope.clause(users.c.id))
        is_self = user_id == principal.id

        if changes.new_password and is_self and not changes.current_password:
            raise ValidationFailed("Current password is required.")
        new_hash: Optional[str] = hash_password(changes.new_password) if changes.new_password else None

        with transaction(self.engine, "update_user", conflict_message=_USER_EMAIL_TAKEN) as conn:
            row = conn.execute(IDENTITY_SELECT.where(in_scope).with_for_update(of=users)).fetchone()
            if row is None:
                raise NotFound(_USER_NOT_FOUND)
            target = row_to_identity(row)

            values: dict = {
                "first_name": changes.first_name,
                "last_name": changes.last_name,
                "email": changes.email,
                "updated_at": now_iso(),
            }
            if changes.role is not None and changes.role is not target.role:
                require_capability(principal, Capability.CHANGE_ROLES)
                if is_self:
                    raise InvalidOperation("You cannot change your own role.")
                values["role_id"] = role_id_subquery(changes.role)
            if new_hash is not None:
                if is_self and not verify_password(changes.current_password or "", target.password_hash):
                    raise InvalidOperation("Current password is incorrect.")
                values["password_hash"] = new_hash

            taken = select(users.c.id).where(users.c.email == changes.email, users.c.id != user_id)
            if _exists(conn, taken):
                raise Conflict(_USER_EMAIL_TAKEN)

            result = conn.execute(users.update().where(in_scope).values(**values))
            if result.rowcount == 0:
                raise NotFound(_USER_NOT_FOUND)
            updated = conn.execute(IDENTITY_SELECT.where(users.c.id == user_id)).fetchone()
        if "role_id" in values:
            logger.info("User id=%s role changed to %s by user id=%s", user_id, changes.role.value, principal.id)
        return row_to_identity(updated)

    def delete(self, principal: Principal, user_id: int) -> None:
        """Delete a non-administrator identity other than the caller's own.

        The self check runs before any statement is issued.
        """
        require_capability(principal, Capability.MANAGE_IDENTITIES)
        if user_id == principal.id:
            raise InvalidOperation("Cannot delete your own account.")
        if not is_row_id(user_id):
            raise NotFound(_USER_NOT_FOUND)
        with transaction(
            self.engine,
            "delete_user",
            reference_message="Cannot delete this user while customers they created still exist.",
        ) as conn:
            row = conn.execute(IDENTITY_SELECT.where(users.c.id == user_id).with_for_update(of=users)).fetchone()
            if row is None:
                raise NotFound(_USER_NOT_FOUND)
            if row.role_name == Role.ADMIN.value:
                raise InvalidOperation("Administrator accounts cannot be deleted.")
            conn.execute(users.delete().where(users.c.id == user_id))
        logger.info("User id=%s deleted by user id=%s", user_id, principal.id)


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def row_to_customer(row) -> Customer:
    return Customer(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        phone=row.phone,
        address=row.address,
        city=row.city,
        state=row.state,
        postal_code=row.postal_code,
        country=row.country,
        business_name=row.business_name,
        business_type=row.business_type,
        business_reg_number=row.business_reg_number,
        tin_number=row.tin_number,
        vat_number=row.vat_number,
        activities=row.activities,
        created_by=row.created_by,
        created_by_name=getattr(row, "created_by_name", None),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
