"""
auth/store.py -- Read-side persistence for identities and role reference data.

Pattern: Repository + Data Mapper. IdentityStore is the repository;
row_to_identity is the mapper. The credential verifier and the session
authenticator are its only consumers -- writes to the users collection made
on behalf of a principal go through records/accessor.py, where the role
scope is applied.

The store is handed an Engine rather than building one, so every component
shares a single connection pool and tests can inject an in-memory database.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Lookups join users -> roles on every call: the role returned is the one in
  the database right now, which is what makes a role downgrade take effect
  before the holder's token expires.

Layer rule: no imports from api/ or records/.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import Identity, Role
from core.database import now_iso, roles, transaction, translate_db_errors, users

logger = logging.getLogger("bizrecords.auth")

# Single source for "user row joined with its role name".
IDENTITY_SELECT = select(users, roles.c.name.label("role_name")).select_from(
    users.join(roles, users.c.role_id == roles.c.id)
)


def role_id_subquery(role: Role):
    """Scalar subquery resolving a Role to its reference-row id."""
    return select(roles.c.id).where(roles.c.name == role.value).scalar_subquery()


class IdentityStore:
    """Repository for Identity lookups.

    Usage:
        store = IdentityStore(engine)
        store.ensure_roles()
        identity = store.get_by_username("admin")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def ensure_roles(self) -> None:
        """Insert any missing Role reference rows. Idempotent."""
        with transaction(self.engine, "ensure_roles") as conn:
            existing = set(conn.execute(select(roles.c.name)).scalars())
            for role in Role:
                if role.value not in existing:
                    conn.execute(
                        roles.insert().values(name=role.value, description=role.description, created_at=now_iso())
                    )

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with translate_db_errors("has_users"), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return (result or 0) > 0

    def get_by_username(self, username: str) -> Identity | None:
        """Look up an identity by exact username (case-sensitive). Returns None if not found."""
        with translate_db_errors("get_by_username"), self.engine.connect() as conn:
            row = conn.execute(IDENTITY_SELECT.where(users.c.username == username)).fetchone()
        return row_to_identity(row) if row is not None else None

    def get_by_id(self, user_id: int) -> Identity | None:
        """Look up an identity by primary key, joined with its current role."""
        with translate_db_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(IDENTITY_SELECT.where(users.c.id == user_id)).fetchone()
        return row_to_identity(row) if row is not None else None

    def create_identity(self, identity: Identity) -> int:
        """Insert an identity and return its id. Bootstrap and test seeding only.

        Username or email collisions surface as Conflict.
        """
        now = now_iso()
        conflict = "Username or email already exists."
        with transaction(self.engine, "create_identity", conflict_message=conflict) as conn:
            result = conn.execute(
                users.insert().values(
                    username=identity.username,
                    email=identity.email,
                    password_hash=identity.password_hash,
                    first_name=identity.first_name,
                    last_name=identity.last_name,
                    role_id=role_id_subquery(identity.role),
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def seed_admin(self, username: str, email: str, password_hash: str) -> int | None:
        """Create the bootstrap administrator when no identities exist yet.

        Returns the new id, or None when the table already has users.
        """
        if self.has_users():
            return None
        user_id = self.create_identity(
            Identity(
                username=username,
                email=email,
                first_name="Admin",
                last_name="User",
                role=Role.ADMIN,
                password_hash=password_hash,
            )
        )
        logger.info("Seeded bootstrap administrator %r (id=%s)", username, user_id)
        return user_id


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        username=row.username,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        role=Role(row.role_name),
        password_hash=row.password_hash,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
