"""
tests/test_identity_store.py -- IdentityStore reference data and bootstrap seeding.
"""

from __future__ import annotations

from sqlalchemy import func, select

from auth.models import Role
from auth.store import IdentityStore
from auth.tokens import verify_password
from core.database import roles
from tests.conftest import PASSWORD, PASSWORD_HASH, make_identity


def test_ensure_roles_is_idempotent(store: IdentityStore, engine) -> None:
    store.ensure_roles()
    store.ensure_roles()
    with engine.connect() as conn:
        names = set(conn.execute(select(roles.c.name)).scalars())
        total = conn.execute(select(func.count()).select_from(roles)).scalar()
    assert names == {r.value for r in Role}
    assert total == len(Role)


def test_seed_admin_on_empty_table(store: IdentityStore) -> None:
    user_id = store.seed_admin("root", "root@example.com", PASSWORD_HASH)
    admin = store.get_by_id(user_id)
    assert admin.role is Role.ADMIN
    assert admin.username == "root"
    assert verify_password(PASSWORD, admin.password_hash)


def test_seed_admin_skipped_when_users_exist(store: IdentityStore) -> None:
    make_identity(store, "alice", Role.EMPLOYEE)
    assert store.seed_admin("root", "root@example.com", PASSWORD_HASH) is None
    assert store.get_by_username("root") is None


def test_lookup_carries_current_role(store: IdentityStore) -> None:
    alice = make_identity(store, "alice", Role.EMPLOYEE)
    assert store.get_by_username("alice").role is Role.EMPLOYEE
    assert store.get_by_id(alice.id).password_hash == PASSWORD_HASH
    assert store.get_by_id(alice.id + 1000) is None
