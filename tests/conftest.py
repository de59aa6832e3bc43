"""
tests/conftest.py -- Shared test fixtures for BizRecords tests.

This module provides:
  - _make_test_engine(): isolated in-memory database with schema and roles
  - make_identity(): seeds one identity directly through IdentityStore
  - set_role() / drop_identity(): out-of-band changes behind a live token
  - _patch_lifespan(): wires a test engine into app.state, bypassing real startup
  - engine / store / people: per-test database plus one principal per role
  - api: module-scoped TestClient with a token for each seeded user

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete, update
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.main import app, wire_components
from auth.models import Identity, Principal, Role
from auth.store import IdentityStore, role_id_subquery
from auth.tokens import hash_password
from core.database import create_db_engine, init_schema, users

PASSWORD = "correct-horse-battery"
# Hashed once; bcrypt is deliberately slow.
PASSWORD_HASH = hash_password(PASSWORD)

# username -> role for the standard cast
CAST = {
    "admin": Role.ADMIN,
    "alice": Role.EMPLOYEE,
    "bob": Role.EMPLOYEE,
    "carol": Role.CUSTOMER,
}


# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------


def _make_test_engine(db_suffix: str) -> Engine:
    """Create an isolated named shared-memory database, schema and roles included.

    Args:
        db_suffix: Unique string appended to the DB name so test modules and
                   tests don't share state.
    """
    engine = create_db_engine(f"sqlite:///file:test_{db_suffix}?mode=memory&cache=shared&uri=true")
    init_schema(engine)
    IdentityStore(engine).ensure_roles()
    return engine


def make_identity(store: IdentityStore, username: str, role: Role) -> Identity:
    """Insert an identity with password PASSWORD and return it as stored."""
    user_id = store.create_identity(
        Identity(
            username=username,
            email=f"{username}@example.com",
            first_name=username.capitalize(),
            last_name="Tester",
            role=role,
            password_hash=PASSWORD_HASH,
        )
    )
    return store.get_by_id(user_id)


def set_role(engine: Engine, user_id: int, role: Role) -> None:
    """Change a stored role directly, as another admin session would."""
    with engine.begin() as conn:
        conn.execute(update(users).where(users.c.id == user_id).values(role_id=role_id_subquery(role)))


def drop_identity(engine: Engine, user_id: int) -> None:
    with engine.begin() as conn:
        conn.execute(delete(users).where(users.c.id == user_id))


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Wires the same component graph as production over the test engine.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_components(app, engine)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Per-test fixtures -- a fresh database for each test
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = _make_test_engine(uuid.uuid4().hex)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine: Engine) -> IdentityStore:
    return IdentityStore(engine)


@pytest.fixture
def people(store: IdentityStore) -> dict[str, Principal]:
    """One Principal per entry in CAST, keyed by username."""
    return {name: Principal.from_identity(make_identity(store, name, role)) for name, role in CAST.items()}


# ---------------------------------------------------------------------------
# Module-scoped fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiEnv:
    client: TestClient
    engine: Engine
    ids: dict[str, int] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)

    def headers(self, username: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[username]}"}


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv with the CAST seeded and a live token for each member.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers, dependencies, and exception handlers.
    """
    engine = _make_test_engine(f"api_{request.module.__name__.rsplit('.', 1)[-1]}")
    store = IdentityStore(engine)
    identities = {name: make_identity(store, name, role) for name, role in CAST.items()}

    app.router.lifespan_context = _patch_lifespan(engine)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        issuer = app.state.issuer
        env = ApiEnv(
            client=client,
            engine=engine,
            ids={name: identity.id for name, identity in identities.items()},
            tokens={name: issuer.issue(identity) for name, identity in identities.items()},
        )
        yield env

    engine.dispose()
