"""
core/database.py -- Schema, engine factory, and driver-error translation.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py and
records/models.py remain the authoritative domain representation. Swapping
SQLite for PostgreSQL is a connection string change, not a rewrite.

All three tables share one MetaData because customers.created_by and
users.role_id are real foreign keys -- the store enforces them, not the code.

Error translation:
  Route handlers must never see a raw IntegrityError or OperationalError.
  translate_db_errors() turns them into the core taxonomy at the accessor
  boundary:
    unique violation       -> Conflict
    foreign-key violation  -> InvalidOperation
    timeout / lost server  -> Unavailable (retryable)

  Drivers report constraint kinds differently. PostgreSQL exposes SQLSTATE
  (23505 unique, 23503 FK), MySQL an errno (1062 dup, 1451/1452 FK), SQLite
  only a message string. _classify_integrity_error() checks all three.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: core/ may not import from api/, auth/, or records/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from core.errors import Conflict, InvalidOperation, Unavailable

logger = logging.getLogger("bizrecords.db")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
)

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(100), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

customers = Table(
    "customers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("email", String(100), nullable=False, unique=True),
    Column("phone", String(20), nullable=False),
    Column("address", Text),
    Column("city", String(50)),
    Column("state", String(50)),
    Column("postal_code", String(20)),
    Column("country", String(50), server_default="Sri Lanka"),
    Column("business_name", String(100), nullable=False),
    Column("business_type", String(50)),
    Column("business_reg_number", String(50)),
    Column("tin_number", String(50)),
    Column("vat_number", String(50)),
    Column("activities", Text),
    # RESTRICT on delete: an employee who still owns customers cannot be removed.
    Column("created_by", Integer, ForeignKey("users.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# SQLite connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign-key enforcement on every new SQLite connection.

    SQLite ships with foreign keys OFF and PRAGMAs are not inherited by new
    connections from the pool, so both must be set per connection.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Engine factory
# ---------------------------------------------------------------------------


def create_db_engine(db_url: str, timeout_seconds: float = 5.0) -> Engine:
    """Build an Engine whose round trips are bounded by timeout_seconds.

    SQLite:     busy timeout via the driver's `timeout` connect arg.
    PostgreSQL: connect_timeout plus a server-side statement_timeout.
    Pooled drivers also get pool_timeout so a starved pool fails fast
    instead of parking the request thread indefinitely.
    """
    connect_args: dict = {}
    engine_kwargs: dict = {"pool_pre_ping": True}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a threadpool, so one connection may
        # be used from several threads over its lifetime.
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout_seconds
    else:
        engine_kwargs["pool_timeout"] = timeout_seconds
        if db_url.startswith("postgresql"):
            connect_args["connect_timeout"] = max(1, int(timeout_seconds))
            connect_args["options"] = f"-c statement_timeout={int(timeout_seconds * 1000)}"
    engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def init_schema(engine: Engine) -> None:
    """Create any missing tables. Idempotent -- safe to call on every startup."""
    metadata.create_all(engine)


# ---------------------------------------------------------------------------
# Driver-error translation
# ---------------------------------------------------------------------------

_UNIQUE = "unique"
_FOREIGN_KEY = "foreign_key"


def _classify_integrity_error(exc: IntegrityError) -> str:
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode == "23505":
        return _UNIQUE
    if pgcode == "23503":
        return _FOREIGN_KEY
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        if args[0] == 1062:
            return _UNIQUE
        if args[0] in (1451, 1452):
            return _FOREIGN_KEY
    message = str(orig).lower()
    if "unique" in message or "duplicate" in message:
        return _UNIQUE
    if "foreign key" in message:
        return _FOREIGN_KEY
    return "other"


@contextmanager
def translate_db_errors(
    operation: str,
    conflict_message: str | None = None,
    reference_message: str | None = None,
) -> Iterator[None]:
    """Re-raise driver errors from the wrapped block as taxonomy failures.

    Wrap the whole transaction (engine.begin()) so a failing statement rolls
    back before the translated error propagates -- no partial mutation is
    left visible.
    """
    try:
        yield
    except IntegrityError as exc:
        kind = _classify_integrity_error(exc)
        if kind == _UNIQUE:
            raise Conflict(conflict_message) from exc
        logger.info("Integrity violation during %s: %s", operation, exc.orig)
        raise InvalidOperation(
            reference_message or "The record is referenced by, or references, another record."
        ) from exc
    except (OperationalError, PoolTimeoutError) as exc:
        logger.warning("Persistence unavailable during %s: %s", operation, exc)
        raise Unavailable() from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            logger.warning("Connection lost during %s: %s", operation, exc)
            raise Unavailable() from exc
        raise


@contextmanager
def transaction(
    engine: Engine,
    operation: str,
    conflict_message: str | None = None,
    reference_message: str | None = None,
) -> Iterator[Connection]:
    """One all-or-nothing unit of work with driver errors translated.

    Usage:
        with transaction(engine, "update_customer", conflict_message="...") as conn:
            conn.execute(...)
    """
    with translate_db_errors(operation, conflict_message, reference_message), engine.begin() as conn:
        yield conn
