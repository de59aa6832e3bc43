"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for BizRecords happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a signing key with a
      warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT HS256 signing
  relies on key entropy -- a short key makes forged session tokens feasible.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
  hard startup failure. A random per-process key would silently invalidate
  every issued session on restart.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or records/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("bizrecords.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'records' / 'bizrecords.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # Absolute session lifetime. There is no refresh; clients log in again.
    token_expire_seconds: int = Field(default=24 * 3600, gt=0)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Upper bound on one persistence round trip (lock wait, statement time,
    # pool checkout). Exceeding it surfaces as a retryable Unavailable.
    db_timeout_seconds: float = Field(default=5.0, gt=0)

    # ------------------------------------------------------------------
    # Bootstrap admin (seeded only when the users table is empty)
    # ------------------------------------------------------------------

    bootstrap_admin_username: str = "admin"
    bootstrap_admin_email: str = "admin@example.com"
    bootstrap_admin_password: str = ""

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    self_registration_enabled: bool = True
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    # Host headers accepted by TrustedHostMiddleware. JSON list in the env var.
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
