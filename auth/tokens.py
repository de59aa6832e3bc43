"""
auth/tokens.py -- Password hashing and session token signing.

Security design decisions:
  Sessions: python-jose with HS256. Tokens carry user_id, username (sub),
       role, display name, iat, and an absolute exp fixed at issue time.
       There is no refresh and no server-side session table; a token is valid
       until exp. The role claim is advisory -- auth/sessions.py re-reads the
       live role from the store on every request.

  Passwords: bcrypt directly (no passlib wrapper). Bcrypt's cost factor makes
       brute-forcing low-entropy secrets expensive. The _DUMMY_HASH constant
       enables timing equalization in auth/credentials.py so response time
       does not reveal whether a username exists.

  SECRET_KEY: sourced from core.config.get_settings() once, when the issuer
       is constructed at startup, and held for the process lifetime.

Layer rule: no imports from api/ or records/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import Identity
from core.config import get_settings
from core.errors import InvalidOrExpiredToken

logger = logging.getLogger("bizrecords.auth")

_ALGORITHM = "HS256"

_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def _to_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt reads at most 72 bytes, and recent releases reject longer input,
    so the encoded password is cut to 72 bytes here. The API layer also caps
    password fields at 72 characters.
    """
    return bcrypt.hashpw(_to_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is a mismatch, not an error: the caller reports
    it as InvalidCredentials like any other failed check.
    """
    try:
        return bcrypt.checkpw(_to_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("bizrecords_timing_dummy")


def dummy_verify(plain: str) -> None:
    """Burn one bcrypt check so an unknown-user login costs the same as a real one."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class SessionIssuer:
    """Mints and verifies signed, time-bounded session tokens.

    Usage:
        issuer = SessionIssuer()                          # key + lifetime from Settings
        issuer = SessionIssuer("x" * 32, lifetime_seconds=60)
        token = issuer.issue(identity)
        claims = issuer.verify(token)                     # raises InvalidOrExpiredToken
    """

    def __init__(self, secret_key: str | None = None, lifetime_seconds: int | None = None) -> None:
        if secret_key is None or lifetime_seconds is None:
            settings = get_settings()
            secret_key = settings.secret_key if secret_key is None else secret_key
            lifetime_seconds = settings.token_expire_seconds if lifetime_seconds is None else lifetime_seconds
        self._secret_key = secret_key
        self.lifetime_seconds = lifetime_seconds

    def issue(self, identity: Identity, issued_at: datetime | None = None) -> str:
        """Encode a signed JWT for the identity.

        Args:
            identity:  The verified identity. Its id, username, role, and
                       display name are embedded.
            issued_at: Override for the issue time. exp is always
                       issued_at + lifetime_seconds.
        """
        iat = issued_at or datetime.now(timezone.utc)
        payload = {
            "sub": identity.username,
            "user_id": identity.id,
            "role": identity.role.value,
            "name": identity.display_name,
            "iat": iat,
            "exp": iat + timedelta(seconds=self.lifetime_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> dict:
        """Decode and verify a JWT. Returns the claims dict.

        Raises InvalidOrExpiredToken on a bad signature, an expired token, a
        malformed token, or missing identity/expiry claims.
        """
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise InvalidOrExpiredToken("Token expired.") from exc
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            raise InvalidOrExpiredToken() from exc
        if not isinstance(claims.get("user_id"), int) or "exp" not in claims:
            raise InvalidOrExpiredToken()
        return claims
