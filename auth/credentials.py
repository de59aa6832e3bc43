"""
auth/credentials.py -- Username/password verification.

Unknown username and wrong password collapse into the same InvalidCredentials
failure, and both paths run exactly one bcrypt check, so neither the response
nor its latency tells an attacker which usernames exist.

No lockout counters or audit writes happen here.
"""

from __future__ import annotations

import logging

from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import dummy_verify, verify_password
from core.errors import InvalidCredentials

logger = logging.getLogger("bizrecords.auth")


class CredentialVerifier:
    def __init__(self, store: IdentityStore) -> None:
        self.store = store

    def verify(self, username: str, password: str) -> Identity:
        """Return the identity (with its current role) or raise InvalidCredentials."""
        if not username or not password:
            raise InvalidCredentials()
        identity = self.store.get_by_username(username)
        if identity is None:
            # Equalize timing -- do NOT return before running bcrypt
            dummy_verify(password)
            logger.info("Login failed for unknown username")
            raise InvalidCredentials()
        if not verify_password(password, identity.password_hash):
            logger.info("Login failed for user id=%s", identity.id)
            raise InvalidCredentials()
        return identity
