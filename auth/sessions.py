"""
auth/sessions.py -- Turns an Authorization header into a Principal.

Order of checks, each gating the next:
  1. Header present and shaped "Bearer <token>"   else MissingCredential
  2. Signature and expiry valid                   else InvalidOrExpiredToken
  3. Identity still exists in the store           else InvalidOrExpiredToken

Steps 1 and 2 are pure; no persistence call is made unless both pass.

Step 3 is not an optimisation target. The token's role claim may be hours
stale; re-reading the identity joined with its role on every request is what
makes a role downgrade or an account deletion take effect immediately.
"""

from __future__ import annotations

import logging

from auth.models import Principal
from auth.store import IdentityStore
from auth.tokens import SessionIssuer
from core.errors import InvalidOrExpiredToken, MissingCredential

logger = logging.getLogger("bizrecords.auth")


def extract_bearer_token(header_value: str | None) -> str:
    """Return the token from a "Bearer <token>" header or raise MissingCredential.

    The scheme name is case-insensitive (RFC 7235). Any other scheme, or a
    bare "Bearer" with no token, counts as no credential presented.
    """
    if not header_value:
        raise MissingCredential()
    scheme, _, token = header_value.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise MissingCredential()
    return token


class SessionAuthenticator:
    def __init__(self, store: IdentityStore, issuer: SessionIssuer) -> None:
        self.store = store
        self.issuer = issuer

    def authenticate(self, header_value: str | None) -> Principal:
        """Resolve the request's principal from its raw Authorization header value."""
        token = extract_bearer_token(header_value)
        claims = self.issuer.verify(token)

        identity = self.store.get_by_id(claims["user_id"])
        if identity is None:
            logger.info("Token for deleted user id=%s rejected", claims["user_id"])
            raise InvalidOrExpiredToken()

        if claims.get("role") != identity.role.value:
            logger.debug(
                "Role claim %r for user id=%s is stale; using stored role %r",
                claims.get("role"),
                identity.id,
                identity.role.value,
            )
        return Principal.from_identity(identity)
