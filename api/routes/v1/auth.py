"""
api/routes/v1/auth.py -- Login, self-registration, and session endpoints.

Routes:
  POST /api/v1/auth/login      -- password login; returns a bearer token
  POST /api/v1/auth/register   -- public sign-up; creates a customer account
  GET  /api/v1/auth/me         -- current principal, re-resolved from the store
  POST /api/v1/auth/logout     -- acknowledges; the client discards its token

Security:
  POST /login is rate-limited per client address (LOGIN_RATE_LIMIT).
  CredentialVerifier equalizes timing between unknown user and wrong password.
  Cache-Control: no-store on login responses, success and failure alike.
  There is no server-side session table, so logout cannot revoke a token;
  it stays valid until exp.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, LoginResponse, MeResponse, MessageResponse, UserCreate, UserResponse
from auth.credentials import CredentialVerifier
from auth.dependencies import get_principal
from auth.models import Identity, Principal, Role
from auth.tokens import SessionIssuer
from core.config import get_settings
from core.errors import Forbidden
from records.accessor import IdentityAccessor

logger = logging.getLogger("bizrecords.api")

# Auth policy:
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/register:  public while SELF_REGISTRATION_ENABLED is true
# - GET  /api/v1/auth/me:        requires auth (get_principal)
# - POST /api/v1/auth/logout:    requires auth (get_principal)
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_rate_limit)
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Authenticate with username and password; return a signed session token.

    Wrong username and wrong password both raise InvalidCredentials, which
    the exception handler turns into 401 bad_credentials with no-store.
    """
    verifier: CredentialVerifier = request.app.state.verifier
    issuer: SessionIssuer = request.app.state.issuer

    identity = verifier.verify(body.username, body.password)
    token = issuer.issue(identity)
    logger.info("User id=%s logged in", identity.id)

    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(
        access_token=token,
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=issuer.lifetime_seconds,
        user=UserResponse.from_identity(identity),
    )


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: UserCreate) -> UserResponse:
    """Create a customer-role account. Employees are created by administrators."""
    if not get_settings().self_registration_enabled:
        raise Forbidden("Self-registration is disabled.")
    identities: IdentityAccessor = request.app.state.identities
    created = identities.register_customer(
        Identity(
            username=body.username,
            email=body.email,
            first_name=body.first_name,
            last_name=body.last_name,
            role=Role.CUSTOMER,
        ),
        body.password,
    )
    return UserResponse.from_identity(created)


@router.get("/auth/me", response_model=MeResponse)
def me(principal: Principal = Depends(get_principal)) -> MeResponse:
    """Return the authenticated principal with the role currently on record."""
    return MeResponse.from_principal(principal)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(principal: Principal = Depends(get_principal)) -> MessageResponse:
    logger.info("User id=%s logged out", principal.id)
    return MessageResponse(message="Logged out.")
