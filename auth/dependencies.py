"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_principal() runs the SessionAuthenticator against the Authorization
header and attaches the resulting Principal to request.state.principal.
require(endpoint_class) wraps it with the coarse Role Policy check.

Failures are raised as core.errors types (MissingCredential, Forbidden, ...)
and mapped to HTTP statuses by the exception handler in api/main.py, so the
status for a given failure is identical on every endpoint.

FastAPI caches a dependency per request, so a router-level get_principal and
a route-level require(...) authenticate the request exactly once.

Layer rule: no imports from api/ or records/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import Principal
from auth.policy import EndpointClass, can_access_endpoint
from auth.sessions import SessionAuthenticator
from core.errors import Forbidden

_FORBIDDEN_MESSAGES: dict[EndpointClass, str] = {
    EndpointClass.ADMIN_ONLY: "Admin access required.",
    EndpointClass.STAFF_ONLY: "Employee or admin access required.",
    EndpointClass.SELF_ONLY: "Access denied.",
}


def get_principal(request: Request) -> Principal:
    """Require authentication. Raises MissingCredential / InvalidOrExpiredToken.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_principal)): ...
    """
    authenticator: SessionAuthenticator = request.app.state.authenticator
    principal = authenticator.authenticate(request.headers.get("Authorization"))
    request.state.principal = principal
    return principal


def require(endpoint_class: EndpointClass) -> Callable[..., Principal]:
    """Build a dependency that authenticates, then enforces the endpoint class."""

    def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not can_access_endpoint(principal.role, endpoint_class):
            raise Forbidden(_FORBIDDEN_MESSAGES[endpoint_class])
        return principal

    dependency.__name__ = f"require_{endpoint_class.value}"
    return dependency


require_admin = require(EndpointClass.ADMIN_ONLY)
require_staff = require(EndpointClass.STAFF_ONLY)
require_self_service = require(EndpointClass.SELF_ONLY)
