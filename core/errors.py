"""
core/errors.py -- Failure taxonomy shared by every BizRecords layer.

The auth and records packages raise these typed failures instead of
HTTPException or raw driver errors. api/main.py owns the one table that maps
each type to an HTTP status, so no route invents its own mapping.

NotFound deliberately covers both "does not exist" and "exists but is outside
the caller's scope". Returning Forbidden for the second case would let a
caller enumerate record ids belonging to other employees.

Layer rule: stdlib only.
"""

from __future__ import annotations


class BizRecordsError(Exception):
    """Base class for all expected, typed failures."""

    code: str = "error"
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class MissingCredential(BizRecordsError):
    """No bearer token was presented."""

    code = "missing_credential"
    default_message = "Access token required."


class InvalidCredentials(BizRecordsError):
    """Login failed. Unknown username and wrong password are indistinguishable."""

    code = "bad_credentials"
    default_message = "Invalid username or password."


class InvalidOrExpiredToken(BizRecordsError):
    """Token failed signature/expiry checks, or its identity no longer exists."""

    code = "invalid_token"
    default_message = "Invalid or expired token."


class Forbidden(BizRecordsError):
    """The principal's role may not use this endpoint class at all."""

    code = "forbidden"
    default_message = "Access denied."


class NotFound(BizRecordsError):
    code = "not_found"
    default_message = "Record not found."


class Conflict(BizRecordsError):
    """A unique field (username, email) collides with another record."""

    code = "conflict"
    default_message = "A record with that value already exists."


class InvalidOperation(BizRecordsError):
    """A business rule forbids the operation (e.g. deleting your own account)."""

    code = "invalid_operation"
    default_message = "Operation not permitted."


class ValidationFailed(BizRecordsError):
    code = "validation_failed"
    default_message = "Request validation failed."


class Unavailable(BizRecordsError):
    """The persistence collaborator timed out or is down. Safe to retry."""

    code = "unavailable"
    default_message = "Service temporarily unavailable. Please retry."
