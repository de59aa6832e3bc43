"""
auth/models.py -- Domain types for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores build these
from rows; the policy and accessors read them.

Role is a closed enum. Comparing raw strings at call sites is how a typo
("Admin" vs "admin") silently widens access, so every role check goes
through auth/policy.py against these members.

Layer rule: no imports from api/ or records/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"
    CUSTOMER = "customer"

    @property
    def description(self) -> str:
        return _ROLE_DESCRIPTIONS[self]


_ROLE_DESCRIPTIONS: dict[Role, str] = {
    Role.ADMIN: "Administrator with full access",
    Role.EMPLOYEE: "Regular employee with limited access",
    Role.CUSTOMER: "Customer with view-only access",
}


@dataclass
class Identity:
    """A stored user account joined with its current role.

    password_hash never leaves the auth package: response models are built
    from explicit fields, not from asdict(identity).
    """

    username: str
    email: str
    first_name: str
    last_name: str
    role: Role
    id: int | None = None
    password_hash: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to one request.

    Rebuilt from a fresh store read on every request and never persisted.
    role is the stored role at request time, not the role claim in the token.
    """

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    role: Role

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_identity(cls, identity: Identity) -> "Principal":
        return cls(
            id=identity.id,
            username=identity.username,
            email=identity.email,
            first_name=identity.first_name,
            last_name=identity.last_name,
            role=identity.role,
        )
