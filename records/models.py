"""
records/models.py -- Domain dataclasses for owned business records and paging.

These are pure data containers. All scoping and uniqueness logic lives in
records/accessor.py.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from auth.models import Role
from core.errors import ValidationFailed

T = TypeVar("T")

MAX_PAGE_SIZE = 100
# Largest value SQLite (and BIGINT columns) can bind; ids and offsets above it
# cannot name a row.
MAX_SQL_INTEGER = 2**63 - 1
DEFAULT_PAGE_SIZE = 10


@dataclass
class Customer:
    """A business owner's record. created_by is the identity that entered it.

    For an Employee principal the record is visible and mutable iff
    created_by equals the principal's id. id is None before insert.
    """

    first_name: str
    last_name: str
    email: str
    phone: str
    business_name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = "Sri Lanka"
    business_type: Optional[str] = None
    business_reg_number: Optional[str] = None
    tin_number: Optional[str] = None
    vat_number: Optional[str] = None
    activities: Optional[str] = None
    id: Optional[int] = None
    created_by: Optional[int] = None
    created_by_name: Optional[str] = None  # creator's display name, read-only
    created_at: str = ""
    updated_at: str = ""

    def writable_fields(self) -> dict:
        """Column values a create/update may set. Ownership and timestamps excluded."""
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "business_name": self.business_name,
            "business_type": self.business_type,
            "business_reg_number": self.business_reg_number,
            "tin_number": self.tin_number,
            "vat_number": self.vat_number,
            "activities": self.activities,
        }


@dataclass
class ProfileUpdate:
    """Requested changes to an identity.

    new_password requires current_password when a user changes their own
    password. role may only be set by an administrator, on someone else.
    """

    first_name: str
    last_name: str
    email: str
    current_password: Optional[str] = None
    new_password: Optional[str] = None
    role: Optional[Role] = None


@dataclass(frozen=True)
class PageRequest:
    """Pagination and search input for list operations.

    Out-of-range values are rejected by validate(), never clamped: a client
    asking for page_size=500 gets ValidationFailed, not 100 rows.
    """

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    search: str = ""

    def validate(self) -> "PageRequest":
        if self.page < 1:
            raise ValidationFailed("page must be a positive integer.", detail=f"page={self.page}")
        if not 1 <= self.page_size <= MAX_PAGE_SIZE:
            raise ValidationFailed(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}.", detail=f"page_size={self.page_size}"
            )
        if self.offset > MAX_SQL_INTEGER:
            raise ValidationFailed("page is out of range.", detail=f"page={self.page}")
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def is_row_id(value: int) -> bool:
    """True if value could be a stored primary key. Anything else matches no row."""
    return 0 < value <= MAX_SQL_INTEGER


@dataclass
class Page(Generic[T]):
    """One page of a scoped list. total counts the scoped, filtered set."""

    items: list[T]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0
