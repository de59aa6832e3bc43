"""
API request and response models for BizRecords REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
records/models.py, which own the internal domain representation. Route
handlers map between the two.

Response models are built field by field from the domain objects; nothing is
dumped wholesale, so password_hash can never reach a response body.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from auth.models import Identity, Principal
from records.models import Customer, Page

# bcrypt only reads the first 72 bytes of a password.
_PASSWORD_MAX = 72


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    employee = "employee"
    customer = "customer"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. Both fields must be non-empty."""

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class UserResponse(BaseModel):
    """Public fields of an identity."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    role: str
    created_at: str
    updated_at: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "UserResponse":
        return cls(
            id=identity.id,
            username=identity.username,
            email=identity.email,
            first_name=identity.first_name,
            last_name=identity.last_name,
            role=identity.role.value,
            created_at=identity.created_at,
            updated_at=identity.updated_at,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me -- the current principal, freshly resolved."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    display_name: str
    role: str

    @classmethod
    def from_principal(cls, principal: Principal) -> "MeResponse":
        return cls(
            id=principal.id,
            username=principal.username,
            email=principal.email,
            first_name=principal.first_name,
            last_name=principal.last_name,
            display_name=principal.display_name,
            role=principal.role.value,
        )


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users and POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=_PASSWORD_MAX)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{user_id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    current_password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    new_password: Optional[str] = Field(default=None, min_length=6, max_length=_PASSWORD_MAX)
    role: Optional[RoleEnum] = None


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[UserResponse]
    page: int
    page_size: int
    total_count: int
    total_pages: int

    @classmethod
    def from_page(cls, page: Page[Identity]) -> "UserListResponse":
        return cls(
            items=[UserResponse.from_identity(i) for i in page.items],
            page=page.page,
            page_size=page.page_size,
            total_count=page.total,
            total_pages=page.total_pages,
        )


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


class CustomerBody(BaseModel):
    """Request body for POST /api/v1/customers and PUT /api/v1/customers/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    phone: str = Field(min_length=1, max_length=20)
    business_name: str = Field(min_length=1, max_length=100)
    business_type: str = Field(min_length=1, max_length=50)
    tin_number: str = Field(min_length=1, max_length=50)
    vat_number: str = Field(min_length=1, max_length=50)
    business_reg_number: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=1000)
    city: Optional[str] = Field(default=None, max_length=50)
    state: Optional[str] = Field(default=None, max_length=50)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default="Sri Lanka", max_length=50)
    activities: Optional[str] = Field(default=None, max_length=2000)

    def to_customer(self) -> Customer:
        return Customer(**self.model_dump())


class CustomerResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    first_name: str
    last_name: str
    email: str
    phone: str
    business_name: str
    business_type: Optional[str]
    business_reg_number: Optional[str]
    tin_number: Optional[str]
    vat_number: Optional[str]
    address: Optional[str]
    city: Optional[str]
    state: Optional[str]
    postal_code: Optional[str]
    country: Optional[str]
    activities: Optional[str]
    created_by: int
    created_by_name: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            id=customer.id,
            first_name=customer.first_name,
            last_name=customer.last_name,
            email=customer.email,
            phone=customer.phone,
            business_name=customer.business_name,
            business_type=customer.business_type,
            business_reg_number=customer.business_reg_number,
            tin_number=customer.tin_number,
            vat_number=customer.vat_number,
            address=customer.address,
            city=customer.city,
            state=customer.state,
            postal_code=customer.postal_code,
            country=customer.country,
            activities=customer.activities,
            created_by=customer.created_by,
            created_by_name=customer.created_by_name,
            created_at=customer.created_at,
            updated_at=customer.updated_at,
        )


class CustomerListResponse(BaseModel):
    """Response for GET /api/v1/customers. total_count is the scoped, filtered count."""

    model_config = ConfigDict(frozen=True)

    items: list[CustomerResponse]
    page: int
    page_size: int
    total_count: int
    total_pages: int

    @classmethod
    def from_page(cls, page: Page[Customer]) -> "CustomerListResponse":
        return cls(
            items=[CustomerResponse.from_customer(c) for c in page.items],
            page=page.page,
            page_size=page.page_size,
            total_count=page.total,
            total_pages=page.total_pages,
        )


class RecentCustomerRow(BaseModel):
    """One row in GET /api/v1/dashboard/recent-customers."""

    model_config = ConfigDict(frozen=True)

    id: int
    first_name: str
    last_name: str
    email: str
    phone: str
    created_at: str


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class DashboardStats(BaseModel):
    """Response for GET /api/v1/dashboard/stats.

    total_employees is 0 for non-administrators; the employee headcount is an
    administrator capability.
    """

    model_config = ConfigDict(frozen=True)

    total_customers: int
    total_employees: int
