"""
api/routes/v1/users.py -- User management REST endpoints.

Routes:
  GET    /api/v1/users          -- list employees (admin only)
  POST   /api/v1/users          -- create an employee (admin only)
  GET    /api/v1/users/{id}     -- one user; non-admins may only read themselves
  PUT    /api/v1/users/{id}     -- update profile, password, or role
  DELETE /api/v1/users/{id}     -- delete (admin only; never self, never an admin)

Security:
  A non-admin asking for another user's id gets 404, the same answer as for
  an id that does not exist.
  Role changes are an administrator capability and never apply to oneself.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import UserCreate, UserListResponse, UserResponse, UserUpdate
from auth.dependencies import require_admin, require_self_service
from auth.models import Identity, Principal, Role
from records.accessor import IdentityAccessor
from records.models import DEFAULT_PAGE_SIZE, PageRequest, ProfileUpdate

# Auth policy:
# - GET/POST   /api/v1/users:       ADMIN_ONLY (require_admin)
# - GET/PUT    /api/v1/users/{id}:  SELF_ONLY (require_self_service) + identity scope
# - DELETE     /api/v1/users/{id}:  ADMIN_ONLY (require_admin)
router = APIRouter()


def _accessor(request: Request) -> IdentityAccessor:
    return request.app.state.identities


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE),
    search: str = Query(default="", max_length=100),
    principal: Principal = Depends(require_admin),
) -> UserListResponse:
    result = _accessor(request).list_employees(principal, PageRequest(page=page, page_size=page_size, search=search))
    return UserListResponse.from_page(result)


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    principal: Principal = Depends(require_admin),
) -> UserResponse:
    """Create an employee account. Admin only."""
    created = _accessor(request).create_employee(
        principal,
        Identity(
            username=body.username,
            email=body.email,
            first_name=body.first_name,
            last_name=body.last_name,
            role=Role.EMPLOYEE,
        ),
        body.password,
    )
    return UserResponse.from_identity(created)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    principal: Principal = Depends(require_self_service),
) -> UserResponse:
    return UserResponse.from_identity(_accessor(request).get(principal, user_id))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    principal: Principal = Depends(require_self_service),
) -> UserResponse:
    """Update a profile.

    Changing your own password requires current_password. Setting role
    requires the administrator role.
    """
    changes = ProfileUpdate(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        current_password=body.current_password,
        new_password=body.new_password,
        role=Role(body.role.value) if body.role is not None else None,
    )
    return UserResponse.from_identity(_accessor(request).update(principal, user_id, changes))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int,
    principal: Principal = Depends(require_admin),
) -> Response:
    _accessor(request).delete(principal, user_id)
    return Response(status_code=204)
