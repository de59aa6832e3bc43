"""
api/routes/v1/customers.py -- Customer CRUD REST endpoints.

Routes:
  GET    /api/v1/customers             -- scoped, paginated list with search
  POST   /api/v1/customers             -- create; owner is the caller
  GET    /api/v1/customers/{id}        -- one customer (404 if out of scope)
  PUT    /api/v1/customers/{id}        -- replace writable fields
  DELETE /api/v1/customers/{id}        -- delete

Handlers are thin: CustomerAccessor applies the row scope and raises the
typed failures; api/main.py maps those to statuses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import CustomerBody, CustomerListResponse, CustomerResponse
from auth.dependencies import require_staff
from auth.models import Principal
from records.accessor import CustomerAccessor
from records.models import DEFAULT_PAGE_SIZE, PageRequest

# Auth policy:
# - every route: STAFF_ONLY (require_staff); employees are further limited to
#   the customers they created by the accessor's row scope.
router = APIRouter()


def _accessor(request: Request) -> CustomerAccessor:
    return request.app.state.customers


@router.get("/customers", response_model=CustomerListResponse)
def list_customers(
    request: Request,
    page: int = Query(default=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE),
    search: str = Query(default="", max_length=100),
    principal: Principal = Depends(require_staff),
) -> CustomerListResponse:
    """Return one page of visible customers, newest first.

    page and page_size are range-checked by PageRequest.validate(); out of
    range values are rejected with 422, never clamped.
    """
    result = _accessor(request).list(principal, PageRequest(page=page, page_size=page_size, search=search))
    return CustomerListResponse.from_page(result)


@router.post("/customers", response_model=CustomerResponse, status_code=201)
def create_customer(
    request: Request,
    body: CustomerBody,
    principal: Principal = Depends(require_staff),
) -> CustomerResponse:
    created = _accessor(request).create(principal, body.to_customer())
    return CustomerResponse.from_customer(created)


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
def get_customer(
    request: Request,
    customer_id: int,
    principal: Principal = Depends(require_staff),
) -> CustomerResponse:
    return CustomerResponse.from_customer(_accessor(request).get(principal, customer_id))


@router.put("/customers/{customer_id}", response_model=CustomerResponse)
def update_customer(
    request: Request,
    customer_id: int,
    body: CustomerBody,
    principal: Principal = Depends(require_staff),
) -> CustomerResponse:
    updated = _accessor(request).update(principal, customer_id, body.to_customer())
    return CustomerResponse.from_customer(updated)


@router.delete("/customers/{customer_id}", status_code=204)
def delete_customer(
    request: Request,
    customer_id: int,
    principal: Principal = Depends(require_staff),
) -> Response:
    _accessor(request).delete(principal, customer_id)
    return Response(status_code=204)
