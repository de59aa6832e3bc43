"""
api/routes/v1/dashboard.py -- Aggregated counts for the staff dashboard.

Returns small payloads suitable for driving dashboard widgets:
  - Customer count within the caller's row scope
  - Employee headcount (administrators only; 0 for everyone else)
  - The newest customers within the caller's row scope

This is a read-only aggregate route -- no mutations here.
"""

from fastapi import APIRouter, Depends, Query, Request

from api.models import DashboardStats, RecentCustomerRow
from auth.dependencies import require_staff
from auth.models import Principal
from auth.policy import Capability, has_capability
from records.accessor import CustomerAccessor, IdentityAccessor

# Auth policy:
# - GET /api/v1/dashboard/*: STAFF_ONLY -- customer-role accounts have no dashboard
# Router-level dependency enforces the class; handlers re-use the cached principal.
router = APIRouter(dependencies=[Depends(require_staff)])


@router.get("/dashboard/stats", response_model=DashboardStats)
def get_stats(request: Request, principal: Principal = Depends(require_staff)) -> DashboardStats:
    customers: CustomerAccessor = request.app.state.customers
    identities: IdentityAccessor = request.app.state.identities

    total_employees = 0
    if has_capability(principal.role, Capability.VIEW_EMPLOYEE_TOTALS):
        total_employees = identities.count_employees(principal)

    return DashboardStats(
        total_customers=customers.count(principal),
        total_employees=total_employees,
    )


@router.get("/dashboard/recent-customers", response_model=list[RecentCustomerRow])
def recent_customers(
    request: Request,
    limit: int = Query(default=5, ge=1, le=20),
    principal: Principal = Depends(require_staff),
) -> list[RecentCustomerRow]:
    """Return the newest customers the caller can see."""
    customers: CustomerAccessor = request.app.state.customers
    return [
        RecentCustomerRow(
            id=c.id,
            first_name=c.first_name,
            last_name=c.last_name,
            email=c.email,
            phone=c.phone,
            created_at=c.created_at,
        )
        for c in customers.recent(principal, limit=limit)
    ]
