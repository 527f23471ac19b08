"""API V1 Router"""

from fastapi import APIRouter

# Import endpoint routers
from app.api.v1.endpoints import billing, invoices, payments, recurring_schedules

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers with prefixes and tags
api_router.include_router(recurring_schedules.router, prefix="/recurring-schedules", tags=["Recurring Schedules"])
api_router.include_router(invoices.router, prefix="/invoices", tags=["Invoices"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
api_router.include_router(billing.router, prefix="/billing", tags=["Billing Jobs"])
