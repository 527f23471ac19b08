"""API Dependencies"""

from typing import Optional
from fastapi import Request

from app.database import get_db
from app.services.billing_scheduler import BillingScheduler

__all__ = ["get_db", "get_billing_scheduler"]


def get_billing_scheduler(request: Request) -> Optional[BillingScheduler]:
    """
    Scheduler started in the application lifespan.

    Returns:
        The running scheduler, or None when the billing cron is disabled
    """
    return getattr(request.app.state, "billing_scheduler", None)
