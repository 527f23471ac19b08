from dataclasses import asdict
from typing import Any, Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.rate_limit import default_limit, limiter
from app.schemas.billing import BillingRunResponse, BillingStatsResponse, SchedulerStatus
from app.schemas.responses import SuccessResponse
from app.services.billing_scheduler import BillingScheduler
from app.services.billing_service import build_processor
from app.services.invoice_service import InvoiceService

router = APIRouter()


@router.get("/stats", response_model=SuccessResponse[BillingStatsResponse])
async def get_billing_stats(
    db: AsyncSession = Depends(deps.get_db),
    scheduler: Optional[BillingScheduler] = Depends(deps.get_billing_scheduler),
) -> Any:
    """
    Invoice totals per status and recurring schedule counts.
    """
    stats = await InvoiceService.get_stats(db)
    if scheduler is not None:
        stats["scheduler"] = SchedulerStatus(
            running=scheduler.is_running,
            run_count=scheduler.run_count,
            last_run_at=scheduler.last_run_at,
        )
    return SuccessResponse(data=stats)


@router.post("/run", response_model=SuccessResponse[BillingRunResponse])
@limiter.limit(default_limit)
async def run_billing_jobs(
    request: Request,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Run invoice generation and the overdue sweep now, outside the daily schedule.
    """
    result = await build_processor(db).run_billing_cron_jobs()
    message = "Billing jobs completed" if not result.errors else "Billing jobs completed with errors"
    return SuccessResponse(data=asdict(result), message=message)
