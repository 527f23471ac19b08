from typing import Any, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from app.api import deps
from app.schemas.billing import (
    RecurringScheduleCreate,
    RecurringScheduleResponse,
    RecurringScheduleUpdate,
)
from app.schemas.responses import SuccessResponse
from app.services.schedule_service import ScheduleService

router = APIRouter()


@router.get("", response_model=SuccessResponse[List[RecurringScheduleResponse]])
async def list_schedules(
    customer_id: Optional[str] = Query(None),
    active_only: bool = Query(False),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    List recurring invoice schedules, soonest first.
    """
    schedules = await ScheduleService.list_schedules(db, customer_id=customer_id, active_only=active_only)
    return SuccessResponse(data=schedules)


@router.post("", response_model=SuccessResponse[RecurringScheduleResponse], status_code=status.HTTP_201_CREATED)
async def create_schedule(
    schedule_in: RecurringScheduleCreate,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Create a recurring schedule. The invoice template is validated here.
    """
    schedule = await ScheduleService.create_schedule(db, schedule_in)
    return SuccessResponse(data=schedule, message="Recurring schedule created successfully")


@router.get("/{schedule_id}", response_model=SuccessResponse[RecurringScheduleResponse])
async def get_schedule(
    schedule_id: UUID,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    schedule = await ScheduleService.get_schedule_by_id(db, schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Recurring schedule not found")
    return SuccessResponse(data=schedule)


@router.patch("/{schedule_id}", response_model=SuccessResponse[RecurringScheduleResponse])
async def update_schedule(
    schedule_id: UUID,
    schedule_in: RecurringScheduleUpdate,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    try:
        schedule = await ScheduleService.update_schedule(db, schedule_id, schedule_in)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not schedule:
        raise HTTPException(status_code=404, detail="Recurring schedule not found")
    return SuccessResponse(data=schedule, message="Recurring schedule updated")


@router.delete("/{schedule_id}", response_model=SuccessResponse[RecurringScheduleResponse])
async def deactivate_schedule(
    schedule_id: UUID,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Deactivate a schedule. Generated invoices keep their reference to it.
    """
    schedule = await ScheduleService.deactivate_schedule(db, schedule_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Recurring schedule not found")
    return SuccessResponse(data=schedule, message="Recurring schedule deactivated")
