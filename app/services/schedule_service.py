from typing import Optional, List
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import RecurringInvoiceSchedule
from app.schemas.billing import RecurringScheduleCreate, RecurringScheduleUpdate


class ScheduleService:
    """Service layer for recurring invoice schedules"""

    @staticmethod
    async def get_schedule_by_id(db: AsyncSession, schedule_id: UUID) -> Optional[RecurringInvoiceSchedule]:
        result = await db.execute(
            select(RecurringInvoiceSchedule).where(RecurringInvoiceSchedule.id == schedule_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_schedules(
        db: AsyncSession,
        customer_id: Optional[str] = None,
        active_only: bool = False,
    ) -> List[RecurringInvoiceSchedule]:
        query = select(RecurringInvoiceSchedule)
        if customer_id:
            query = query.where(RecurringInvoiceSchedule.customer_id == customer_id)
        if active_only:
            query = query.where(RecurringInvoiceSchedule.is_active.is_(True))
        result = await db.execute(query.order_by(RecurringInvoiceSchedule.next_invoice_date))
        return list(result.scalars().all())

    @staticmethod
    async def create_schedule(
        db: AsyncSession,
        schedule_data: RecurringScheduleCreate,
    ) -> RecurringInvoiceSchedule:
        """
        Create a schedule from an already validated template.
        The first invoice is generated for next_invoice_date (start_date unless given).
        """
        schedule = RecurringInvoiceSchedule(
            customer_id=schedule_data.customer_id,
            customer_name=schedule_data.customer_name,
            rental_id=schedule_data.rental_id,
            service_id=schedule_data.service_id,
            frequency=schedule_data.frequency.value,
            interval=schedule_data.interval,
            start_date=schedule_data.start_date,
            end_date=schedule_data.end_date,
            next_invoice_date=schedule_data.next_invoice_date,
            payment_terms=schedule_data.payment_terms,
            auto_generate=schedule_data.auto_generate,
            notification_days=schedule_data.notification_days,
            template_data=schedule_data.template.model_dump(mode="json"),
            is_active=True,
        )
        db.add(schedule)
        await db.commit()
        await db.refresh(schedule)
        return schedule

    @staticmethod
    async def update_schedule(
        db: AsyncSession,
        schedule_id: UUID,
        schedule_update: RecurringScheduleUpdate,
    ) -> Optional[RecurringInvoiceSchedule]:
        schedule = await ScheduleService.get_schedule_by_id(db, schedule_id)
        if not schedule:
            return None

        update_data = schedule_update.model_dump(exclude_unset=True, exclude={"template"})
        if "frequency" in update_data and update_data["frequency"] is not None:
            update_data["frequency"] = update_data["frequency"].value
        for field, value in update_data.items():
            setattr(schedule, field, value)
        if schedule_update.template is not None:
            schedule.template_data = schedule_update.template.model_dump(mode="json")

        if schedule.end_date is not None and schedule.end_date < schedule.start_date:
            raise ValueError("end_date must not be before start_date")

        await db.commit()
        await db.refresh(schedule)
        return schedule

    @staticmethod
    async def deactivate_schedule(db: AsyncSession, schedule_id: UUID) -> Optional[RecurringInvoiceSchedule]:
        """Schedules are kept for the invoices that reference them; deleting only switches them off."""
        schedule = await ScheduleService.get_schedule_by_id(db, schedule_id)
        if not schedule:
            return None
        schedule.is_active = False
        await db.commit()
        await db.refresh(schedule)
        return schedule
