from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute, selectinload

from app.config import settings
from app.core.exceptions import DuplicateInvoiceNumber
from app.models.billing import Invoice, InvoiceItem, Payment, RecurringInvoiceSchedule
from app.models.enums import InvoiceStatus, PaymentStatus
from app.schemas.billing import InvoiceCreate
from app.services.billing_dates import due_date
from app.services.invoice_numbers import generate_invoice_number
from app.utils.time import get_utc_today


async def allocate_number(
    db: AsyncSession,
    column: InstrumentedAttribute,
    factory: Callable[[date], str],
    run_date: date,
    exhausted: Callable[[str], Exception],
) -> str:
    """
    Draw numbers until one is not in use yet, raising exhausted(last number) when every attempt collides.
    The unique index still guards the insert against a concurrent writer.
    """
    number = ""
    for _ in range(settings.BILLING_INVOICE_NUMBER_ATTEMPTS):
        number = factory(run_date)
        taken = await db.scalar(select(column).where(column == number).limit(1))
        if taken is None:
            return number
    raise exhausted(number)


class InvoiceService:
    """Service layer for invoice queries and manual invoices"""

    @staticmethod
    async def get_invoice_by_id(db: AsyncSession, invoice_id: UUID) -> Optional[Invoice]:
        result = await db.execute(
            select(Invoice)
            .options(selectinload(Invoice.items), selectinload(Invoice.payments))
            .where(Invoice.id == invoice_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_invoices(
        db: AsyncSession,
        status: Optional[InvoiceStatus] = None,
        customer_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Invoice], int]:
        """
        Newest invoices first.

        Returns:
            Tuple of (page of invoices, total matching count)
        """
        filters = []
        if status:
            filters.append(Invoice.status == status)
        if customer_id:
            filters.append(Invoice.customer_id == customer_id)

        total = await db.scalar(select(func.count(Invoice.id)).where(*filters))
        result = await db.execute(
            select(Invoice)
            .where(*filters)
            .order_by(Invoice.invoice_date.desc(), Invoice.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def create_invoice(
        db: AsyncSession,
        invoice_in: InvoiceCreate,
        number_factory: Callable[[date], str] = generate_invoice_number,
    ) -> Invoice:
        """
        Issue a one-off invoice. The invoice and its lines are written in one commit.

        Raises:
            DuplicateInvoiceNumber: no free invoice number could be drawn
        """
        today = get_utc_today()
        invoice_date = invoice_in.invoice_date or today
        payment_terms = invoice_in.payment_terms or settings.BILLING_DEFAULT_PAYMENT_TERMS

        invoice_number = await allocate_number(
            db, Invoice.invoice_number, number_factory, today, DuplicateInvoiceNumber
        )

        invoice = Invoice(
            invoice_number=invoice_number,
            customer_id=invoice_in.customer_id,
            customer_name=invoice_in.customer_name,
            customer_email=invoice_in.customer_email,
            customer_phone=invoice_in.customer_phone,
            customer_address=invoice_in.customer_address,
            rental_id=invoice_in.rental_id,
            service_id=invoice_in.service_id,
            invoice_date=invoice_date,
            due_date=invoice_in.due_date or due_date(invoice_date, payment_terms),
            status=InvoiceStatus.PENDING,
            subtotal=invoice_in.subtotal,
            tax_amount=invoice_in.tax_amount,
            discount_amount=invoice_in.discount_amount,
            total_amount=invoice_in.total_amount,
            currency=invoice_in.currency,
            notes=invoice_in.notes,
            payment_terms=payment_terms,
            is_recurring=False,
            items=[InvoiceItem(**item.line_values()) for item in invoice_in.items],
            payments=[],
        )
        db.add(invoice)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise DuplicateInvoiceNumber(invoice_number) from exc
        return await InvoiceService.get_invoice_by_id(db, invoice.id)

    @staticmethod
    async def get_stats(db: AsyncSession) -> Dict[str, Any]:
        """
        Aggregated numbers for the billing dashboard.
        """
        rows = await db.execute(
            select(Invoice.status, func.count(Invoice.id), func.coalesce(func.sum(Invoice.total_amount), 0))
            .group_by(Invoice.status)
        )
        counts = {status.value: 0 for status in InvoiceStatus}
        amounts = {status.value: Decimal("0") for status in InvoiceStatus}
        for status, count, amount in rows.all():
            key = InvoiceStatus(status).value
            counts[key] = count
            amounts[key] = Decimal(str(amount))

        payment_count, received = (
            await db.execute(
                select(func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0)).where(
                    Payment.payment_status == PaymentStatus.COMPLETED
                )
            )
        ).one()

        active_schedules = await db.scalar(
            select(func.count(RecurringInvoiceSchedule.id)).where(
                RecurringInvoiceSchedule.is_active.is_(True)
            )
        )
        horizon = get_utc_today() + timedelta(days=settings.BILLING_LOOKAHEAD_DAYS)
        due_soon = await db.scalar(
            select(func.count(RecurringInvoiceSchedule.id)).where(
                RecurringInvoiceSchedule.is_active.is_(True),
                RecurringInvoiceSchedule.next_invoice_date <= horizon,
            )
        )

        return {
            "invoice_counts": counts,
            "outstanding_amount": amounts[InvoiceStatus.PENDING.value] + amounts[InvoiceStatus.OVERDUE.value],
            "overdue_amount": amounts[InvoiceStatus.OVERDUE.value],
            "paid_amount": amounts[InvoiceStatus.PAID.value],
            "payments_received": Decimal(str(received)),
            "payment_count": payment_count,
            "active_schedules": active_schedules or 0,
            "schedules_due_soon": due_soon or 0,
        }
