"""Recurring billing job: invoice generation, overdue sweep and their orchestration"""

import asyncio
import enum
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import DuplicateInvoice, DuplicateInvoiceNumber, InvalidSchedule, StorageFailure
from app.core.logging import billing_run_id, get_logger
from app.database import AsyncSessionLocal
from app.models.enums import InvoiceStatus
from app.schemas.billing import InvoiceTemplate, TemplateLineItem
from app.services.billing_dates import due_date, next_invoice_date
from app.services.invoice_numbers import generate_invoice_number
from app.services.invoice_store import InvoiceStore, SQLAlchemyInvoiceStore
from app.utils.time import get_utc_today

logger = get_logger(__name__)

T = TypeVar("T")


class ScheduleOutcome(str, enum.Enum):
    GENERATED = "generated"
    SKIPPED = "skipped"
    REPAIRED = "repaired"
    DEACTIVATED = "deactivated"


@dataclass
class GenerationReport:
    """Counts for one pass of the recurring invoice generator"""
    generated: int = 0
    skipped: int = 0
    failed: int = 0
    deactivated: int = 0
    repaired: int = 0
    invoice_numbers: List[str] = field(default_factory=list)


@dataclass
class BillingRunResult:
    """Outcome of one billing job invocation; a phase that failed leaves its field as None"""
    run_id: str
    generation: Optional[GenerationReport] = None
    overdue_marked: Optional[int] = None
    errors: List[str] = field(default_factory=list)


class RecurringBillingProcessor:
    """
    Generates invoices from due recurring schedules and marks stale invoices overdue.

    A schedule is due when its next_invoice_date falls within the lookahead
    window. Generation is idempotent per (schedule, invoice date): an existing
    invoice for that pair is found before anything is written, and the
    storage unique constraint catches whatever slips past that check. An
    existing invoice that lost some of its lines to a failed run gets them
    back before the schedule moves on.
    Failures are contained to the schedule or invoice being processed.
    """

    def __init__(
        self,
        store: InvoiceStore,
        *,
        lookahead_days: int = 6,
        default_payment_terms: str = "Net 30",
        store_timeout: Optional[float] = 30.0,
        invoice_number_attempts: int = 5,
        today: Callable[[], date] = get_utc_today,
        number_factory: Callable[[date], str] = generate_invoice_number,
    ):
        self.store = store
        self.lookahead_days = lookahead_days
        self.default_payment_terms = default_payment_terms
        self.store_timeout = store_timeout
        self.invoice_number_attempts = max(1, invoice_number_attempts)
        self.today = today
        self.number_factory = number_factory

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.store_timeout)
        except asyncio.TimeoutError as exc:
            raise StorageFailure(operation, exc) from exc

    async def process_recurring_invoices(self) -> GenerationReport:
        """Generate one invoice per schedule due within the lookahead window."""
        report = GenerationReport()
        today = self.today()
        horizon = today + timedelta(days=self.lookahead_days)

        logger.info("Processing recurring invoices", extra={"horizon": horizon.isoformat()})
        schedules = await self._call(
            "list_active_recurring_schedules", self.store.list_active_recurring_schedules()
        )

        for schedule in schedules:
            if schedule.next_invoice_date > horizon:
                continue
            try:
                outcome, invoice_number = await self._process_schedule(schedule, today)
            except Exception as exc:
                report.failed += 1
                logger.error(
                    f"Failed to generate invoice for schedule {schedule.id}: {exc}",
                    extra={"schedule_id": str(schedule.id), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                continue

            if outcome == ScheduleOutcome.GENERATED:
                report.generated += 1
                report.invoice_numbers.append(invoice_number)
            elif outcome == ScheduleOutcome.REPAIRED:
                report.skipped += 1
                report.repaired += 1
            elif outcome == ScheduleOutcome.SKIPPED:
                report.skipped += 1
            else:
                report.deactivated += 1

        logger.info(
            "Recurring invoice processing completed",
            extra={
                "generated": report.generated,
                "skipped": report.skipped,
                "failed": report.failed,
                "deactivated": report.deactivated,
                "repaired": report.repaired,
            },
        )
        return report

    async def _process_schedule(
        self, schedule: Any, today: date
    ) -> Tuple[ScheduleOutcome, Optional[str]]:
        invoice_date = schedule.next_invoice_date
        schedule_id = schedule.id

        if schedule.end_date is not None and invoice_date > schedule.end_date:
            await self._call(
                "update_recurring_schedule",
                self.store.update_recurring_schedule(schedule_id, {"is_active": False}),
            )
            logger.info(
                f"Schedule {schedule_id} ended on {schedule.end_date}, deactivated",
                extra={"schedule_id": str(schedule_id)},
            )
            return ScheduleOutcome.DEACTIVATED, None

        # Resolved before any write so a broken schedule leaves no invoice behind
        start_date = getattr(schedule, "start_date", None)
        following_date = next_invoice_date(
            schedule.frequency,
            schedule.interval,
            invoice_date,
            anchor_day=start_date.day if start_date else None,
        )

        existing = await self._call(
            "list_invoices_for_customer",
            self.store.list_invoices_for_customer(schedule.customer_id),
        )
        match = next(
            (
                inv for inv in existing
                if inv.invoice_date == invoice_date and inv.recurring_schedule_id == schedule_id
            ),
            None,
        )
        template = self._load_template(schedule)
        if match is not None:
            # An earlier run created the invoice but did not get to advance the schedule
            logger.info(
                f"Invoice already exists for schedule {schedule_id} and date {invoice_date}, skipping",
                extra={"schedule_id": str(schedule_id)},
            )
            restored = await self._restore_missing_lines(match, template)
            await self._advance(schedule_id, invoice_date, following_date)
            return (ScheduleOutcome.REPAIRED if restored else ScheduleOutcome.SKIPPED), None

        try:
            invoice_number = await self._generate_invoice(schedule, template, invoice_date, today)
        except DuplicateInvoice:
            logger.info(
                f"Invoice for schedule {schedule_id} on {invoice_date} was created concurrently, skipping",
                extra={"schedule_id": str(schedule_id)},
            )
            await self._advance(schedule_id, invoice_date, following_date)
            return ScheduleOutcome.SKIPPED, None

        await self._advance(schedule_id, invoice_date, following_date)
        logger.info(
            f"Generated invoice {invoice_number} for customer {schedule.customer_name}",
            extra={
                "schedule_id": str(schedule_id),
                "invoice_number": invoice_number,
                "invoice_date": invoice_date.isoformat(),
                "next_invoice_date": following_date.isoformat(),
            },
        )
        return ScheduleOutcome.GENERATED, invoice_number

    async def _advance(self, schedule_id: Any, invoice_date: date, following_date: date) -> None:
        # Same patch from every path, so applying it twice is harmless
        await self._call(
            "update_recurring_schedule",
            self.store.update_recurring_schedule(
                schedule_id,
                {"last_invoice_date": invoice_date, "next_invoice_date": following_date},
            ),
        )

    @staticmethod
    def _load_template(schedule: Any) -> InvoiceTemplate:
        try:
            return InvoiceTemplate.from_stored(schedule.template_data)
        except (ValidationError, ValueError, TypeError) as exc:
            raise InvalidSchedule(f"Schedule {schedule.id} has an unusable template: {exc}") from exc

    async def _generate_invoice(
        self, schedule: Any, template: InvoiceTemplate, invoice_date: date, today: date
    ) -> str:
        payment_terms = schedule.payment_terms or self.default_payment_terms
        data = {
            "customer_id": schedule.customer_id,
            "customer_name": schedule.customer_name,
            "customer_email": template.customer_email,
            "customer_phone": template.customer_phone,
            "customer_address": template.customer_address,
            "rental_id": schedule.rental_id,
            "service_id": schedule.service_id,
            "invoice_date": invoice_date,
            "due_date": due_date(invoice_date, payment_terms),
            "status": InvoiceStatus.PENDING,
            "subtotal": template.subtotal,
            "tax_amount": template.tax_amount,
            "discount_amount": template.discount_amount,
            "total_amount": template.total_amount,
            "currency": template.currency,
            "notes": template.notes or f"Auto-generated {schedule.frequency} invoice",
            "payment_terms": payment_terms,
            "is_recurring": True,
            "recurring_schedule_id": schedule.id,
        }

        invoice = None
        invoice_number = ""
        for _ in range(self.invoice_number_attempts):
            invoice_number = self.number_factory(today)
            try:
                invoice = await self._call(
                    "create_invoice",
                    self.store.create_invoice({**data, "invoice_number": invoice_number}),
                )
                break
            except DuplicateInvoiceNumber:
                logger.warning(
                    f"Invoice number {invoice_number} already taken, retrying",
                    extra={"schedule_id": str(schedule.id)},
                )
        if invoice is None:
            raise DuplicateInvoiceNumber(invoice_number)

        for item in template.items:
            await self._create_line(invoice.id, item)
        return invoice_number

    async def _create_line(self, invoice_id: Any, item: TemplateLineItem) -> None:
        await self._call(
            "create_invoice_line",
            self.store.create_invoice_line({**item.line_values(), "invoice_id": invoice_id}),
        )

    async def _restore_missing_lines(self, invoice: Any, template: InvoiceTemplate) -> int:
        """Create the template lines an existing invoice lacks. Returns how many were added."""
        lines = await self._call("list_invoice_lines", self.store.list_invoice_lines(invoice.id))
        stored = Counter((line.item_id, line.item_name) for line in lines)
        missing = []
        for item in template.items:
            key = (item.item_id, item.item_name)
            if stored[key]:
                stored[key] -= 1
            else:
                missing.append(item)

        for item in missing:
            await self._create_line(invoice.id, item)
        if missing:
            logger.warning(
                f"Restored {len(missing)} missing line(s) on invoice {invoice.invoice_number}",
                extra={"invoice_number": invoice.invoice_number},
            )
        return len(missing)

    async def check_overdue_invoices(self) -> int:
        """Move pending invoices past their due date to overdue. Returns how many moved."""
        today = self.today()
        logger.info("Checking for overdue invoices")
        pending = await self._call(
            "list_invoices_by_status", self.store.list_invoices_by_status(InvoiceStatus.PENDING)
        )

        marked = 0
        for invoice in pending:
            if invoice.due_date >= today:
                continue
            try:
                await self._call(
                    "update_invoice",
                    self.store.update_invoice(invoice.id, {"status": InvoiceStatus.OVERDUE}),
                )
            except Exception as exc:
                logger.error(
                    f"Failed to mark invoice {invoice.invoice_number} overdue: {exc}",
                    extra={"invoice_number": invoice.invoice_number},
                    exc_info=True,
                )
                continue
            marked += 1
            logger.info(
                f"Marked invoice {invoice.invoice_number} as overdue",
                extra={"invoice_number": invoice.invoice_number},
            )

        logger.info("Overdue invoice check completed", extra={"overdue_marked": marked})
        return marked

    async def run_billing_cron_jobs(self) -> BillingRunResult:
        """Run generation then the overdue sweep. Never raises; phase failures are recorded."""
        result = BillingRunResult(run_id=uuid.uuid4().hex)
        token = billing_run_id.set(result.run_id)
        try:
            logger.info("Starting billing cron jobs")
            try:
                result.generation = await self.process_recurring_invoices()
            except Exception as exc:
                result.errors.append(f"process_recurring_invoices: {exc}")
                logger.error(f"Error processing recurring invoices: {exc}", exc_info=True)

            try:
                result.overdue_marked = await self.check_overdue_invoices()
            except Exception as exc:
                result.errors.append(f"check_overdue_invoices: {exc}")
                logger.error(f"Error checking overdue invoices: {exc}", exc_info=True)

            logger.info("Billing cron jobs completed", extra={"errors": len(result.errors)})
            return result
        finally:
            billing_run_id.reset(token)


def build_processor(db: AsyncSession) -> RecurringBillingProcessor:
    """Processor over the SQLAlchemy store, configured from settings"""
    return RecurringBillingProcessor(
        SQLAlchemyInvoiceStore(db),
        lookahead_days=settings.BILLING_LOOKAHEAD_DAYS,
        default_payment_terms=settings.BILLING_DEFAULT_PAYMENT_TERMS,
        store_timeout=settings.BILLING_STORE_TIMEOUT_SECONDS,
        invoice_number_attempts=settings.BILLING_INVOICE_NUMBER_ATTEMPTS,
    )


async def process_recurring_invoices(
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> GenerationReport:
    async with session_factory() as db:
        return await build_processor(db).process_recurring_invoices()


async def check_overdue_invoices(
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> int:
    async with session_factory() as db:
        return await build_processor(db).check_overdue_invoices()


async def run_billing_cron_jobs(
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> BillingRunResult:
    """Host entry point used by the scheduler and the manual trigger endpoint"""
    async with session_factory() as db:
        return await build_processor(db).run_billing_cron_jobs()
