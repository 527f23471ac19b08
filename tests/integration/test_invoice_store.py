"""SQLAlchemyInvoiceStore and the billing job against an in-memory SQLite database."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.core.exceptions import DuplicateInvoice, DuplicateInvoiceNumber
from app.models.billing import Invoice, RecurringInvoiceSchedule
from app.models.enums import InvoiceStatus
from app.services.billing_service import RecurringBillingProcessor, run_billing_cron_jobs
from app.services.invoice_store import SQLAlchemyInvoiceStore


@pytest.fixture
def add_schedule(db_session, template_payload):
    async def _add(**overrides) -> RecurringInvoiceSchedule:
        fields = {
            "customer_id": "cust-1",
            "customer_name": "Acme Rentals",
            "rental_id": "rental-1",
            "frequency": "monthly",
            "interval": 1,
            "start_date": date(2025, 1, 31),
            "next_invoice_date": date(2025, 1, 31),
            "payment_terms": "Net 30",
            "template_data": template_payload,
        }
        fields.update(overrides)
        schedule = RecurringInvoiceSchedule(**fields)
        db_session.add(schedule)
        await db_session.commit()
        return schedule

    return _add


def invoice_data(schedule_id, number="INV-20250131-001", invoice_date=date(2025, 1, 31)):
    return {
        "invoice_number": number,
        "customer_id": "cust-1",
        "customer_name": "Acme Rentals",
        "invoice_date": invoice_date,
        "due_date": date(2025, 3, 2),
        "status": InvoiceStatus.PENDING,
        "subtotal": Decimal("100.00"),
        "total_amount": Decimal("100.00"),
        "is_recurring": True,
        "recurring_schedule_id": schedule_id,
    }


@pytest.mark.asyncio
async def test_list_active_recurring_schedules_filters_and_orders(db_session, add_schedule):
    later = await add_schedule(next_invoice_date=date(2025, 3, 1))
    sooner = await add_schedule(customer_id="cust-2", next_invoice_date=date(2025, 2, 1))
    await add_schedule(customer_id="cust-3", is_active=False)
    await add_schedule(customer_id="cust-4", auto_generate=False)
    store = SQLAlchemyInvoiceStore(db_session)

    schedules = await store.list_active_recurring_schedules()

    assert [s.id for s in schedules] == [sooner.id, later.id]


@pytest.mark.asyncio
async def test_duplicate_schedule_date_raises_and_session_recovers(db_session, add_schedule):
    schedule = await add_schedule()
    store = SQLAlchemyInvoiceStore(db_session)
    await store.create_invoice(invoice_data(schedule.id))

    with pytest.raises(DuplicateInvoice):
        await store.create_invoice(invoice_data(schedule.id, number="INV-20250131-002"))

    invoices = await store.list_invoices_for_customer("cust-1")
    assert [inv.invoice_number for inv in invoices] == ["INV-20250131-001"]


@pytest.mark.asyncio
async def test_duplicate_invoice_number_raises(db_session, add_schedule):
    schedule = await add_schedule()
    store = SQLAlchemyInvoiceStore(db_session)
    await store.create_invoice(invoice_data(schedule.id))

    with pytest.raises(DuplicateInvoiceNumber):
        await store.create_invoice(invoice_data(schedule.id, invoice_date=date(2025, 2, 28)))


@pytest.mark.asyncio
async def test_update_recurring_schedule_persists(db_session, add_schedule):
    schedule = await add_schedule()
    store = SQLAlchemyInvoiceStore(db_session)

    await store.update_recurring_schedule(schedule.id, {"next_invoice_date": date(2025, 2, 28)})

    stored = await db_session.scalar(
        select(RecurringInvoiceSchedule.next_invoice_date).where(RecurringInvoiceSchedule.id == schedule.id)
    )
    assert stored == date(2025, 2, 28)


@pytest.mark.asyncio
async def test_list_and_update_invoices_by_status(db_session, add_schedule):
    schedule = await add_schedule()
    store = SQLAlchemyInvoiceStore(db_session)
    invoice = await store.create_invoice(invoice_data(schedule.id))

    await store.update_invoice(invoice.id, {"status": InvoiceStatus.OVERDUE})

    assert await store.list_invoices_by_status(InvoiceStatus.PENDING) == []
    [overdue] = await store.list_invoices_by_status(InvoiceStatus.OVERDUE)
    assert overdue.id == invoice.id


@pytest.mark.asyncio
async def test_billing_job_end_to_end(db_session, add_schedule):
    schedule = await add_schedule()
    store = SQLAlchemyInvoiceStore(db_session)
    processor = RecurringBillingProcessor(store, today=lambda: date(2025, 1, 28))

    first = await processor.run_billing_cron_jobs()
    second = await processor.run_billing_cron_jobs()

    assert first.errors == []
    assert first.generation.generated == 1
    assert second.generation.generated == 0

    result = await db_session.execute(
        select(Invoice).options(selectinload(Invoice.items)).where(Invoice.recurring_schedule_id == schedule.id)
    )
    [invoice] = result.scalars().all()
    assert invoice.invoice_number.startswith("INV-20250128-")
    assert invoice.invoice_date == date(2025, 1, 31)
    assert invoice.due_date == date(2025, 3, 2)
    assert invoice.total_amount == Decimal("4130.00")
    assert len(invoice.items) == 2

    next_date = await db_session.scalar(
        select(RecurringInvoiceSchedule.next_invoice_date).where(RecurringInvoiceSchedule.id == schedule.id)
    )
    assert next_date == date(2025, 2, 28)


@pytest.mark.asyncio
async def test_module_entry_point_uses_session_factory(session_factory, add_schedule):
    await add_schedule(next_invoice_date=date(2020, 1, 31), start_date=date(2020, 1, 31))

    result = await run_billing_cron_jobs(session_factory)

    assert result.errors == []
    assert result.generation.generated == 1
    # Due 2020-03-01, so it is overdue by the time the sweep runs
    assert result.overdue_marked == 1


@pytest.mark.asyncio
async def test_list_invoice_lines_returns_lines_of_one_invoice(db_session, add_schedule):
    schedule = await add_schedule()
    store = SQLAlchemyInvoiceStore(db_session)
    first = await store.create_invoice(invoice_data(schedule.id))
    second = await store.create_invoice(
        invoice_data(schedule.id, number="INV-20250228-001", invoice_date=date(2025, 2, 28))
    )
    line = {
        "item_name": "Laptop rental",
        "quantity": 1,
        "unit_price": Decimal("100.00"),
        "total_price": Decimal("100.00"),
    }
    await store.create_invoice_line({**line, "invoice_id": first.id})
    await store.create_invoice_line({**line, "invoice_id": second.id, "item_name": "Monitor rental"})

    lines = await store.list_invoice_lines(first.id)

    assert [item.item_name for item in lines] == ["Laptop rental"]


@pytest.mark.asyncio
async def test_billing_job_completes_an_invoice_left_without_lines(db_session, add_schedule):
    schedule = await add_schedule()
    store = SQLAlchemyInvoiceStore(db_session)
    await store.create_invoice(invoice_data(schedule.id))
    processor = RecurringBillingProcessor(store, today=lambda: date(2025, 1, 28))

    report = await processor.process_recurring_invoices()

    assert report.repaired == 1
    assert report.generated == 0
    result = await db_session.execute(
        select(Invoice).options(selectinload(Invoice.items)).where(Invoice.recurring_schedule_id == schedule.id)
    )
    [invoice] = result.scalars().all()
    assert sorted(item.item_name for item in invoice.items) == ["Laptop rental", "Monitor rental"]
