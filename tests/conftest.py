"""Shared pytest fixtures for unit and integration tests."""

import os

# Settings are read at import time; keep tests off Postgres and the background job
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BILLING_CRON_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")

import asyncio
import copy
import itertools
import uuid
from datetime import date
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Mapping

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers the billing tables on Base.metadata
from app.core.exceptions import DuplicateInvoice, DuplicateInvoiceNumber, StorageFailure
from app.database import Base, get_db
from app.main import app as fastapi_app
from app.models.enums import InvoiceStatus
from app.services.billing_service import RecurringBillingProcessor


TEMPLATE = {
    "customerEmail": "accounts@acme.example.com",
    "customerPhone": "+91 98765 43210",
    "customerAddress": "12 MG Road, Bengaluru",
    "items": [
        {
            "itemId": "item-laptop",
            "itemName": "Laptop rental",
            "itemDescription": "Dell Latitude 5440",
            "quantity": 2,
            "unitPrice": "1500.00",
            "totalPrice": "3000.00",
            "taxRate": "18",
            "serialNumbers": "[\"SN-001\", \"SN-002\"]",
            "rentalPeriod": "monthly",
        },
        {
            "itemId": "item-monitor",
            "itemName": "Monitor rental",
            "quantity": 1,
            "unitPrice": "500.00",
        },
    ],
    "subtotal": "3500.00",
    "taxAmount": "630.00",
    "totalAmount": "4130.00",
}


class InMemoryInvoiceStore:
    """
    Dict-backed InvoiceStore with the same unique keys as the database.

    `failures` maps an operation name to a predicate over its arguments; a
    true predicate makes the call raise StorageFailure. `delays` makes an
    operation sleep first. `stale_reads` hides existing invoices from the
    customer listing, as a concurrent writer would.
    """

    def __init__(self):
        self.schedules: Dict[Any, SimpleNamespace] = {}
        self.invoices: Dict[Any, SimpleNamespace] = {}
        self.lines: List[SimpleNamespace] = []
        self.failures: Dict[str, Callable[..., bool]] = {}
        self.delays: Dict[str, float] = {}
        self.stale_reads = False

    async def _enter(self, operation: str, *args: Any) -> None:
        if operation in self.delays:
            await asyncio.sleep(self.delays[operation])
        predicate = self.failures.get(operation)
        if predicate is not None and predicate(*args):
            raise StorageFailure(operation)

    def add_schedule(self, schedule: SimpleNamespace) -> SimpleNamespace:
        self.schedules[schedule.id] = schedule
        return schedule

    def add_invoice(self, **data: Any) -> SimpleNamespace:
        invoice = SimpleNamespace(id=uuid.uuid4(), **data)
        self.invoices[invoice.id] = invoice
        return invoice

    def invoices_for_schedule(self, schedule_id) -> List[SimpleNamespace]:
        return [inv for inv in self.invoices.values() if inv.recurring_schedule_id == schedule_id]

    async def list_active_recurring_schedules(self):
        await self._enter("list_active_recurring_schedules")
        active = [s for s in self.schedules.values() if s.is_active and s.auto_generate]
        return [SimpleNamespace(**vars(s)) for s in sorted(active, key=lambda s: s.next_invoice_date)]

    async def list_invoices_for_customer(self, customer_id: str):
        await self._enter("list_invoices_for_customer", customer_id)
        if self.stale_reads:
            return []
        return [inv for inv in self.invoices.values() if inv.customer_id == customer_id]

    async def create_invoice(self, data: Mapping[str, Any]):
        await self._enter("create_invoice", data)
        for existing in self.invoices.values():
            if (
                data.get("recurring_schedule_id") is not None
                and existing.recurring_schedule_id == data["recurring_schedule_id"]
                and existing.invoice_date == data["invoice_date"]
            ):
                raise DuplicateInvoice(data["recurring_schedule_id"], data["invoice_date"])
            if existing.invoice_number == data["invoice_number"]:
                raise DuplicateInvoiceNumber(data["invoice_number"])
        return self.add_invoice(**data)

    async def create_invoice_line(self, data: Mapping[str, Any]):
        await self._enter("create_invoice_line", data)
        line = SimpleNamespace(id=uuid.uuid4(), **data)
        self.lines.append(line)
        return line

    async def list_invoice_lines(self, invoice_id):
        await self._enter("list_invoice_lines", invoice_id)
        return [line for line in self.lines if line.invoice_id == invoice_id]

    async def update_recurring_schedule(self, schedule_id, patch: Mapping[str, Any]) -> None:
        await self._enter("update_recurring_schedule", schedule_id, patch)
        for field, value in patch.items():
            setattr(self.schedules[schedule_id], field, value)

    async def list_invoices_by_status(self, status: InvoiceStatus):
        await self._enter("list_invoices_by_status", status)
        return [inv for inv in self.invoices.values() if inv.status == status]

    async def update_invoice(self, invoice_id, patch: Mapping[str, Any]) -> None:
        await self._enter("update_invoice", invoice_id, patch)
        for field, value in patch.items():
            setattr(self.invoices[invoice_id], field, value)


@pytest.fixture
def memory_store() -> InMemoryInvoiceStore:
    return InMemoryInvoiceStore()


@pytest.fixture
def make_schedule() -> Callable[..., SimpleNamespace]:
    """Factory for schedule records shaped like RecurringInvoiceSchedule rows."""

    def _make(**overrides: Any) -> SimpleNamespace:
        fields = {
            "id": uuid.uuid4(),
            "customer_id": "cust-1",
            "customer_name": "Acme Rentals",
            "rental_id": "rental-1",
            "service_id": None,
            "frequency": "monthly",
            "interval": 1,
            "start_date": date(2025, 1, 15),
            "end_date": None,
            "next_invoice_date": date(2025, 1, 15),
            "last_invoice_date": None,
            "is_active": True,
            "auto_generate": True,
            "payment_terms": "Net 30",
            "template_data": TEMPLATE,
        }
        fields.update(overrides)
        return SimpleNamespace(**fields)

    return _make


@pytest.fixture
def sequential_numbers() -> Callable[[date], str]:
    """Deterministic invoice numbers in the INV-YYYYMMDD-NNN format."""
    counter = itertools.count(1)
    return lambda run_date: f"INV-{run_date:%Y%m%d}-{next(counter):03d}"


@pytest.fixture
def processor(memory_store, sequential_numbers) -> RecurringBillingProcessor:
    """Processor pinned to 2025-01-15."""
    return RecurringBillingProcessor(
        memory_store,
        lookahead_days=6,
        store_timeout=1.0,
        today=lambda: date(2025, 1, 15),
        number_factory=sequential_numbers,
    )


@pytest.fixture
async def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory):
    """HTTP client against the app with get_db bound to the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test", timeout=30.0) as client:
        yield client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def template_payload() -> Dict[str, Any]:
    """camelCase invoice template as posted by API clients."""
    return copy.deepcopy(TEMPLATE)
