"""Invoice store: persistence contract used by the billing job and its SQLAlchemy implementation"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, List, Mapping, Optional, Protocol, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateInvoice, DuplicateInvoiceNumber, StorageFailure
from app.models.billing import Invoice, InvoiceItem, RecurringInvoiceSchedule
from app.models.enums import InvoiceStatus
from app.utils.time import get_utc_now


class InvoiceStore(Protocol):
    """Everything the billing job reads from or writes to storage."""

    async def list_active_recurring_schedules(self) -> Sequence[RecurringInvoiceSchedule]: ...

    async def list_invoices_for_customer(self, customer_id: str) -> Sequence[Invoice]: ...

    async def create_invoice(self, data: Mapping[str, Any]) -> Invoice: ...

    async def create_invoice_line(self, data: Mapping[str, Any]) -> InvoiceItem: ...

    async def list_invoice_lines(self, invoice_id: UUID) -> Sequence[InvoiceItem]: ...

    async def update_recurring_schedule(self, schedule_id: UUID, patch: Mapping[str, Any]) -> None: ...

    async def list_invoices_by_status(self, status: InvoiceStatus) -> Sequence[Invoice]: ...

    async def update_invoice(self, invoice_id: UUID, patch: Mapping[str, Any]) -> None: ...


class SQLAlchemyInvoiceStore:
    """
    InvoiceStore over an AsyncSession.

    Every write commits on its own. Failures roll the session back so it stays
    usable for the next schedule, and surface as StorageFailure, or as
    DuplicateInvoice / DuplicateInvoiceNumber for the two unique constraints.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _guard(self, operation: str, data: Optional[Mapping[str, Any]] = None) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as exc:
            await self.db.rollback()
            raise self._classify_integrity_error(operation, exc, data or {}) from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise StorageFailure(operation, exc) from exc
        except asyncio.CancelledError:
            # A call cut off by a timeout must not leave its transaction open on the session
            await self.db.rollback()
            raise

    def _detach(self, rows: Iterable[Any]) -> List[Any]:
        # Rows outlive the rollback of a later failed write and must not be expired by it
        detached = list(rows)
        for row in detached:
            self.db.expunge(row)
        return detached

    @staticmethod
    def _classify_integrity_error(
        operation: str, exc: IntegrityError, data: Mapping[str, Any]
    ) -> Exception:
        # Postgres names the violated constraint, SQLite lists its columns
        message = str(exc.orig)
        if "unique" not in message.lower():
            return StorageFailure(operation, exc)
        if (
            "uq_invoices_schedule_invoice_date" in message
            or "invoices.recurring_schedule_id, invoices.invoice_date" in message
        ):
            return DuplicateInvoice(data.get("recurring_schedule_id"), data.get("invoice_date"))
        if "invoice_number" in message:
            return DuplicateInvoiceNumber(data.get("invoice_number", ""))
        return StorageFailure(operation, exc)

    async def list_active_recurring_schedules(self) -> List[RecurringInvoiceSchedule]:
        async with self._guard("list_active_recurring_schedules"):
            result = await self.db.execute(
                select(RecurringInvoiceSchedule)
                .where(
                    RecurringInvoiceSchedule.is_active.is_(True),
                    RecurringInvoiceSchedule.auto_generate.is_(True),
                )
                .order_by(RecurringInvoiceSchedule.next_invoice_date)
            )
            return self._detach(result.scalars().all())

    async def list_invoices_for_customer(self, customer_id: str) -> List[Invoice]:
        async with self._guard("list_invoices_for_customer"):
            result = await self.db.execute(
                select(Invoice).where(Invoice.customer_id == customer_id)
            )
            return self._detach(result.scalars().all())

    async def create_invoice(self, data: Mapping[str, Any]) -> Invoice:
        async with self._guard("create_invoice", data):
            invoice = Invoice(**data)
            self.db.add(invoice)
            await self.db.commit()
            self.db.expunge(invoice)
            return invoice

    async def create_invoice_line(self, data: Mapping[str, Any]) -> InvoiceItem:
        async with self._guard("create_invoice_line", data):
            line = InvoiceItem(**data)
            self.db.add(line)
            await self.db.commit()
            self.db.expunge(line)
            return line

    async def list_invoice_lines(self, invoice_id: UUID) -> List[InvoiceItem]:
        async with self._guard("list_invoice_lines"):
            result = await self.db.execute(
                select(InvoiceItem)
                .where(InvoiceItem.invoice_id == invoice_id)
                .order_by(InvoiceItem.created_at)
            )
            return self._detach(result.scalars().all())

    async def update_recurring_schedule(self, schedule_id: UUID, patch: Mapping[str, Any]) -> None:
        async with self._guard("update_recurring_schedule"):
            await self.db.execute(
                update(RecurringInvoiceSchedule)
                .where(RecurringInvoiceSchedule.id == schedule_id)
                .values(**patch, updated_at=get_utc_now())
            )
            await self.db.commit()

    async def list_invoices_by_status(self, status: InvoiceStatus) -> List[Invoice]:
        async with self._guard("list_invoices_by_status"):
            result = await self.db.execute(
                select(Invoice).where(Invoice.status == status)
            )
            return self._detach(result.scalars().all())

    async def update_invoice(self, invoice_id: UUID, patch: Mapping[str, Any]) -> None:
        async with self._guard("update_invoice"):
            await self.db.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id)
                .values(**patch, updated_at=get_utc_now())
            )
            await self.db.commit()

