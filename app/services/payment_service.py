from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional, Tuple
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicatePaymentNumber, PaymentRejected
from app.core.logging import get_logger
from app.models.billing import Invoice, Payment
from app.models.enums import InvoiceStatus, PaymentStatus
from app.schemas.billing import MarkPaidRequest, PaymentCreate
from app.services.invoice_numbers import generate_payment_number
from app.services.invoice_service import allocate_number
from app.utils.time import get_utc_now, get_utc_today

logger = get_logger(__name__)


def amount_paid(invoice: Invoice) -> Decimal:
    """Sum of completed payments; pending, failed and refunded ones do not count"""
    return sum(
        (p.amount for p in invoice.payments if p.payment_status == PaymentStatus.COMPLETED),
        Decimal("0"),
    )


class PaymentService:
    """
    Payments ledger.

    Invoices passed in must have their payments loaded
    (InvoiceService.get_invoice_by_id does). An invoice flips to paid once
    its completed payments cover total_amount.
    """

    @staticmethod
    async def get_payment_by_id(db: AsyncSession, payment_id: UUID) -> Optional[Payment]:
        result = await db.execute(select(Payment).where(Payment.id == payment_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_payments(
        db: AsyncSession,
        invoice_id: Optional[UUID] = None,
        customer_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Payment], int]:
        filters = []
        if invoice_id:
            filters.append(Payment.invoice_id == invoice_id)
        if customer_id:
            filters.append(Payment.customer_id == customer_id)

        total = await db.scalar(select(func.count(Payment.id)).where(*filters))
        result = await db.execute(
            select(Payment)
            .where(*filters)
            .order_by(Payment.payment_date.desc(), Payment.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        invoice: Invoice,
        payment_in: PaymentCreate,
        number_factory: Callable[[date], str] = generate_payment_number,
    ) -> Payment:
        """
        Record a payment and settle the invoice when it is covered.

        Raises:
            PaymentRejected: the invoice is cancelled or already paid, or the
                amount is more than what is still owed
            DuplicatePaymentNumber: no free payment number could be drawn
        """
        if invoice.status == InvoiceStatus.CANCELLED:
            raise PaymentRejected("Cancelled invoices cannot be paid")
        if invoice.status == InvoiceStatus.PAID:
            raise PaymentRejected(f"Invoice {invoice.invoice_number} is already paid")

        balance = invoice.total_amount - amount_paid(invoice)
        if payment_in.amount > balance:
            raise PaymentRejected(f"Payment of {payment_in.amount} exceeds the outstanding balance of {balance}")

        today = get_utc_today()
        payment_number = await allocate_number(
            db, Payment.payment_number, number_factory, today, DuplicatePaymentNumber
        )
        payment = Payment(
            payment_number=payment_number,
            customer_id=invoice.customer_id,
            customer_name=invoice.customer_name,
            payment_date=payment_in.payment_date or today,
            amount=payment_in.amount,
            currency=invoice.currency,
            payment_method=payment_in.payment_method,
            payment_status=payment_in.payment_status,
            transaction_id=payment_in.transaction_id,
            reference_number=payment_in.reference_number,
            notes=payment_in.notes,
        )
        invoice.payments.append(payment)
        if amount_paid(invoice) >= invoice.total_amount:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = get_utc_now()

        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise DuplicatePaymentNumber(payment_number) from exc

        logger.info(
            f"Recorded payment {payment_number} for invoice {invoice.invoice_number}",
            extra={
                "payment_number": payment_number,
                "invoice_number": invoice.invoice_number,
                "invoice_status": invoice.status.value,
            },
        )
        return payment

    @staticmethod
    async def settle_invoice(
        db: AsyncSession,
        invoice: Invoice,
        details: Optional[MarkPaidRequest] = None,
    ) -> Invoice:
        """
        Mark an invoice paid, recording a payment for whatever is still owed.
        Settling an already paid invoice changes nothing.
        """
        if invoice.status == InvoiceStatus.PAID:
            return invoice
        if invoice.status == InvoiceStatus.CANCELLED:
            raise PaymentRejected("Cancelled invoices cannot be paid")

        details = details or MarkPaidRequest()
        balance = invoice.total_amount - amount_paid(invoice)
        if balance > 0:
            await PaymentService.record_payment(
                db,
                invoice,
                PaymentCreate(
                    invoice_id=invoice.id,
                    amount=balance,
                    payment_method=details.payment_method,
                    payment_date=details.payment_date,
                    reference_number=details.reference_number,
                    notes=details.notes,
                ),
            )
        else:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = get_utc_now()
            await db.commit()
        return invoice
