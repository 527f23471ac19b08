import math
from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from app.api import deps
from app.core.exceptions import DuplicatePaymentNumber, PaymentRejected
from app.models.enums import InvoiceStatus
from app.schemas.billing import PaymentCreate, PaymentResponse
from app.schemas.responses import PaginatedResponse, SuccessResponse
from app.services.invoice_service import InvoiceService
from app.services.payment_service import PaymentService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[PaymentResponse])
async def list_payments(
    invoice_id: Optional[UUID] = Query(None),
    customer_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=200, description="Payments per page"),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Payments, most recent first, optionally for one invoice or customer.
    """
    payments, total = await PaymentService.list_payments(
        db, invoice_id=invoice_id, customer_id=customer_id, skip=(page - 1) * page_size, limit=page_size
    )
    return PaginatedResponse(
        data=payments,
        meta={
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size),
        },
    )


@router.post("", response_model=SuccessResponse[PaymentResponse], status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_in: PaymentCreate,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Record a payment. The invoice is marked paid once completed payments cover its total.
    """
    invoice = await InvoiceService.get_invoice_by_id(db, payment_in.invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    try:
        payment = await PaymentService.record_payment(db, invoice, payment_in)
    except (PaymentRejected, DuplicatePaymentNumber) as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    message = "Payment recorded, invoice settled" if invoice.status == InvoiceStatus.PAID else "Payment recorded"
    return SuccessResponse(data=payment, message=message)


@router.get("/{payment_id}", response_model=SuccessResponse[PaymentResponse])
async def get_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    payment = await PaymentService.get_payment_by_id(db, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return SuccessResponse(data=payment)
