import math
from typing import Any, Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from app.api import deps
from app.core.exceptions import DuplicateInvoiceNumber, PaymentRejected
from app.models.enums import InvoiceStatus
from app.schemas.billing import InvoiceCreate, InvoiceDetailResponse, InvoiceResponse, MarkPaidRequest
from app.schemas.responses import PaginatedResponse, SuccessResponse
from app.services.invoice_service import InvoiceService
from app.services.payment_service import PaymentService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[InvoiceResponse])
async def list_invoices(
    status: Optional[InvoiceStatus] = Query(None),
    customer_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=200, description="Invoices per page"),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Invoices, newest first, optionally filtered by status or customer.
    """
    invoices, total = await InvoiceService.list_invoices(
        db, status=status, customer_id=customer_id, skip=(page - 1) * page_size, limit=page_size
    )
    return PaginatedResponse(
        data=invoices,
        meta={
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size),
        },
    )


@router.post("", response_model=SuccessResponse[InvoiceDetailResponse], status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_in: InvoiceCreate,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Issue a one-off invoice with its lines. Totals missing from the payload are derived from the items.
    """
    try:
        invoice = await InvoiceService.create_invoice(db, invoice_in)
    except DuplicateInvoiceNumber as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return SuccessResponse(data=invoice, message="Invoice created successfully")


@router.get("/{invoice_id}", response_model=SuccessResponse[InvoiceDetailResponse])
async def get_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Invoice with its lines and payments.
    """
    invoice = await InvoiceService.get_invoice_by_id(db, invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return SuccessResponse(data=invoice)


@router.post("/{invoice_id}/mark-paid", response_model=SuccessResponse[InvoiceDetailResponse])
async def mark_invoice_paid(
    invoice_id: UUID,
    details: Optional[MarkPaidRequest] = Body(None),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Settle an invoice. Whatever is still owed is recorded as a payment.
    """
    invoice = await InvoiceService.get_invoice_by_id(db, invoice_id)
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    try:
        await PaymentService.settle_invoice(db, invoice, details)
    except PaymentRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    invoice = await InvoiceService.get_invoice_by_id(db, invoice_id)
    return SuccessResponse(data=invoice, message="Invoice marked as paid")
