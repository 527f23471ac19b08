"""Billing Pydantic Schemas: invoice templates, schedules, invoices, payments"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.config import settings
from app.models.enums import BillingFrequency, InvoiceStatus, PaymentMethod, PaymentStatus

Money = Decimal
TWO_PLACES = Decimal("0.01")


class TemplateLineItem(BaseModel):
    """One line of an invoice template, copied verbatim into every generated invoice"""
    item_id: Optional[str] = None
    item_name: str = Field(..., min_length=1)
    item_description: Optional[str] = None
    quantity: int = Field(1, ge=1)
    unit_price: Money = Field(..., ge=0)
    total_price: Optional[Money] = Field(None, ge=0)
    tax_rate: Money = Field(Decimal("0"), ge=0, le=100)
    discount_rate: Money = Field(Decimal("0"), ge=0, le=100)
    serial_numbers: Optional[List[str]] = None
    rental_period: Optional[str] = None

    # Accept the camelCase payloads posted by the dashboard as well
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("serial_numbers", mode="before")
    @classmethod
    def parse_serial_numbers(cls, v: Any) -> Any:
        """Serial numbers may arrive as a JSON-encoded array"""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            try:
                decoded = json.loads(v)
            except ValueError:
                return [part.strip() for part in v.split(",") if part.strip()]
            return decoded if isinstance(decoded, list) else [str(decoded)]
        return v

    @model_validator(mode="after")
    def fill_total_price(self) -> "TemplateLineItem":
        if self.total_price is None:
            self.total_price = (self.unit_price * self.quantity).quantize(TWO_PLACES)
        return self

    def line_values(self) -> Dict[str, Any]:
        """Column values for the InvoiceItem copied from this line"""
        return self.model_dump(by_alias=False)


class InvoiceTemplate(BaseModel):
    """
    Typed snapshot of customer contact data and line items.

    Validated when the schedule is created, so generation never has to
    guess at a payload's shape. Missing totals are derived from the items.
    """
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    items: List[TemplateLineItem] = Field(..., min_length=1)
    subtotal: Optional[Money] = Field(None, ge=0)
    tax_amount: Money = Field(Decimal("0"), ge=0)
    discount_amount: Money = Field(Decimal("0"), ge=0)
    total_amount: Optional[Money] = Field(None, ge=0)
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    notes: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("tax_amount", "discount_amount", mode="before")
    @classmethod
    def blank_amount_is_zero(cls, v: Any) -> Any:
        return Decimal("0") if v in (None, "") else v

    @model_validator(mode="after")
    def fill_totals(self) -> "InvoiceTemplate":
        if self.subtotal is None:
            self.subtotal = sum((item.total_price for item in self.items), Decimal("0"))
        if self.total_amount is None:
            self.total_amount = self.subtotal + self.tax_amount - self.discount_amount
            if self.total_amount < 0:
                raise ValueError("discount_amount exceeds subtotal plus tax")
        return self

    @classmethod
    def from_stored(cls, payload: Any) -> "InvoiceTemplate":
        """Load a template persisted as a JSON column or as a JSON string"""
        if isinstance(payload, (str, bytes)):
            payload = json.loads(payload)
        return cls.model_validate(payload)


class InvoiceCreate(InvoiceTemplate):
    """
    Invoice issued by hand rather than by a schedule.
    Items and totals follow the template rules; dates default to today and the payment terms.
    """
    customer_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    rental_id: Optional[str] = None
    service_id: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_terms: Optional[str] = None

    @model_validator(mode="after")
    def check_due_date(self) -> "InvoiceCreate":
        if self.invoice_date and self.due_date and self.due_date < self.invoice_date:
            raise ValueError("due_date must not be before invoice_date")
        return self


class PaymentCreate(BaseModel):
    """Schema for recording a payment against an invoice"""
    invoice_id: UUID
    amount: Money = Field(..., gt=0)
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.COMPLETED
    payment_date: Optional[date] = None
    transaction_id: Optional[str] = Field(None, max_length=128)
    reference_number: Optional[str] = Field(None, max_length=128)
    notes: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MarkPaidRequest(BaseModel):
    """Optional details for the payment that settles the remaining balance"""
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: Optional[date] = None
    reference_number: Optional[str] = Field(None, max_length=128)
    notes: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecurringScheduleCreate(BaseModel):
    """Schema for creating a recurring invoice schedule"""
    customer_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    rental_id: Optional[str] = None
    service_id: Optional[str] = None
    frequency: BillingFrequency
    interval: int = Field(1, ge=1)
    start_date: date
    end_date: Optional[date] = None
    next_invoice_date: Optional[date] = None
    payment_terms: str = Field(default_factory=lambda: settings.BILLING_DEFAULT_PAYMENT_TERMS)
    auto_generate: bool = True
    notification_days: int = Field(3, ge=0)
    template: InvoiceTemplate

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="after")
    def check_dates(self) -> "RecurringScheduleCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.next_invoice_date is None:
            self.next_invoice_date = self.start_date
        elif self.next_invoice_date < self.start_date:
            raise ValueError("next_invoice_date must not be before start_date")
        return self


class RecurringScheduleUpdate(BaseModel):
    """Schema for updating a schedule. next_invoice_date is owned by the billing job."""
    customer_name: Optional[str] = Field(None, min_length=1)
    frequency: Optional[BillingFrequency] = None
    interval: Optional[int] = Field(None, ge=1)
    end_date: Optional[date] = None
    payment_terms: Optional[str] = None
    is_active: Optional[bool] = None
    auto_generate: Optional[bool] = None
    notification_days: Optional[int] = Field(None, ge=0)
    template: Optional[InvoiceTemplate] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator(
        "customer_name",
        "frequency",
        "interval",
        "is_active",
        "auto_generate",
        "notification_days",
        "template",
    )
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        """Omit a field to keep it; only end_date and payment_terms can be cleared"""
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class RecurringScheduleResponse(BaseModel):
    id: UUID
    customer_id: str
    customer_name: str
    rental_id: Optional[str] = None
    service_id: Optional[str] = None
    frequency: str
    interval: int
    start_date: date
    end_date: Optional[date] = None
    next_invoice_date: date
    last_invoice_date: Optional[date] = None
    is_active: bool
    auto_generate: bool
    notification_days: int
    payment_terms: Optional[str] = None
    template_data: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceItemResponse(BaseModel):
    id: UUID
    item_id: Optional[str] = None
    item_name: str
    item_description: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    tax_rate: Decimal
    discount_rate: Decimal
    serial_numbers: Optional[List[str]] = None
    rental_period: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
    id: UUID
    invoice_number: str
    customer_id: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    rental_id: Optional[str] = None
    service_id: Optional[str] = None
    invoice_date: date
    due_date: date
    status: InvoiceStatus
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    notes: Optional[str] = None
    payment_terms: Optional[str] = None
    paid_at: Optional[datetime] = None
    is_recurring: bool
    recurring_schedule_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: UUID
    payment_number: str
    invoice_id: UUID
    customer_id: str
    customer_name: str
    payment_date: date
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceDetailResponse(InvoiceResponse):
    items: List[InvoiceItemResponse] = []
    payments: List[PaymentResponse] = []


class GenerationReportResponse(BaseModel):
    generated: int
    skipped: int
    failed: int
    deactivated: int
    repaired: int = 0
    invoice_numbers: List[str]


class BillingRunResponse(BaseModel):
    run_id: str
    generation: Optional[GenerationReportResponse] = None
    overdue_marked: Optional[int] = None
    errors: List[str] = []


class SchedulerStatus(BaseModel):
    running: bool
    run_count: int
    last_run_at: Optional[datetime] = None


class BillingStatsResponse(BaseModel):
    invoice_counts: Dict[str, int]
    outstanding_amount: Decimal
    overdue_amount: Decimal
    paid_amount: Decimal
    payments_received: Decimal
    payment_count: int
    active_schedules: int
    schedules_due_soon: int
    scheduler: Optional[SchedulerStatus] = None
