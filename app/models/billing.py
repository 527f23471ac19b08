"""Billing Models: recurring schedules, invoices, invoice lines and payments"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.models.base import BaseModel, StatusMixin
from app.models.enums import InvoiceStatus, PaymentMethod, PaymentStatus


class RecurringInvoiceSchedule(BaseModel, StatusMixin):
    """
    Drives periodic invoice generation for one customer.
    Only the billing job advances next_invoice_date; schedules are never deleted.
    """
    __tablename__ = "recurring_invoice_schedules"

    customer_id = Column(String(64), nullable=False, index=True)
    customer_name = Column(String(255), nullable=False)
    rental_id = Column(String(64), nullable=True)
    service_id = Column(String(64), nullable=True)

    # Kept as free text so a bad value surfaces as UnsupportedFrequency at run time
    frequency = Column(String(20), nullable=False)
    interval = Column(Integer, default=1, nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    next_invoice_date = Column(Date, nullable=False, index=True)
    last_invoice_date = Column(Date, nullable=True)

    auto_generate = Column(Boolean, default=True, nullable=False)
    notification_days = Column(Integer, default=3, nullable=False)
    template_data = Column(JSON, nullable=False)
    payment_terms = Column(String(100), default="Net 30", nullable=True)

    # Relationships
    invoices = relationship("Invoice", back_populates="recurring_schedule")

    def __repr__(self) -> str:
        return f"<RecurringInvoiceSchedule {self.customer_name} {self.frequency}x{self.interval}>"


class Invoice(BaseModel):
    """
    Generated invoice with a snapshot of the customer at generation time.
    (recurring_schedule_id, invoice_date) is the dedup key for generated invoices.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint(
            "recurring_schedule_id", "invoice_date", name="uq_invoices_schedule_invoice_date"
        ),
    )

    invoice_number = Column(String(32), nullable=False, unique=True, index=True)

    customer_id = Column(String(64), nullable=False, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    customer_address = Column(Text, nullable=True)
    rental_id = Column(String(64), nullable=True)
    service_id = Column(String(64), nullable=True)

    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    status = Column(
        Enum(
            InvoiceStatus,
            name="invoice_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=InvoiceStatus.PENDING,
        nullable=False,
        index=True,
    )

    subtotal = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), default=0, nullable=False)
    discount_amount = Column(Numeric(10, 2), default=0, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    notes = Column(Text, nullable=True)
    payment_terms = Column(String(100), nullable=True)
    paid_at = Column(DateTime, nullable=True)

    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_schedule_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("recurring_invoice_schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    recurring_schedule = relationship("RecurringInvoiceSchedule", back_populates="invoices")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.created_at",
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.created_at",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} - {self.status}>"


class InvoiceItem(BaseModel):
    """Invoice line copied from the schedule template (snapshot semantics)."""
    __tablename__ = "invoice_items"

    invoice_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = Column(String(64), nullable=True)
    item_name = Column(String(255), nullable=False)
    item_description = Column(Text, nullable=True)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), default=0, nullable=False)
    discount_rate = Column(Numeric(5, 2), default=0, nullable=False)
    serial_numbers = Column(JSON, nullable=True)
    rental_period = Column(String(100), nullable=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="items")

    def __repr__(self) -> str:
        return f"<InvoiceItem {self.item_name} x{self.quantity}>"


class Payment(BaseModel):
    """
    Money received against one invoice.
    The invoice becomes paid once its completed payments cover total_amount.
    """
    __tablename__ = "payments"

    payment_number = Column(String(32), nullable=False, unique=True, index=True)
    invoice_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = Column(String(64), nullable=False, index=True)
    customer_name = Column(String(255), nullable=False)

    payment_date = Column(Date, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="INR", nullable=False)
    payment_method = Column(
        Enum(
            PaymentMethod,
            name="payment_method",
            values_callable=lambda methods: [m.value for m in methods],
        ),
        nullable=False,
    )
    payment_status = Column(
        Enum(
            PaymentStatus,
            name="payment_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=PaymentStatus.COMPLETED,
        nullable=False,
    )
    # Gateway transaction id, or the cheque / UPI reference
    transaction_id = Column(String(128), nullable=True)
    reference_number = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number} {self.amount} {self.payment_status}>"
