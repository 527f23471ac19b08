"""Models Package - Export all models for easy imports"""

from app.models.base import BaseModel, StatusMixin
from app.models.enums import BillingFrequency, InvoiceStatus, PaymentMethod, PaymentStatus
from app.models.billing import RecurringInvoiceSchedule, Invoice, InvoiceItem, Payment


__all__ = [
    # Base classes
    "BaseModel",
    "StatusMixin",

    # Enums
    "BillingFrequency",
    "InvoiceStatus",
    "PaymentMethod",
    "PaymentStatus",

    # Billing
    "RecurringInvoiceSchedule",
    "Invoice",
    "InvoiceItem",
    "Payment",
]
