"""Billing exception hierarchy"""

from datetime import date
from typing import Optional


class BillingError(Exception):
    """Base exception for the billing service."""


class UnsupportedFrequency(BillingError):
    """Raised when a schedule frequency is not monthly, quarterly or yearly."""

    def __init__(self, frequency: str):
        self.frequency = frequency
        super().__init__(f"Unsupported frequency: {frequency}")


class InvalidSchedule(BillingError):
    """Raised when a schedule or its template cannot produce an invoice."""


class StorageFailure(BillingError):
    """Raised when a read or write against the invoice store fails."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage operation '{operation}' failed{detail}")


class DuplicateInvoice(BillingError):
    """An invoice already exists for this (recurring_schedule_id, invoice_date)."""

    def __init__(self, schedule_id, invoice_date: date):
        self.schedule_id = schedule_id
        self.invoice_date = invoice_date
        super().__init__(
            f"Invoice for schedule {schedule_id} on {invoice_date} already exists"
        )


class DuplicateInvoiceNumber(BillingError):
    """The invoice number is already taken."""

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f"Invoice number {invoice_number} already exists")


class DuplicatePaymentNumber(BillingError):
    """The payment number is already taken."""

    def __init__(self, payment_number: str):
        self.payment_number = payment_number
        super().__init__(f"Payment number {payment_number} already exists")


class PaymentRejected(BillingError):
    """Raised when a payment cannot be applied to its invoice."""
