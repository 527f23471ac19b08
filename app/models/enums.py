"""Centralized Enum Definitions"""

import enum


class BillingFrequency(str, enum.Enum):
    """Recurring schedule frequencies"""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class InvoiceStatus(str, enum.Enum):
    """Invoice payment status"""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    """How a payment was received"""
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CHEQUE = "cheque"


class PaymentStatus(str, enum.Enum):
    """Only completed payments count toward settling an invoice"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
