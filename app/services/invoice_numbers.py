"""Human-readable document numbers: INV-YYYYMMDD-NNN for invoices, PAY-YYYYMMDD-NNN for payments"""

import random
from datetime import date
from typing import Optional

INVOICE_NUMBER_PREFIX = "INV"
PAYMENT_NUMBER_PREFIX = "PAY"

_system_random = random.SystemRandom()


def _dated_number(prefix: str, run_date: date, rng: Optional[random.Random]) -> str:
    suffix = (rng or _system_random).randint(0, 999)
    return f"{prefix}-{run_date:%Y%m%d}-{suffix:03d}"


def generate_invoice_number(run_date: date, rng: Optional[random.Random] = None) -> str:
    """
    Build an invoice number from the generation run's date and a random suffix.

    The 3-digit suffix can collide; the invoices table keeps invoice_number
    unique and callers retry with a fresh suffix.
    """
    return _dated_number(INVOICE_NUMBER_PREFIX, run_date, rng)


def generate_payment_number(run_date: date, rng: Optional[random.Random] = None) -> str:
    return _dated_number(PAYMENT_NUMBER_PREFIX, run_date, rng)
