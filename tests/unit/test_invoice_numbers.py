"""Unit tests for invoice number generation."""

import random
import re
from datetime import date

from app.services.invoice_numbers import generate_invoice_number, generate_payment_number


class FixedRandom:
    def __init__(self, value: int):
        self.value = value

    def randint(self, low: int, high: int) -> int:
        assert (low, high) == (0, 999)
        return self.value


def test_format_uses_run_date_and_three_digit_suffix():
    number = generate_invoice_number(date(2025, 3, 7))
    assert re.fullmatch(r"INV-20250307-\d{3}", number)


def test_suffix_is_zero_padded():
    assert generate_invoice_number(date(2025, 3, 7), rng=FixedRandom(7)) == "INV-20250307-007"
    assert generate_invoice_number(date(2025, 3, 7), rng=FixedRandom(0)) == "INV-20250307-000"
    assert generate_invoice_number(date(2025, 3, 7), rng=FixedRandom(999)) == "INV-20250307-999"


def test_seeded_rng_is_reproducible():
    first = generate_invoice_number(date(2025, 1, 1), rng=random.Random(42))
    second = generate_invoice_number(date(2025, 1, 1), rng=random.Random(42))
    assert first == second


def test_payment_numbers_use_their_own_prefix():
    assert generate_payment_number(date(2025, 3, 7), rng=FixedRandom(42)) == "PAY-20250307-042"
