"""Unit tests for the recurring billing date rules."""

from datetime import date

import pytest

from app.core.exceptions import InvalidSchedule, UnsupportedFrequency
from app.models.enums import BillingFrequency
from app.services.billing_dates import add_months, due_date, next_invoice_date, payment_term_days


def test_monthly_keeps_day_of_month():
    assert next_invoice_date("monthly", 1, date(2025, 1, 15)) == date(2025, 2, 15)


def test_monthly_interval_multiplies_months():
    assert next_invoice_date("monthly", 2, date(2025, 11, 15)) == date(2026, 1, 15)


def test_quarterly_is_three_months_per_interval():
    assert next_invoice_date("quarterly", 1, date(2025, 1, 15)) == date(2025, 4, 15)
    assert next_invoice_date("quarterly", 2, date(2025, 1, 15)) == date(2025, 7, 15)


def test_yearly_adds_years():
    assert next_invoice_date(BillingFrequency.YEARLY, 1, date(2025, 3, 1)) == date(2026, 3, 1)
    assert next_invoice_date(BillingFrequency.YEARLY, 3, date(2025, 3, 1)) == date(2028, 3, 1)


def test_month_end_clamps_to_shorter_month():
    assert next_invoice_date("monthly", 1, date(2025, 1, 31)) == date(2025, 2, 28)


def test_month_end_clamps_to_leap_day():
    assert next_invoice_date("monthly", 1, date(2024, 1, 31)) == date(2024, 2, 29)


def test_quarterly_from_january_31_clamps_to_april_30():
    assert next_invoice_date("quarterly", 1, date(2025, 1, 31)) == date(2025, 4, 30)


def test_yearly_from_leap_day_clamps_to_february_28():
    assert next_invoice_date("yearly", 1, date(2024, 2, 29)) == date(2025, 2, 28)


def test_anchor_day_restores_clamped_day():
    # Started on the 31st, clamped to Feb 28 last cycle
    assert next_invoice_date("monthly", 1, date(2025, 2, 28), anchor_day=31) == date(2025, 3, 31)
    assert next_invoice_date("monthly", 1, date(2025, 3, 31), anchor_day=31) == date(2025, 4, 30)


def test_anchor_day_ignored_when_date_was_not_clamped():
    assert next_invoice_date("monthly", 1, date(2025, 1, 15), anchor_day=10) == date(2025, 2, 15)
    assert next_invoice_date("monthly", 1, date(2025, 4, 20), anchor_day=31) == date(2025, 5, 20)


def test_next_date_is_always_after_from_date():
    current = date(2025, 1, 31)
    for _ in range(24):
        following = next_invoice_date("monthly", 1, current, anchor_day=31)
        assert following > current
        current = following


def test_unsupported_frequency_raises():
    with pytest.raises(UnsupportedFrequency) as exc_info:
        next_invoice_date("weekly", 1, date(2025, 1, 15))
    assert exc_info.value.frequency == "weekly"


@pytest.mark.parametrize("interval", [0, -1, 1.5, None])
def test_non_positive_interval_raises(interval):
    with pytest.raises(InvalidSchedule):
        next_invoice_date("monthly", interval, date(2025, 1, 15))


def test_add_months_crosses_year_boundary():
    assert add_months(date(2025, 12, 10), 1) == date(2026, 1, 10)
    assert add_months(date(2025, 12, 31), 14) == date(2027, 2, 28)


def test_due_date_uses_net_days():
    assert due_date(date(2025, 3, 1), "Net 15") == date(2025, 3, 16)


def test_due_date_defaults_to_thirty_days_for_garbage():
    assert due_date(date(2025, 3, 1), "garbage") == date(2025, 3, 31)


@pytest.mark.parametrize(
    "terms, days",
    [
        ("Net 30", 30),
        ("net 45", 45),
        ("NET 7 days", 7),
        ("Payment due Net 60", 60),
        ("Net15", 15),
        ("Due on receipt", 30),
        ("", 30),
        (None, 30),
    ],
)
def test_payment_term_days(terms, days):
    assert payment_term_days(terms) == days


def test_due_date_crosses_month_end():
    assert due_date(date(2025, 1, 20), "Net 30") == date(2025, 2, 19)
