"""
Date rules for recurring billing.

Month arithmetic clamps to the end of the target month: adding one month to
Jan 31 gives Feb 28 (Feb 29 in leap years). An optional anchor day brings a
clamped schedule back to its original day once the target month is long
enough, so a schedule started on the 31st does not drift to the 28th.
"""

import calendar
import re
from datetime import date, timedelta
from typing import Optional, Union

from app.core.exceptions import InvalidSchedule, UnsupportedFrequency
from app.models.enums import BillingFrequency

DEFAULT_NET_DAYS = 30

_NET_TERMS = re.compile(r"net\s*(\d+)", re.IGNORECASE)

_MONTHS_PER_STEP = {
    BillingFrequency.MONTHLY: 1,
    BillingFrequency.QUARTERLY: 3,
    BillingFrequency.YEARLY: 12,
}


def add_months(start: date, months: int, anchor_day: Optional[int] = None) -> date:
    """Add calendar months, clamping the day to the length of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = anchor_day if anchor_day is not None else start.day
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def _was_clamped(from_date: date, anchor_day: int) -> bool:
    """True when from_date is anchor_day pulled back to a short month's last day."""
    if not 1 <= anchor_day <= 31 or anchor_day <= from_date.day:
        return False
    return from_date.day == calendar.monthrange(from_date.year, from_date.month)[1]


def next_invoice_date(
    frequency: Union[str, BillingFrequency],
    interval: int,
    from_date: date,
    anchor_day: Optional[int] = None,
) -> date:
    """
    Next invoice date for a schedule.

    Args:
        frequency: monthly, quarterly or yearly
        interval: positive multiplier of the frequency
        from_date: invoice date the schedule is advancing from
        anchor_day: preferred day of month, usually the schedule's start day

    Raises:
        UnsupportedFrequency: frequency is not one of the three known values
        InvalidSchedule: interval is not a positive integer
    """
    try:
        step = _MONTHS_PER_STEP[BillingFrequency(frequency)]
    except ValueError:
        raise UnsupportedFrequency(str(frequency))

    if not isinstance(interval, int) or isinstance(interval, bool) or interval < 1:
        raise InvalidSchedule(f"Interval must be a positive integer, got {interval!r}")

    if anchor_day is not None and not _was_clamped(from_date, anchor_day):
        anchor_day = None

    return add_months(from_date, step * interval, anchor_day)


def payment_term_days(payment_terms: Optional[str]) -> int:
    """Day count from "Net N" terms; anything unparseable means 30 days."""
    if not payment_terms:
        return DEFAULT_NET_DAYS
    match = _NET_TERMS.search(payment_terms)
    if not match:
        return DEFAULT_NET_DAYS
    return int(match.group(1))


def due_date(invoice_date: date, payment_terms: Optional[str]) -> date:
    """Invoice due date: invoice_date plus the "Net N" days of the payment terms."""
    return invoice_date + timedelta(days=payment_term_days(payment_terms))
