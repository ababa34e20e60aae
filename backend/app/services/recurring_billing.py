# backend/app/services/recurring_billing.py
"""
Billing arithmetic for indefinite weekly subscriptions.

Subscriptions are billed at a flat ``per_lesson_price * 4`` per month even
though a weekday occurs four or five times in a calendar month. The exact
figures are computed alongside so the difference stays visible.
"""

import calendar
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from ..core.constants import STANDARD_OCCURRENCES_PER_MONTH

CENTS = Decimal("0.01")


def occurrences_in_month(day_of_week: int, year: int, month: int) -> int:
    """How many times a Sunday-first weekday falls in the given month."""
    days_in_month = calendar.monthrange(year, month)[1]
    first_dow = (date(year, month, 1).weekday() + 1) % 7
    offset = (day_of_week - first_dow) % 7
    if offset >= days_in_month:
        return 0
    return (days_in_month - 1 - offset) // 7 + 1


def standard_monthly_rate(per_lesson_price: Decimal) -> Decimal:
    return (Decimal(per_lesson_price) * STANDARD_OCCURRENCES_PER_MONTH).quantize(
        CENTS, rounding=ROUND_HALF_UP
    )


def exact_monthly_rate(per_lesson_price: Decimal, day_of_week: int, year: int, month: int) -> Decimal:
    """Per-lesson price times the true number of occurrences in the month."""
    count = occurrences_in_month(day_of_week, year, month)
    return (Decimal(per_lesson_price) * count).quantize(CENTS, rounding=ROUND_HALF_UP)


def prorated_refund(
    monthly_rate: Decimal, day_of_week: int, cancelled_on: date
) -> Decimal:
    """
    Refund for occurrences after ``cancelled_on`` in its month.

    Each occurrence is worth ``monthly_rate`` divided by the month's
    occurrence count; the cancellation day itself is not refunded.
    """
    total = occurrences_in_month(day_of_week, cancelled_on.year, cancelled_on.month)
    if total == 0:
        return Decimal("0.00")
    days_in_month = calendar.monthrange(cancelled_on.year, cancelled_on.month)[1]
    remaining = sum(
        1
        for day in range(cancelled_on.day + 1, days_in_month + 1)
        if (date(cancelled_on.year, cancelled_on.month, day).weekday() + 1) % 7 == day_of_week
    )
    return (Decimal(monthly_rate) * remaining / total).quantize(CENTS, rounding=ROUND_HALF_UP)
