from datetime import date
from decimal import Decimal

from app.services.recurring_billing import (
    exact_monthly_rate,
    occurrences_in_month,
    prorated_refund,
    standard_monthly_rate,
)

TUESDAY = 2
THURSDAY = 4


def test_occurrences_in_month():
    # October 2026 starts on a Thursday and has 31 days
    assert occurrences_in_month(TUESDAY, 2026, 10) == 4
    assert occurrences_in_month(THURSDAY, 2026, 10) == 5
    # February 2026 has exactly four of every weekday
    assert all(occurrences_in_month(day, 2026, 2) == 4 for day in range(7))


def test_standard_rate_is_flat_four_lessons():
    assert standard_monthly_rate(Decimal("50.00")) == Decimal("200.00")
    assert standard_monthly_rate(Decimal("33.33")) == Decimal("133.32")


def test_exact_rate_uses_true_occurrence_count():
    assert exact_monthly_rate(Decimal("50.00"), TUESDAY, 2026, 10) == Decimal("200.00")
    assert exact_monthly_rate(Decimal("50.00"), THURSDAY, 2026, 10) == Decimal("250.00")


def test_prorated_refund_counts_occurrences_after_cancellation_day():
    # Thursdays in October 2026: 1, 8, 15, 22, 29
    refund = prorated_refund(Decimal("250.00"), THURSDAY, date(2026, 10, 15))
    assert refund == Decimal("100.00")


def test_prorated_refund_on_last_occurrence_is_zero():
    assert prorated_refund(Decimal("200.00"), TUESDAY, date(2026, 10, 27)) == Decimal("0.00")
