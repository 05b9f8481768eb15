"""
Repayment Schedule Module

Derives installment sizes and due dates from loan terms and payments to date.
A loan is repaid in flat installments of ``weeklyRepayment`` (whatever the
collection frequency), and payments are counted in whole installments.
"""

from decimal import Decimal, ROUND_FLOOR
from datetime import date, timedelta
from enum import Enum
from typing import Optional
import calendar


class CollectionFrequency(Enum):
    """How often an installment falls due"""
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


# Interest rate (percent) and term (periods) used when an application omits them
DEFAULT_TERMS = {
    CollectionFrequency.DAILY: (Decimal('20'), 70),
    CollectionFrequency.WEEKLY: (Decimal('12'), 10),
    CollectionFrequency.MONTHLY: (Decimal('20'), 1),
}

# Statuses for which no installment is expected
NO_SCHEDULE_STATUSES = {"Closed", "Pre-closed", "Pending"}


def parse_frequency(value) -> Optional[CollectionFrequency]:
    """Parse a frequency label, returning None for missing or unknown labels"""
    if value is None:
        return None
    if isinstance(value, CollectionFrequency):
        return value
    for frequency in CollectionFrequency:
        if str(value).strip().lower() == frequency.value.lower():
            return frequency
    return None


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last day of the target month"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_periods(start_date: date, frequency: CollectionFrequency, periods: int) -> date:
    """Advance a date by a number of collection periods"""
    if frequency == CollectionFrequency.DAILY:
        return start_date + timedelta(days=periods)
    elif frequency == CollectionFrequency.WEEKLY:
        return start_date + timedelta(weeks=periods)
    elif frequency == CollectionFrequency.MONTHLY:
        return add_months(start_date, periods)
    else:
        raise ValueError(f"Unsupported collection frequency: {frequency}")


def installment_amount(principal: Decimal, interest_rate: Decimal, term: int) -> Decimal:
    """
    Flat per-period installment: (principal + principal * rate / 100) / term.

    Args:
        principal: Loan principal
        interest_rate: Flat interest in percent of principal
        term: Number of installments

    Returns:
        Installment amount (unrounded)
    """
    if term <= 0:
        raise ValueError("Term must be a positive number of periods")
    total_obligation = principal + principal * interest_rate / Decimal('100')
    return total_obligation / Decimal(term)


def installments_paid(total_paid: Decimal, installment: Decimal) -> int:
    """Whole installments covered by the amount paid so far"""
    if total_paid > 0 and installment > 0:
        return int((total_paid / installment).to_integral_value(rounding=ROUND_FLOOR))
    return 0


def _due_date(disbursal_date: Optional[date], frequency, total_paid: Decimal,
              installment: Decimal, status: str, offset: int) -> Optional[date]:
    frequency = parse_frequency(frequency)
    if status in NO_SCHEDULE_STATUSES or disbursal_date is None or frequency is None:
        return None
    paid = installments_paid(total_paid, installment)
    return add_periods(disbursal_date, frequency, paid + offset)


def next_due_date(disbursal_date: Optional[date], frequency, total_paid: Decimal,
                  installment: Decimal, status: str) -> Optional[date]:
    """
    Due date of the next unpaid installment.

    Returns None for Closed, Pre-closed and Pending loans, and when the
    disbursal date or collection frequency is missing.
    """
    return _due_date(disbursal_date, frequency, total_paid, installment, status, 1)


def current_due_date(disbursal_date: Optional[date], frequency, total_paid: Decimal,
                     installment: Decimal, status: str) -> Optional[date]:
    """Due date of the installment most recently covered (disbursal date when none)"""
    return _due_date(disbursal_date, frequency, total_paid, installment, status, 0)
