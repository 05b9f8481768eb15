"""
Loan Status Module

Loan lifecycle states and the read-time resolver that moves Active and
Overdue loans between each other by comparing the next due date with today.
Nothing here is persisted: the status is re-derived every time loans are read.
"""

from datetime import date
from enum import Enum
from typing import Optional


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "Pending"          # Application awaiting approval
    ACTIVE = "Active"            # Approved and disbursed, repayments current
    OVERDUE = "Overdue"          # Next installment is past due
    CLOSED = "Closed"            # Fully settled (manual)
    MISSED = "Missed"            # Flagged by staff for a missed collection
    PRE_CLOSED = "Pre-closed"    # Settled early (manual)


# Statuses the resolver is allowed to change
RESOLVABLE_STATUSES = {LoanStatus.ACTIVE, LoanStatus.OVERDUE}

# Statuses that count as an open obligation for the borrower
OPEN_STATUSES = {LoanStatus.ACTIVE, LoanStatus.OVERDUE}


def parse_status(value) -> LoanStatus:
    """Parse a status label"""
    if isinstance(value, LoanStatus):
        return value
    try:
        return LoanStatus(value)
    except ValueError:
        raise ValueError(f"Unknown loan status: {value!r}")


def resolve_status(status: LoanStatus, due_date: Optional[date], today: date) -> LoanStatus:
    """
    Derive the current status of a loan.

    An Active or Overdue loan whose next due date is strictly before today is
    Overdue; an Overdue loan whose due date is today or later reverts to
    Active. Without a due date the status is kept. Every other status is
    returned unchanged.
    """
    if status not in RESOLVABLE_STATUSES:
        return status
    if due_date is not None and due_date < today:
        return LoanStatus.OVERDUE
    if status == LoanStatus.OVERDUE and due_date is not None:
        return LoanStatus.ACTIVE
    return status
