"""
Group aggregation view.

Read-only partition of the ledger into group loans (member records sharing a
groupId) and standalone personal loans, with an aggregate status per group.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .loans import Loan
from .status import LoanStatus


def aggregate_status(statuses: Iterable[LoanStatus]) -> LoanStatus:
    """
    Collapse member statuses into one group status.

    Overdue wins over Active; a group is Closed or Pre-closed only when every
    member is; anything else is Pending.
    """
    statuses = list(statuses)
    if LoanStatus.OVERDUE in statuses:
        return LoanStatus.OVERDUE
    if LoanStatus.ACTIVE in statuses:
        return LoanStatus.ACTIVE
    if statuses and all(status == LoanStatus.CLOSED for status in statuses):
        return LoanStatus.CLOSED
    if statuses and all(status == LoanStatus.PRE_CLOSED for status in statuses):
        return LoanStatus.PRE_CLOSED
    return LoanStatus.PENDING


@dataclass
class LoanGroup:
    """Members of one group loan"""
    group_id: str
    group_name: Optional[str] = None
    group_leader_name: Optional[str] = None
    members: List[Loan] = field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((loan.amount for loan in self.members), Decimal('0'))

    @property
    def total_outstanding(self) -> Decimal:
        return sum((loan.outstanding_amount for loan in self.members), Decimal('0'))

    @property
    def total_paid(self) -> Decimal:
        return sum((loan.total_paid for loan in self.members), Decimal('0'))

    @property
    def status(self) -> LoanStatus:
        return aggregate_status(loan.status for loan in self.members)

    def to_dict(self, today=None) -> Dict[str, Any]:
        return {
            'groupId': self.group_id,
            'groupName': self.group_name,
            'groupLeaderName': self.group_leader_name,
            'status': self.status.value,
            'totalAmount': float(self.total_amount),
            'totalOutstanding': float(self.total_outstanding),
            'totalPaid': float(self.total_paid),
            'memberCount': len(self.members),
            'members': [loan.to_view(today) for loan in self.members],
        }


@dataclass
class LoanPortfolio:
    """Loans split into groups and personal loans"""
    groups: List[LoanGroup] = field(default_factory=list)
    personal_loans: List[Loan] = field(default_factory=list)

    def get_group(self, group_id: str) -> Optional[LoanGroup]:
        return next((group for group in self.groups if group.group_id == group_id), None)

    def to_dict(self, today=None) -> Dict[str, Any]:
        return {
            'groups': [group.to_dict(today) for group in self.groups],
            'personalLoans': [loan.to_view(today) for loan in self.personal_loans],
        }


def aggregate_loans(loans: Iterable[Loan]) -> LoanPortfolio:
    """
    Partition loans by groupId, keeping first-seen order of groups and
    members. Statuses are aggregated as given, so pass loans that have
    already been resolved for the day.
    """
    portfolio = LoanPortfolio()
    by_id: Dict[str, LoanGroup] = {}
    for loan in loans:
        if not loan.group_id:
            portfolio.personal_loans.append(loan)
            continue
        group = by_id.get(loan.group_id)
        if group is None:
            group = LoanGroup(
                group_id=loan.group_id,
                group_name=loan.group_name,
                group_leader_name=loan.group_leader_name,
            )
            by_id[loan.group_id] = group
            portfolio.groups.append(group)
        group.members.append(loan)
    return portfolio
