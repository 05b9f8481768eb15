"""
Reporting Engine Module

Dashboard projections over the ledger: the admin portfolio summary, the
monthly disbursal and collection trend, and an agent's worklist. All figures
are computed on read from loans whose status has been resolved for the day.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .collections import CollectionsManager
from .customers import CustomerManager
from .loans import Loan, LoanManager
from .status import LoanStatus
from .storage import to_json_value


@dataclass
class ReportResult:
    """Result of a report execution"""
    report_id: str
    generated_at: datetime
    data: List[Dict[str, Any]] = field(default_factory=list)
    totals: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'reportId': self.report_id,
            'generatedAt': self.generated_at.isoformat(),
            'data': to_json_value(self.data),
            'totals': to_json_value(self.totals),
        }


def _sum(values) -> Decimal:
    return sum(values, Decimal('0'))


class ReportingEngine:
    """
    Portfolio dashboards for admins and collection agents
    """

    def __init__(
        self,
        loan_manager: LoanManager,
        customer_manager: CustomerManager = None,
        collections_manager: CollectionsManager = None,
    ):
        self.loan_manager = loan_manager
        self.customer_manager = customer_manager
        self.collections_manager = collections_manager

    def portfolio_summary(self, today: Optional[date] = None, recent: int = 5) -> ReportResult:
        """
        Admin dashboard summary.

        Totals cover every loan in the ledger; ``data`` holds the most
        recently disbursed loans.
        """
        loans = self.loan_manager.list_loans(today)
        customers = self.customer_manager.list_customers() if self.customer_manager else []

        recent_loans = sorted(
            (loan for loan in loans if loan.disbursal_date),
            key=lambda loan: loan.disbursal_date,
            reverse=True,
        )[:recent]

        totals = {
            'totalCustomers': len(customers),
            'activeLoans': self._count(loans, LoanStatus.ACTIVE),
            'overdueLoans': self._count(loans, LoanStatus.OVERDUE),
            'closedLoans': self._count(loans, LoanStatus.CLOSED),
            'totalDisbursed': _sum(loan.amount for loan in loans),
            'totalOutstanding': _sum(loan.outstanding_amount for loan in loans),
            'totalCollected': _sum(loan.total_paid for loan in loans),
        }
        return ReportResult(
            report_id="portfolio_summary",
            generated_at=datetime.now(timezone.utc),
            data=[loan.to_view(today) for loan in recent_loans],
            totals=totals,
        )

    def monthly_trend(self) -> ReportResult:
        """
        Disbursed principal (non-Pending loans) and collected amounts per
        ``YYYY-MM``, oldest month first.
        """
        months: Dict[str, Dict[str, Any]] = {}

        def bucket(day: date) -> Dict[str, Any]:
            key = day.strftime("%Y-%m")
            if key not in months:
                months[key] = {
                    'month': key,
                    'label': day.strftime("%b %Y"),
                    'disbursed': Decimal('0'),
                    'collected': Decimal('0'),
                }
            return months[key]

        for loan in self.loan_manager.list_loans():
            if loan.status != LoanStatus.PENDING and loan.disbursal_date:
                bucket(loan.disbursal_date)['disbursed'] += loan.amount

        if self.collections_manager:
            for collection in self.collections_manager.list_collections():
                if collection.date:
                    bucket(collection.date)['collected'] += collection.amount

        data = [months[key] for key in sorted(months)]
        return ReportResult(
            report_id="monthly_trend",
            generated_at=datetime.now(timezone.utc),
            data=data,
            totals={
                'disbursed': _sum(row['disbursed'] for row in data),
                'collected': _sum(row['collected'] for row in data),
            },
        )

    def agent_summary(self, username: str, today: Optional[date] = None) -> ReportResult:
        """Loans assigned to a collection agent and the ones due today"""
        today = today or date.today()
        loans = [loan for loan in self.loan_manager.list_loans(today) if loan.assigned_to == username]
        due_today = [loan for loan in loans if loan.next_due_date() == today]

        return ReportResult(
            report_id="agent_summary",
            generated_at=datetime.now(timezone.utc),
            data=[loan.to_view(today) for loan in loans],
            totals={
                'username': username,
                'assignedLoans': len(loans),
                'activeLoans': self._count(loans, LoanStatus.ACTIVE),
                'overdueLoans': self._count(loans, LoanStatus.OVERDUE),
                'dueToday': [loan.to_view(today) for loan in due_today],
            },
        )

    @staticmethod
    def _count(loans: List[Loan], status: LoanStatus) -> int:
        return sum(1 for loan in loans if loan.status == status)
