"""
Customer portal view.

What a borrower sees after signing in with their name and id number: their
loans with the derived status and next due date, and their repayment history.
"""

from datetime import date
from typing import Any, Dict, Optional

from .collections import CollectionsManager
from .customers import CustomerManager
from .errors import NotFoundError
from .loans import LoanManager
from .status import OPEN_STATUSES


class CustomerPortal:
    """Read-only borrower view"""

    def __init__(self, customer_manager: CustomerManager, loan_manager: LoanManager,
                 collections_manager: CollectionsManager):
        self.customer_manager = customer_manager
        self.loan_manager = loan_manager
        self.collections_manager = collections_manager

    def loan_history(self, customer_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Loans and collections for one customer.

        Due dates are only reported for open (Active or Overdue) loans.
        """
        customer = self.customer_manager.get_customer(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        loans = []
        for loan in self.loan_manager.get_customer_loans(customer_id, today):
            view = loan.to_view(today)
            if loan.status not in OPEN_STATUSES:
                view['nextDueDate'] = None
                view['currentDueDate'] = None
            loans.append(view)

        collections = self.collections_manager.get_customer_collections(customer_id)
        return {
            'customer': customer.to_dict(),
            'loans': loans,
            'collections': [collection.to_dict() for collection in collections],
        }
