"""
Collections Module

Records repayment collections made in the field. A collection applies the
payment to the loan (or splits it across a group) and appends a collection
event, both inside one storage transaction.
"""

from decimal import Decimal
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from enum import Enum

from .errors import NotFoundError, ValidationError
from .loans import LoanManager
from .logging_config import get_logger, log_action
from .status import LoanStatus
from .storage import CollectionStore, StorageRecord, next_sequential_id, parse_date, parse_decimal


logger = get_logger("microfinance.collections")


class PaymentMethod(Enum):
    """How a collection was paid"""
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    UPI = "UPI"


def _parse_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(f"Unknown payment method: {value!r}")


# Loans that can still take repayments
COLLECTIBLE_STATUSES = {LoanStatus.ACTIVE, LoanStatus.OVERDUE, LoanStatus.MISSED}


@dataclass
class Collection(StorageRecord):
    """A repayment collected against a loan or a group"""
    loan_id: Optional[str] = None
    group_id: Optional[str] = None
    amount: Decimal = Decimal('0')
    date: Optional[datetime.date] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    collected_by: Optional[str] = None
    customer_name: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _parsers = {
        'amount': parse_decimal,
        'date': parse_date,
        'payment_method': _parse_method,
    }


class CollectionsManager:
    """
    Records field collections and answers collection history queries
    """

    def __init__(self, storage: CollectionStore, loan_manager: LoanManager):
        self.storage = storage
        self.loan_manager = loan_manager

        self.collections_table = "collections"

    def record_collection(
        self,
        amount: Union[Decimal, int, float, str],
        loan_id: Optional[str] = None,
        group_id: Optional[str] = None,
        payment_method: Union[PaymentMethod, str] = PaymentMethod.CASH,
        collection_date: Optional[datetime.date] = None,
        collected_by: Optional[str] = None,
    ) -> Collection:
        """
        Collect a repayment.

        Args:
            amount: Amount collected (positive)
            loan_id: Loan being repaid
            group_id: Group being repaid (split evenly across members)
            payment_method: Cash, Bank Transfer or UPI
            collection_date: Defaults to today
            collected_by: Username of the collecting agent

        Returns:
            The recorded collection event
        """
        if bool(loan_id) == bool(group_id):
            raise ValidationError("Specify exactly one of loanId or groupId")
        payment = parse_decimal(amount)
        if payment <= 0:
            raise ValidationError("Payment amount must be positive")
        method = payment_method if isinstance(payment_method, PaymentMethod) else _parse_method(payment_method)

        if loan_id:
            loan = self.loan_manager.get_loan(loan_id)
            if loan is None:
                raise NotFoundError("Loan not found")
            targets = [loan]
            customer_name = loan.customer_name
        else:
            targets = self.loan_manager.get_group_loans(group_id)
            if not targets:
                raise NotFoundError("Group not found")
            customer_name = targets[0].group_name

        closed = [loan.id for loan in targets if loan.status not in COLLECTIBLE_STATUSES]
        if closed:
            raise ValidationError(f"Loan {closed[0]} is not open for collection")

        with self.storage.atomic():
            self.loan_manager.record_payment(payment, loan_id=loan_id, group_id=group_id)
            documents = self._load_documents()
            collection = Collection(
                id=next_sequential_id("COLL", [doc.get('id') for doc in documents]),
                loan_id=loan_id,
                group_id=group_id,
                amount=payment,
                date=collection_date or datetime.date.today(),
                payment_method=method,
                collected_by=collected_by,
                customer_name=customer_name,
            )
            documents.append(collection.to_dict())
            self.storage.write(self.collections_table, documents)

        log_action(logger, "info", f"Collected {payment} against {loan_id or group_id}",
                   user_id=collected_by, action="collection_recorded", resource=collection.id,
                   extra={"method": method.value})
        return collection

    def list_collections(self, loan_id: Optional[str] = None,
                         group_id: Optional[str] = None) -> List[Collection]:
        """Collection events, newest first, optionally filtered by loan or group"""
        collections = [Collection.from_dict(doc) for doc in self._load_documents()]
        if loan_id:
            collections = [c for c in collections if c.loan_id == loan_id]
        if group_id:
            collections = [c for c in collections if c.group_id == group_id]
        return _newest_first(collections)

    def get_customer_collections(self, customer_id: str) -> List[Collection]:
        """Collections against any of the customer's loans or their groups"""
        loans = self.loan_manager.get_customer_loans(customer_id)
        loan_ids = {loan.id for loan in loans}
        group_ids = {loan.group_id for loan in loans if loan.group_id}
        return _newest_first([
            c for c in (Collection.from_dict(doc) for doc in self._load_documents())
            if c.loan_id in loan_ids or (c.group_id and c.group_id in group_ids)
        ])

    def total_collected(self) -> Decimal:
        return sum((c.amount for c in self.list_collections()), Decimal('0'))

    def _load_documents(self) -> List[Dict[str, Any]]:
        return [doc for doc in self.storage.read_list(self.collections_table) if isinstance(doc, dict)]


def _newest_first(collections: List[Collection]) -> List[Collection]:
    return sorted(collections, key=lambda c: (c.date or datetime.date.min, c.id), reverse=True)
