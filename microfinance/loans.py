"""
Loan Ledger Module

Handles loan applications (personal and group), approval into the permanent
ledger, repayment recording, generic updates and deletion. Loans live in a
single ``loans`` collection document that every operation reads and rewrites
whole; multi-record mutations compute the complete new document first and
write it once.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union
from enum import Enum
import re
import time
import uuid

from .errors import ConflictError, NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .schedule import (
    CollectionFrequency, DEFAULT_TERMS, current_due_date, installment_amount,
    next_due_date, parse_frequency,
)
from .status import LoanStatus, parse_status, resolve_status
from .storage import CollectionStore, StorageRecord, parse_date, parse_decimal


logger = get_logger("microfinance.loans")

# View keys derived on read, never stored
DERIVED_KEYS = {'nextDueDate', 'currentDueDate'}


class LoanType(Enum):
    """Kinds of loan"""
    PERSONAL = "Personal"
    GROUP = "Group"


def _parse_status(value) -> LoanStatus:
    try:
        return parse_status(value)
    except ValueError as e:
        raise ValidationError(str(e))


def _parse_loan_type(value) -> LoanType:
    try:
        return LoanType(value)
    except ValueError:
        raise ValidationError(f"Unknown loan type: {value!r}")


def _parse_term(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid term: {value!r}")


def _compact_group_name(group_name: Optional[str]) -> str:
    """Group name with whitespace removed, as used in member ledger ids"""
    compact = re.sub(r"\s+", "", group_name or "")
    return compact or "GROUP"


@dataclass
class Loan(StorageRecord):
    """A personal loan, or one member's share of a group loan"""
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    loan_type: LoanType = LoanType.PERSONAL
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    group_leader_name: Optional[str] = None
    assigned_to: Optional[str] = None

    # Terms
    amount: Decimal = Decimal('0')
    interest_rate: Decimal = Decimal('0')       # Flat percent of principal
    term: int = 0                               # Number of installments
    collection_frequency: Optional[CollectionFrequency] = None
    weekly_repayment: Decimal = Decimal('0')    # Installment size for any frequency

    # Lifecycle
    status: LoanStatus = LoanStatus.PENDING
    disbursal_date: Optional[date] = None

    # Money
    total_paid: Decimal = Decimal('0')
    outstanding_amount: Decimal = Decimal('0')

    extra: Dict[str, Any] = field(default_factory=dict)

    _parsers = {
        'loan_type': _parse_loan_type,
        'amount': parse_decimal,
        'interest_rate': parse_decimal,
        'term': _parse_term,
        'collection_frequency': parse_frequency,
        'weekly_repayment': parse_decimal,
        'status': _parse_status,
        'disbursal_date': parse_date,
        'total_paid': parse_decimal,
        'outstanding_amount': parse_decimal,
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        if isinstance(data, dict) and DERIVED_KEYS & data.keys():
            data = {k: v for k, v in data.items() if k not in DERIVED_KEYS}
        return super().from_dict(data)

    @property
    def is_group(self) -> bool:
        return bool(self.group_id)

    @property
    def total_obligation(self) -> Decimal:
        """Principal plus flat interest"""
        return self.amount + self.amount * self.interest_rate / Decimal('100')

    def next_due_date(self) -> Optional[date]:
        return next_due_date(self.disbursal_date, self.collection_frequency,
                             self.total_paid, self.weekly_repayment, self.status.value)

    def current_due_date(self) -> Optional[date]:
        return current_due_date(self.disbursal_date, self.collection_frequency,
                                self.total_paid, self.weekly_repayment, self.status.value)

    def resolved(self, today: Optional[date] = None) -> 'Loan':
        """Copy of the loan with its status derived for the given day"""
        today = today or date.today()
        status = resolve_status(self.status, self.next_due_date(), today)
        if status == self.status:
            return self
        return replace(self, status=status)

    def to_view(self, today: Optional[date] = None) -> Dict[str, Any]:
        """JSON view with the derived status, next due date and current due date"""
        loan = self.resolved(today)
        view = loan.to_dict()
        due = loan.next_due_date()
        view['nextDueDate'] = due.isoformat() if due else None
        # Last installment covered, as shown when entering a collection
        current = loan.current_due_date()
        view['currentDueDate'] = current.isoformat() if current else None
        return view


@dataclass
class DisbursalQuote:
    """Deductions and net cash for a proposed disbursal"""
    principal_per_member: Decimal
    interest_deduction: Decimal
    doc_charges: Decimal
    insurance_charges: Decimal
    net_disbursal: Decimal
    group_size: int = 1

    @property
    def total_deductions(self) -> Decimal:
        return self.interest_deduction + self.doc_charges + self.insurance_charges

    @property
    def total_net_disbursal(self) -> Decimal:
        return self.net_disbursal * self.group_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            'principalPerMember': float(self.principal_per_member),
            'interestDeduction': float(self.interest_deduction),
            'docCharges': float(self.doc_charges),
            'insuranceCharges': float(self.insurance_charges),
            'totalDeductions': float(self.total_deductions),
            'netDisbursal': float(self.net_disbursal),
            'groupSize': self.group_size,
            'totalNetDisbursal': float(self.total_net_disbursal),
        }


class LoanManager:
    """
    Manages the loan ledger from application through approval, repayment
    and closure
    """

    def __init__(self, storage: CollectionStore, customer_manager=None,
                 provisional_prefix: str = "TEMP_"):
        self.storage = storage
        self.customer_manager = customer_manager
        self.provisional_prefix = provisional_prefix

        self.loans_table = "loans"

    # Reads

    def list_loans(self, today: Optional[date] = None,
                   include_deleted: bool = False) -> List[Loan]:
        """
        All loans with their status derived for ``today``.

        Loans soft-deleted through an update carrying ``deleted: true`` are
        skipped unless ``include_deleted`` is set.
        """
        loans = [loan.resolved(today) for loan in self._load_loans()]
        if not include_deleted:
            loans = [loan for loan in loans if not loan.extra.get('deleted')]
        return loans

    def get_loan(self, loan_id: str, today: Optional[date] = None) -> Optional[Loan]:
        for loan in self._load_loans():
            if loan.id == loan_id:
                return loan.resolved(today)
        return None

    def get_customer_loans(self, customer_id: str, today: Optional[date] = None) -> List[Loan]:
        return [loan for loan in self.list_loans(today) if loan.customer_id == customer_id]

    def get_group_loans(self, group_id: str, today: Optional[date] = None) -> List[Loan]:
        return [loan for loan in self.list_loans(today) if loan.group_id == group_id]

    # Creation

    def add_loans(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Loan]:
        """
        Append raw loan documents (one object or a list) to the ledger.

        Documents without an id receive a provisional one. An id that is
        already taken raises ConflictError and nothing is written.
        """
        documents = payload if isinstance(payload, list) else [payload]
        if not documents:
            raise ValidationError("Invalid payload")

        existing = self._load_documents()
        taken = {doc.get('id') for doc in existing}
        new_loans = []
        for document in documents:
            if not isinstance(document, dict):
                raise ValidationError("Invalid payload")
            document = dict(document)
            document.setdefault('id', self._provisional_id())
            loan = Loan.from_dict(document)
            if loan.id in taken:
                raise ConflictError(f"Loan {loan.id} already exists")
            taken.add(loan.id)
            new_loans.append(loan)

        self._save_documents(existing + [loan.to_dict() for loan in new_loans])
        log_action(logger, "info", f"Added {len(new_loans)} loan record(s)",
                   action="loans_added", resource="loans",
                   extra={"loan_ids": [loan.id for loan in new_loans]})
        return new_loans

    def apply_personal_loan(
        self,
        customer_id: str,
        amount: Union[Decimal, int, float, str],
        collection_frequency: Union[CollectionFrequency, str] = CollectionFrequency.WEEKLY,
        interest_rate: Optional[Union[Decimal, int, float, str]] = None,
        term: Optional[int] = None,
        assigned_to: Optional[str] = None,
        doc_charges: Optional[Union[Decimal, int, float, str]] = None,
        insurance_charges: Optional[Union[Decimal, int, float, str]] = None,
    ) -> Loan:
        """
        Create a Pending personal loan application.

        Args:
            customer_id: Borrower
            amount: Principal
            collection_frequency: Daily, Weekly or Monthly
            interest_rate: Flat percent (frequency default when omitted)
            term: Number of installments (frequency default when omitted)
            assigned_to: Collection agent username
            doc_charges: Documentation charges deducted at disbursal
            insurance_charges: Insurance charges deducted at disbursal

        Returns:
            The Pending loan
        """
        customer = self._require_customer(customer_id)
        frequency, rate, term = self._resolve_terms(collection_frequency, interest_rate, term)
        principal = self._positive_amount(amount)

        loans = self._load_loans()
        self._check_no_open_loan([customer.id], loans)

        loan = Loan(
            id=self._provisional_id(),
            customer_id=customer.id,
            customer_name=customer.name,
            loan_type=LoanType.PERSONAL,
            assigned_to=assigned_to,
            amount=principal,
            interest_rate=rate,
            term=term,
            collection_frequency=frequency,
            weekly_repayment=installment_amount(principal, rate, term),
            status=LoanStatus.PENDING,
            total_paid=Decimal('0'),
            outstanding_amount=principal,
        )
        self._set_charges(loan, doc_charges, insurance_charges)

        self._save_loans(loans + [loan])
        log_action(logger, "info", f"Personal loan application {loan.id} created",
                   action="loan_applied", resource=loan.id,
                   extra={"customer_id": customer.id, "amount": str(principal)})
        return loan

    def apply_group_loan(
        self,
        group_name: str,
        leader_id: str,
        member_ids: List[str],
        total_amount: Union[Decimal, int, float, str],
        interest_rate: Optional[Union[Decimal, int, float, str]] = None,
        term: Optional[int] = None,
        assigned_to: Optional[str] = None,
        doc_charges: Optional[Union[Decimal, int, float, str]] = None,
        insurance_charges: Optional[Union[Decimal, int, float, str]] = None,
    ) -> List[Loan]:
        """
        Create Pending member loans for a group application.

        The leader and members each get one loan for an even share of the
        total principal. All of them share a provisional group token until
        the group is approved.
        """
        if not group_name or not str(group_name).strip():
            raise ValidationError("Missing fields")
        if not leader_id:
            raise ValidationError("Missing fields")

        all_ids = [leader_id] + list(member_ids or [])
        if len(set(all_ids)) != len(all_ids):
            raise ValidationError("Each member may appear only once in a group")
        if len(all_ids) < 2:
            raise ValidationError("A group needs a leader and at least one member")

        customers = [self._require_customer(customer_id) for customer_id in all_ids]
        frequency, rate, term = self._resolve_terms(CollectionFrequency.WEEKLY, interest_rate, term)
        total = self._positive_amount(total_amount)
        per_member = total / Decimal(len(customers))

        loans = self._load_loans()
        self._check_no_open_loan(all_ids, loans)

        group_token = f"GRP_{_compact_group_name(group_name)}_{int(time.time() * 1000)}"
        leader = customers[0]
        new_loans = []
        for customer in customers:
            loan = Loan(
                id=self._provisional_id(),
                customer_id=customer.id,
                customer_name=customer.name,
                loan_type=LoanType.GROUP,
                group_id=group_token,
                group_name=group_name,
                group_leader_name=leader.name,
                assigned_to=assigned_to,
                amount=per_member,
                interest_rate=rate,
                term=term,
                collection_frequency=frequency,
                weekly_repayment=installment_amount(per_member, rate, term),
                status=LoanStatus.PENDING,
                total_paid=Decimal('0'),
                outstanding_amount=per_member,
            )
            self._set_charges(loan, doc_charges, insurance_charges, len(customers))
            new_loans.append(loan)

        self._save_loans(loans + new_loans)
        log_action(logger, "info", f"Group loan application {group_token} created",
                   action="group_loan_applied", resource=group_token,
                   extra={"members": all_ids, "total_amount": str(total)})
        return new_loans

    def quote_disbursal(
        self,
        amount: Union[Decimal, int, float, str],
        interest_rate: Union[Decimal, int, float, str],
        doc_charges: Union[Decimal, int, float, str] = 0,
        insurance_charges: Union[Decimal, int, float, str] = 0,
        group_size: int = 1,
    ) -> DisbursalQuote:
        """
        Net cash handed over at disbursal.

        Interest is deducted up front on the per-member principal. For groups
        ``amount`` is the group total and the charges are split per member.
        """
        group_size = int(group_size or 1)
        if group_size < 1:
            raise ValidationError("Group size must be at least 1")
        total = self._positive_amount(amount)
        rate = parse_decimal(interest_rate)
        per_member = total / Decimal(group_size)
        interest = per_member * rate / Decimal('100')
        docs = parse_decimal(doc_charges) / Decimal(group_size)
        insurance = parse_decimal(insurance_charges) / Decimal(group_size)
        return DisbursalQuote(
            principal_per_member=per_member,
            interest_deduction=interest,
            doc_charges=docs,
            insurance_charges=insurance,
            net_disbursal=per_member - interest - docs - insurance,
            group_size=group_size,
        )

    # Lifecycle

    def approve_loan(self, temp_id: str, ledger_id: str,
                     approval_date: Optional[date] = None) -> List[Loan]:
        """
        Approve a Pending loan (or every member of a Pending group) into the
        permanent ledger.

        A personal loan takes ``ledger_id`` as its id. Group members take
        ``{ledger_id}-{groupName}-{n}`` ids and share ``ledger_id`` as their
        group id. Any id collision aborts the approval before anything is
        written.

        Args:
            temp_id: Provisional loan id, or the provisional group token
            ledger_id: Permanent ledger id
            approval_date: Disbursal date (defaults to today)

        Returns:
            The approved loan records
        """
        if not temp_id or not ledger_id:
            raise ValidationError("Missing fields")
        ledger_id = str(ledger_id).strip()
        if not ledger_id:
            raise ValidationError("Missing fields")
        approval_date = approval_date or date.today()

        loans = self._load_loans()
        target = next((loan for loan in loans if loan.id == temp_id), None)
        group_id = target.group_id if target is not None else temp_id

        if target is not None and not target.is_group:
            if target.status != LoanStatus.PENDING:
                raise ValidationError(f"Loan {temp_id} is not pending approval")
            if any(loan.id == ledger_id for loan in loans if loan is not target):
                raise ConflictError(f"Loan ID {ledger_id} already exists")
            approved = [replace(target, id=ledger_id, status=LoanStatus.ACTIVE,
                                disbursal_date=approval_date)]
            members = [target]
        else:
            members = [loan for loan in loans if group_id and loan.group_id == group_id]
            if not members:
                raise NotFoundError("Loan not found")
            if any(loan.status != LoanStatus.PENDING for loan in members):
                raise ValidationError(f"Group {group_id} is not pending approval")

            group_name = _compact_group_name(members[0].group_name)
            approved = [
                replace(loan, id=f"{ledger_id}-{group_name}-{index + 1}", group_id=ledger_id,
                        status=LoanStatus.ACTIVE, disbursal_date=approval_date)
                for index, loan in enumerate(members)
            ]
            others = [loan for loan in loans if loan.group_id != group_id]
            other_ids = {loan.id for loan in others}
            for loan in approved:
                if loan.id in other_ids:
                    raise ConflictError(f"Loan ID {loan.id} already exists")
            if any(loan.group_id == ledger_id for loan in others):
                raise ConflictError(f"Group ID {ledger_id} already exists")

        replacements = {id(old): new for old, new in zip(members, approved)}
        self._save_loans([replacements.get(id(loan), loan) for loan in loans])

        log_action(logger, "info", f"Approved {temp_id} as {ledger_id}",
                   action="loan_approved", resource=ledger_id,
                   extra={"temp_id": temp_id, "loan_ids": [loan.id for loan in approved]})
        return approved

    def record_payment(self, amount: Union[Decimal, int, float, str],
                       loan_id: Optional[str] = None,
                       group_id: Optional[str] = None) -> List[Loan]:
        """
        Apply a repayment to one loan, or split it evenly across a group.

        Overpayment is accepted and may leave ``outstandingAmount`` negative.

        Returns:
            The updated loan records
        """
        if amount is None or amount == "":
            raise ValidationError("Missing amount")
        payment = parse_decimal(amount)
        if payment <= 0:
            raise ValidationError("Payment amount must be positive")
        if not loan_id and not group_id:
            raise ValidationError("Missing fields")

        loans = self._load_loans()
        if group_id:
            targets = [loan for loan in loans if loan.group_id == group_id]
            if not targets:
                raise NotFoundError("Group not found")
        else:
            targets = [loan for loan in loans if loan.id == loan_id]
            if not targets:
                raise NotFoundError("Loan not found")

        share = payment / Decimal(len(targets))
        updated = {
            id(loan): replace(loan, total_paid=loan.total_paid + share,
                              outstanding_amount=loan.outstanding_amount - share)
            for loan in targets
        }
        self._save_loans([updated.get(id(loan), loan) for loan in loans])

        log_action(logger, "info", f"Recorded payment of {payment} against {group_id or loan_id}",
                   action="payment_recorded", resource=group_id or loan_id,
                   extra={"amount": str(payment), "members": len(targets)})
        return list(updated.values())

    def update_loan(self, loan_id: str, changes: Dict[str, Any]) -> Loan:
        """Merge a partial change object into a loan"""
        if not loan_id or not isinstance(changes, dict):
            raise ValidationError("Missing fields")

        documents = self._load_documents()
        index = next((i for i, doc in enumerate(documents) if doc.get('id') == loan_id), None)
        if index is None:
            raise NotFoundError("Loan not found")

        new_id = changes.get('id', loan_id)
        if new_id != loan_id and any(doc.get('id') == new_id for doc in documents):
            raise ConflictError(f"Loan ID {new_id} already exists")

        merged = dict(documents[index])
        merged.update(changes)
        loan = Loan.from_dict(merged)
        documents[index] = loan.to_dict()
        self._save_documents(documents)

        log_action(logger, "info", f"Updated loan {loan_id}",
                   action="loan_updated", resource=loan_id,
                   extra={"fields": sorted(changes)})
        return loan

    def close_loan(self, loan_id: str) -> Loan:
        return self.update_loan(loan_id, {'status': LoanStatus.CLOSED.value})

    def pre_close_loan(self, loan_id: str) -> Loan:
        return self.update_loan(loan_id, {'status': LoanStatus.PRE_CLOSED.value})

    def delete_loan(self, loan_id: str) -> Loan:
        """Remove a loan from the ledger regardless of its status"""
        loans = self._load_loans()
        removed = next((loan for loan in loans if loan.id == loan_id), None)
        if removed is None:
            raise NotFoundError("Loan not found")

        self._save_loans([loan for loan in loans if loan is not removed])
        log_action(logger, "info", f"Deleted loan {loan_id}",
                   action="loan_deleted", resource=loan_id)
        return removed

    # Helpers

    def _provisional_id(self) -> str:
        return f"{self.provisional_prefix}{uuid.uuid4().hex[:8].upper()}"

    def _require_customer(self, customer_id: str):
        if not customer_id:
            raise ValidationError("Missing fields")
        if self.customer_manager is None:
            raise ValidationError("Customer directory is not available")
        customer = self.customer_manager.get_customer(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return customer

    def _check_no_open_loan(self, customer_ids: List[str], loans: List[Loan]) -> None:
        for customer_id in customer_ids:
            for loan in loans:
                if loan.customer_id == customer_id and loan.status != LoanStatus.CLOSED:
                    raise ConflictError(
                        f"Customer {customer_id} already has an open loan ({loan.id})"
                    )

    def _resolve_terms(self, frequency, interest_rate, term):
        parsed = parse_frequency(frequency)
        if parsed is None:
            raise ValidationError(f"Unknown collection frequency: {frequency!r}")
        default_rate, default_term = DEFAULT_TERMS[parsed]
        rate = default_rate if interest_rate is None else parse_decimal(interest_rate)
        term = default_term if term is None else _parse_term(term)
        if rate < 0:
            raise ValidationError("Interest rate cannot be negative")
        if term <= 0:
            raise ValidationError("Term must be a positive number of periods")
        return parsed, rate, term

    def _positive_amount(self, value) -> Decimal:
        amount = parse_decimal(value)
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        return amount

    def _set_charges(self, loan: Loan, doc_charges, insurance_charges, group_size: int = 1) -> None:
        if doc_charges is not None:
            loan.extra['docCharges'] = float(parse_decimal(doc_charges) / Decimal(group_size))
        if insurance_charges is not None:
            loan.extra['insuranceCharges'] = float(parse_decimal(insurance_charges) / Decimal(group_size))

    def _load_documents(self) -> List[Dict[str, Any]]:
        return [doc for doc in self.storage.read_list(self.loans_table) if isinstance(doc, dict)]

    def _save_documents(self, documents: List[Dict[str, Any]]) -> None:
        self.storage.write(self.loans_table, documents)

    def _load_loans(self) -> List[Loan]:
        return [Loan.from_dict(doc) for doc in self._load_documents()]

    def _save_loans(self, loans: List[Loan]) -> None:
        self._save_documents([loan.to_dict() for loan in loans])
