"""
Test suite for the loan ledger

Tests applications, approval into the ledger (personal and group), payment
recording and distribution, generic updates and deletion. Money must stay exact.
"""

import pytest
from decimal import Decimal
from datetime import date

from microfinance.customers import CustomerManager
from microfinance.errors import ConflictError, NotFoundError, ValidationError
from microfinance.loans import Loan, LoanManager, LoanType
from microfinance.schedule import CollectionFrequency
from microfinance.status import LoanStatus
from microfinance.storage import InMemoryStore


APPROVAL_DATE = date(2024, 1, 1)


def pending_loan(loan_id, **overrides):
    loan = {
        "id": loan_id,
        "customerId": "CUST001",
        "customerName": "Ravi Kumar",
        "loanType": "Personal",
        "amount": 10000,
        "interestRate": 12,
        "term": 10,
        "status": "Pending",
        "weeklyRepayment": 1120,
        "totalPaid": 0,
        "outstandingAmount": 10000,
        "collectionFrequency": "Weekly",
    }
    loan.update(overrides)
    return loan


def group_member(loan_id, customer_id, group_id="GRP_SaharaGroup_1", **overrides):
    return pending_loan(
        loan_id, customerId=customer_id, customerName=customer_id, loanType="Group",
        groupId=group_id, groupName="Sahara Group", groupLeaderName="Suresh Patel",
        amount=1000, outstandingAmount=1000, **overrides
    )


@pytest.fixture
def storage():
    return InMemoryStore()


@pytest.fixture
def customer_manager(storage):
    manager = CustomerManager(storage)
    for customer_id, name in [("CUST001", "Ravi Kumar"), ("CUST002", "Priya Sharma"),
                              ("CUST003", "Amit Singh"), ("CUST004", "Sunita Devi")]:
        manager.create_customer({"id": customer_id, "name": name, "idNumber": customer_id})
    return manager


@pytest.fixture
def loan_manager(storage, customer_manager):
    return LoanManager(storage, customer_manager)


class TestLoanRecord:
    """Test the stored loan representation"""

    def test_camel_case_round_trip_keeps_unknown_keys(self):
        loan = Loan.from_dict(pending_loan("TEMP_1", branch="North", members=["a", "b"]))
        assert loan.customer_id == "CUST001"
        assert loan.amount == Decimal('10000')
        assert loan.collection_frequency == CollectionFrequency.WEEKLY
        assert loan.extra == {"branch": "North", "members": ["a", "b"]}

        data = loan.to_dict()
        assert data["branch"] == "North"
        assert data["weeklyRepayment"] == 1120
        assert data["status"] == "Pending"

    def test_due_dates_never_stored(self):
        loan = Loan.from_dict(pending_loan(
            "TEMP_1", nextDueDate="2024-01-08", currentDueDate="2024-01-01"
        ))
        assert "nextDueDate" not in loan.extra
        assert "currentDueDate" not in loan.extra
        assert "nextDueDate" not in loan.to_dict()
        assert "currentDueDate" not in loan.to_dict()

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "sNaN"])
    def test_non_finite_amount_rejected(self, amount):
        with pytest.raises(ValidationError):
            Loan.from_dict(pending_loan("TEMP_1", amount=amount))

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            Loan.from_dict(pending_loan("TEMP_1", status="Defaulted"))

    def test_view_derives_status_and_due_date(self):
        loan = Loan.from_dict(pending_loan(
            "L1", status="Active", disbursalDate="2024-01-01", totalPaid=1120
        ))
        assert loan.current_due_date() == date(2024, 1, 8)

        view = loan.to_view(date(2024, 1, 20))
        assert view["nextDueDate"] == "2024-01-15"
        assert view["currentDueDate"] == "2024-01-08"
        assert view["status"] == "Overdue"

        view = loan.to_view(date(2024, 1, 15))
        assert view["status"] == "Active"


class TestPersonalApproval:
    """Test approving a personal loan"""

    def test_approve_assigns_ledger_id(self, loan_manager):
        loan_manager.add_loans(pending_loan("TEMP_1"))

        approved = loan_manager.approve_loan("TEMP_1", "L100", approval_date=APPROVAL_DATE)

        assert len(approved) == 1
        loan = loan_manager.get_loan("L100", today=APPROVAL_DATE)
        assert loan.status == LoanStatus.ACTIVE
        assert loan.disbursal_date == APPROVAL_DATE
        assert loan.next_due_date() == date(2024, 1, 8)
        assert loan_manager.get_loan("TEMP_1") is None

    def test_duplicate_ledger_id_conflicts(self, loan_manager, storage):
        loan_manager.add_loans([
            pending_loan("L100", status="Active", disbursalDate="2023-12-01"),
            pending_loan("TEMP_1", customerId="CUST002"),
        ])
        before = storage.read("loans")

        with pytest.raises(ConflictError):
            loan_manager.approve_loan("TEMP_1", "L100")

        assert storage.read("loans") == before

    def test_unknown_loan_not_found(self, loan_manager):
        with pytest.raises(NotFoundError):
            loan_manager.approve_loan("TEMP_404", "L100")

    def test_missing_fields(self, loan_manager):
        with pytest.raises(ValidationError, match="Missing fields"):
            loan_manager.approve_loan("", "L100")
        with pytest.raises(ValidationError, match="Missing fields"):
            loan_manager.approve_loan("TEMP_1", "  ")

    def test_only_pending_loans_can_be_approved(self, loan_manager):
        loan_manager.add_loans(pending_loan("L100", status="Active", disbursalDate="2024-01-01"))
        with pytest.raises(ValidationError):
            loan_manager.approve_loan("L100", "L101")

    def test_order_of_other_loans_preserved(self, loan_manager):
        loan_manager.add_loans([
            pending_loan("A", customerId="CUST002"),
            pending_loan("TEMP_1"),
            pending_loan("B", customerId="CUST003"),
        ])
        loan_manager.approve_loan("TEMP_1", "L100", approval_date=APPROVAL_DATE)
        assert [loan.id for loan in loan_manager.list_loans()] == ["A", "L100", "B"]


class TestGroupApproval:
    """Test approving every member of a group"""

    @pytest.fixture
    def group(self, loan_manager):
        return loan_manager.add_loans([
            group_member("TEMP_A", "CUST001"),
            group_member("TEMP_B", "CUST002"),
            group_member("TEMP_C", "CUST003"),
            pending_loan("TEMP_X", customerId="CUST004"),
        ])

    def test_members_get_indexed_ledger_ids(self, loan_manager, group):
        approved = loan_manager.approve_loan("TEMP_A", "L200", approval_date=APPROVAL_DATE)

        assert [loan.id for loan in approved] == [
            "L200-SaharaGroup-1", "L200-SaharaGroup-2", "L200-SaharaGroup-3"
        ]
        for loan in approved:
            assert loan.group_id == "L200"
            assert loan.status == LoanStatus.ACTIVE
            assert loan.disbursal_date == APPROVAL_DATE

        untouched = loan_manager.get_loan("TEMP_X")
        assert untouched.status == LoanStatus.PENDING

    def test_approve_by_group_token(self, loan_manager, group):
        approved = loan_manager.approve_loan("GRP_SaharaGroup_1", "L200", approval_date=APPROVAL_DATE)
        assert len(approved) == 3
        assert len(loan_manager.get_group_loans("L200")) == 3

    def test_duplicate_member_id_aborts_everything(self, loan_manager, storage, group):
        loan_manager.add_loans(pending_loan(
            "L200-SaharaGroup-2", customerId="CUST004", status="Closed"
        ))
        before = storage.read("loans")

        with pytest.raises(ConflictError):
            loan_manager.approve_loan("TEMP_A", "L200")

        assert storage.read("loans") == before
        assert all(loan.status == LoanStatus.PENDING
                   for loan in loan_manager.get_group_loans("GRP_SaharaGroup_1"))

    def test_ledger_id_used_by_another_group_conflicts(self, loan_manager, group):
        loan_manager.add_loans(group_member(
            "OLD-1", "CUST004", group_id="L200", status="Closed"
        ))
        with pytest.raises(ConflictError):
            loan_manager.approve_loan("TEMP_A", "L200")

    def test_missing_group_name_uses_placeholder(self, loan_manager):
        loan_manager.add_loans([
            pending_loan("TEMP_A", groupId="GRP_X_1"),
            pending_loan("TEMP_B", customerId="CUST002", groupId="GRP_X_1"),
        ])
        approved = loan_manager.approve_loan("TEMP_B", "L300", approval_date=APPROVAL_DATE)
        assert [loan.id for loan in approved] == ["L300-GROUP-1", "L300-GROUP-2"]


class TestPayments:
    """Test repayment recording"""

    def test_group_payment_split_evenly(self, loan_manager):
        loan_manager.add_loans([
            group_member("M1", "CUST001", group_id="L200", status="Active"),
            group_member("M2", "CUST002", group_id="L200", status="Active"),
            group_member("M3", "CUST003", group_id="L200", status="Active"),
        ])

        updated = loan_manager.record_payment(900, group_id="L200")

        assert len(updated) == 3
        for loan in loan_manager.get_group_loans("L200"):
            assert loan.total_paid == Decimal('300')
            assert loan.outstanding_amount == Decimal('700')

    def test_single_loan_payment(self, loan_manager):
        loan_manager.add_loans(pending_loan("L100", status="Active", totalPaid=1120))

        loan_manager.record_payment("1120", loan_id="L100")

        loan = loan_manager.get_loan("L100")
        assert loan.total_paid == Decimal('2240')
        assert loan.outstanding_amount == Decimal('8880')

    def test_overpayment_allowed(self, loan_manager):
        loan_manager.add_loans(pending_loan("L100", status="Active", outstandingAmount=100))
        loan_manager.record_payment(250, loan_id="L100")
        assert loan_manager.get_loan("L100").outstanding_amount == Decimal('-150')

    def test_payment_moves_next_due_date(self, loan_manager):
        loan_manager.add_loans(pending_loan(
            "L100", status="Active", disbursalDate="2024-01-01", weeklyRepayment=1000
        ))
        loan_manager.record_payment(2500, loan_id="L100")
        assert loan_manager.get_loan("L100").next_due_date() == date(2024, 1, 22)

    def test_unknown_targets(self, loan_manager):
        with pytest.raises(NotFoundError, match="Loan not found"):
            loan_manager.record_payment(100, loan_id="L404")
        with pytest.raises(NotFoundError, match="Group not found"):
            loan_manager.record_payment(100, group_id="G404")

    def test_amount_must_be_positive(self, loan_manager):
        loan_manager.add_loans(pending_loan("L100", status="Active"))
        with pytest.raises(ValidationError, match="Missing amount"):
            loan_manager.record_payment(None, loan_id="L100")
        with pytest.raises(ValidationError):
            loan_manager.record_payment(0, loan_id="L100")
        with pytest.raises(ValidationError):
            loan_manager.record_payment(-5, loan_id="L100")


class TestUpdateAndDelete:
    """Test generic updates, closure and deletion"""

    def test_update_merges_changes(self, loan_manager):
        loan_manager.add_loans(pending_loan("L100", status="Active"))

        loan = loan_manager.update_loan("L100", {"assignedTo": "agent1", "note": "moved"})

        assert loan.assigned_to == "agent1"
        assert loan.extra["note"] == "moved"
        assert loan_manager.get_loan("L100").amount == Decimal('10000')

    def test_update_rejects_unknown_status(self, loan_manager):
        loan_manager.add_loans(pending_loan("L100"))
        with pytest.raises(ValidationError):
            loan_manager.update_loan("L100", {"status": "Defaulted"})

    def test_update_missing_loan(self, loan_manager):
        with pytest.raises(NotFoundError):
            loan_manager.update_loan("L404", {"status": "Closed"})

    def test_close_and_pre_close(self, loan_manager):
        loan_manager.add_loans([pending_loan("L1", status="Active"),
                                pending_loan("L2", customerId="CUST002", status="Active")])
        assert loan_manager.close_loan("L1").status == LoanStatus.CLOSED
        assert loan_manager.pre_close_loan("L2").status == LoanStatus.PRE_CLOSED

    def test_closed_loans_have_no_due_date(self, loan_manager):
        loan_manager.add_loans(pending_loan("L1", status="Active", disbursalDate="2024-01-01"))
        loan = loan_manager.close_loan("L1")
        assert loan.to_view()["nextDueDate"] is None
        assert loan.to_view()["currentDueDate"] is None

    def test_update_rejects_non_finite_amounts(self, loan_manager):
        loan_manager.add_loans(pending_loan("L100", status="Active"))
        with pytest.raises(ValidationError):
            loan_manager.update_loan("L100", {"outstandingAmount": "NaN"})
        assert loan_manager.get_loan("L100").outstanding_amount == Decimal('10000')

    def test_add_rejects_non_finite_amounts(self, loan_manager):
        with pytest.raises(ValidationError):
            loan_manager.add_loans([pending_loan("L1"), pending_loan("L2", amount="Infinity")])
        assert loan_manager.list_loans() == []

    def test_delete_removes_loan(self, loan_manager):
        loan_manager.add_loans([pending_loan("L1"), pending_loan("L2", customerId="CUST002")])
        removed = loan_manager.delete_loan("L1")
        assert removed.id == "L1"
        assert [loan.id for loan in loan_manager.list_loans()] == ["L2"]

    def test_delete_missing_loan(self, loan_manager):
        with pytest.raises(NotFoundError):
            loan_manager.delete_loan("L404")

    def test_soft_deleted_loans_hidden_from_listing(self, loan_manager):
        loan_manager.add_loans([pending_loan("L1"), pending_loan("L2", customerId="CUST002")])
        loan_manager.update_loan("L1", {"deleted": True})
        assert [loan.id for loan in loan_manager.list_loans()] == ["L2"]
        assert len(loan_manager.list_loans(include_deleted=True)) == 2


class TestListing:
    """Test derived status on read"""

    def test_status_derived_but_not_stored(self, loan_manager, storage):
        loan_manager.add_loans(pending_loan(
            "L1", status="Active", disbursalDate="2024-01-01", weeklyRepayment=1000
        ))
        loans = loan_manager.list_loans(today=date(2024, 2, 1))
        assert loans[0].status == LoanStatus.OVERDUE
        assert storage.read("loans")[0]["status"] == "Active"

    def test_add_loans_rejects_duplicate_ids(self, loan_manager):
        loan_manager.add_loans(pending_loan("L1"))
        with pytest.raises(ConflictError):
            loan_manager.add_loans(pending_loan("L1"))

    def test_add_loans_assigns_provisional_id(self, loan_manager):
        document = pending_loan("x")
        del document["id"]
        loan = loan_manager.add_loans(document)[0]
        assert loan.id.startswith("TEMP_")


class TestApplications:
    """Test personal and group loan applications"""

    def test_personal_application_defaults(self, loan_manager):
        loan = loan_manager.apply_personal_loan("CUST001", 10000)

        assert loan.status == LoanStatus.PENDING
        assert loan.id.startswith("TEMP_")
        assert loan.loan_type == LoanType.PERSONAL
        assert loan.collection_frequency == CollectionFrequency.WEEKLY
        assert loan.interest_rate == Decimal('12')
        assert loan.term == 10
        assert loan.weekly_repayment == Decimal('1120')
        assert loan.outstanding_amount == Decimal('10000')
        assert loan.total_paid == Decimal('0')
        assert loan.customer_name == "Ravi Kumar"

    def test_daily_defaults(self, loan_manager):
        loan = loan_manager.apply_personal_loan("CUST001", 7000, collection_frequency="Daily")
        assert loan.interest_rate == Decimal('20')
        assert loan.term == 70
        assert loan.weekly_repayment == Decimal('120')

    def test_open_loan_blocks_new_application(self, loan_manager):
        loan_manager.apply_personal_loan("CUST001", 10000)
        with pytest.raises(ConflictError):
            loan_manager.apply_personal_loan("CUST001", 5000)

    def test_closed_loan_does_not_block(self, loan_manager):
        loan_manager.add_loans(pending_loan("L1", status="Closed"))
        loan = loan_manager.apply_personal_loan("CUST001", 5000)
        assert loan.status == LoanStatus.PENDING

    def test_unknown_customer(self, loan_manager):
        with pytest.raises(NotFoundError):
            loan_manager.apply_personal_loan("CUST404", 5000)

    def test_unknown_frequency(self, loan_manager):
        with pytest.raises(ValidationError):
            loan_manager.apply_personal_loan("CUST001", 5000, collection_frequency="Fortnightly")

    def test_charges_kept_on_loan(self, loan_manager):
        loan = loan_manager.apply_personal_loan("CUST001", 5000, doc_charges=100, insurance_charges=50)
        assert loan.to_dict()["docCharges"] == 100
        assert loan.to_dict()["insuranceCharges"] == 50

    def test_group_application_splits_principal(self, loan_manager):
        loans = loan_manager.apply_group_loan(
            "Sahara Group", "CUST001", ["CUST002", "CUST003"], 30000
        )

        assert len(loans) == 3
        token = loans[0].group_id
        assert token.startswith("GRP_SaharaGroup_")
        for loan in loans:
            assert loan.group_id == token
            assert loan.loan_type == LoanType.GROUP
            assert loan.amount == Decimal('10000')
            assert loan.collection_frequency == CollectionFrequency.WEEKLY
            assert loan.group_leader_name == "Ravi Kumar"
            assert loan.status == LoanStatus.PENDING

        approved = loan_manager.approve_loan(token, "L500", approval_date=APPROVAL_DATE)
        assert approved[0].id == "L500-SaharaGroup-1"

    def test_group_rejects_duplicate_members(self, loan_manager):
        with pytest.raises(ValidationError):
            loan_manager.apply_group_loan("G", "CUST001", ["CUST002", "CUST001"], 3000)

    def test_group_rejects_member_with_open_loan(self, loan_manager):
        loan_manager.add_loans(pending_loan("L1", customerId="CUST002", status="Active"))
        with pytest.raises(ConflictError):
            loan_manager.apply_group_loan("G", "CUST001", ["CUST002"], 3000)
        assert len(loan_manager.list_loans()) == 1


class TestDisbursalQuote:
    """Test net disbursal computation"""

    def test_personal_quote(self, loan_manager):
        quote = loan_manager.quote_disbursal(10000, 10, doc_charges=500, insurance_charges=200)
        assert quote.interest_deduction == Decimal('1000')
        assert quote.net_disbursal == Decimal('8300')
        assert quote.total_net_disbursal == Decimal('8300')

    def test_group_quote_splits_charges(self, loan_manager):
        quote = loan_manager.quote_disbursal(50000, 10, doc_charges=500, insurance_charges=200,
                                             group_size=5)
        assert quote.principal_per_member == Decimal('10000')
        assert quote.doc_charges == Decimal('100')
        assert quote.insurance_charges == Decimal('40')
        assert quote.net_disbursal == Decimal('8860')
        assert quote.total_net_disbursal == Decimal('44300')
        assert quote.to_dict()["totalDeductions"] == 1140.0

    def test_quote_requires_positive_amount(self, loan_manager):
        with pytest.raises(ValidationError):
            loan_manager.quote_disbursal(0, 10)
