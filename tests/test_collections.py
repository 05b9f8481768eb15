"""
Test suite for field collections
"""

import pytest
from decimal import Decimal
from datetime import date

from microfinance.collections import CollectionsManager, PaymentMethod
from microfinance.errors import NotFoundError, ValidationError
from microfinance.loans import LoanManager
from microfinance.seed import seed_demo_data
from microfinance.storage import InMemoryStore


@pytest.fixture
def storage():
    store = InMemoryStore()
    seed_demo_data(store)
    return store


@pytest.fixture
def loan_manager(storage):
    return LoanManager(storage)


@pytest.fixture
def collections_manager(storage, loan_manager):
    return CollectionsManager(storage, loan_manager)


class TestRecordCollection:
    """Test recording repayments"""

    def test_personal_collection(self, collections_manager, loan_manager):
        collection = collections_manager.record_collection(
            "5000", loan_id="LOAN001", payment_method="UPI",
            collection_date=date(2024, 1, 10), collected_by="agent1",
        )

        assert collection.id == "COLL001"
        assert collection.amount == Decimal('5000')
        assert collection.payment_method == PaymentMethod.UPI
        assert collection.customer_name == "Ravi Kumar"

        loan = loan_manager.get_loan("LOAN001")
        assert loan.total_paid == Decimal('30000')
        assert loan.outstanding_amount == Decimal('20000')

    def test_group_collection_split_evenly(self, collections_manager, loan_manager):
        collection = collections_manager.record_collection(5000, group_id="GRP001")

        assert collection.group_id == "GRP001"
        assert collection.customer_name == "Sahara Group"
        for loan in loan_manager.get_group_loans("GRP001"):
            assert loan.total_paid == Decimal('13000')
            assert loan.outstanding_amount == Decimal('27000')

    def test_sequential_ids(self, collections_manager):
        first = collections_manager.record_collection(100, loan_id="LOAN001")
        second = collections_manager.record_collection(100, loan_id="LOAN002")
        assert (first.id, second.id) == ("COLL001", "COLL002")

    def test_exactly_one_target(self, collections_manager):
        with pytest.raises(ValidationError):
            collections_manager.record_collection(100)
        with pytest.raises(ValidationError):
            collections_manager.record_collection(100, loan_id="LOAN001", group_id="GRP001")

    @pytest.mark.parametrize("amount", [0, -50, "abc"])
    def test_amount_must_be_positive_number(self, collections_manager, amount):
        with pytest.raises(ValidationError):
            collections_manager.record_collection(amount, loan_id="LOAN001")

    def test_unknown_payment_method(self, collections_manager):
        with pytest.raises(ValidationError):
            collections_manager.record_collection(100, loan_id="LOAN001", payment_method="Cheque")

    def test_closed_loan_rejected(self, collections_manager, loan_manager):
        with pytest.raises(ValidationError):
            collections_manager.record_collection(100, loan_id="LOAN003")
        assert collections_manager.list_collections() == []
        assert loan_manager.get_loan("LOAN003").total_paid == Decimal('100000')

    def test_unknown_targets(self, collections_manager):
        with pytest.raises(NotFoundError):
            collections_manager.record_collection(100, loan_id="LOAN404")
        with pytest.raises(NotFoundError):
            collections_manager.record_collection(100, group_id="GRP404")

    def test_failed_write_rolls_back_payment(self, collections_manager, loan_manager, monkeypatch):
        def broken():
            raise RuntimeError("disk full")

        monkeypatch.setattr(collections_manager, "_load_documents", broken)
        with pytest.raises(RuntimeError):
            collections_manager.record_collection(5000, loan_id="LOAN001")

        loan = loan_manager.get_loan("LOAN001")
        assert loan.total_paid == Decimal('25000')
        assert loan.outstanding_amount == Decimal('25000')


class TestCollectionQueries:
    """Test collection history lookups"""

    @pytest.fixture
    def recorded(self, collections_manager):
        collections_manager.record_collection(1000, loan_id="LOAN001", collection_date=date(2024, 1, 1))
        collections_manager.record_collection(2000, group_id="GRP001", collection_date=date(2024, 2, 1))
        collections_manager.record_collection(500, loan_id="LOAN002", collection_date=date(2024, 3, 1))
        return collections_manager

    def test_newest_first(self, recorded):
        assert [c.id for c in recorded.list_collections()] == ["COLL003", "COLL002", "COLL001"]

    def test_filters(self, recorded):
        assert [c.id for c in recorded.list_collections(loan_id="LOAN001")] == ["COLL001"]
        assert [c.id for c in recorded.list_collections(group_id="GRP001")] == ["COLL002"]

    def test_customer_collections_include_group_payments(self, recorded):
        assert [c.id for c in recorded.get_customer_collections("CUST004")] == ["COLL002"]
        assert [c.id for c in recorded.get_customer_collections("CUST001")] == ["COLL001"]
        assert recorded.get_customer_collections("CUST404") == []

    def test_total_collected(self, recorded):
        assert recorded.total_collected() == Decimal('3500')
