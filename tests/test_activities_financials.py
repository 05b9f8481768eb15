"""
Tests for the staff activity log and the financials document
"""

import pytest
from decimal import Decimal

from microfinance.activities import ActivityLog
from microfinance.errors import ValidationError
from microfinance.financials import FinancialsManager
from microfinance.storage import InMemoryStore


@pytest.fixture
def storage():
    return InMemoryStore()


class TestActivityLog:
    """Newest-first staff activity feed"""

    def test_prepends_entries(self, storage):
        log = ActivityLog(storage)
        log.add_activities({"id": "A1", "username": "admin", "action": "Login"})
        log.add_activities([
            {"id": "A3", "username": "agent1", "action": "Collection"},
            {"id": "A2", "username": "admin", "action": "Approve"},
        ])
        assert [a["id"] for a in log.list_activities()] == ["A3", "A2", "A1"]

    def test_filters_and_limit(self, storage):
        log = ActivityLog(storage)
        log.add_activities([{"id": f"A{i}", "username": "admin"} for i in range(5)])
        log.add_activities({"id": "B1", "username": "agent1"})

        assert [a["id"] for a in log.list_activities(username="agent1")] == ["B1"]
        assert len(log.list_activities(limit=2)) == 2
        assert len(log.list_activities(username="admin", limit=10)) == 5

    @pytest.mark.parametrize("payload", [[], "Login", ["Login"], [{"id": "A1"}, 3]])
    def test_invalid_payloads(self, storage, payload):
        with pytest.raises(ValidationError):
            ActivityLog(storage).add_activities(payload)
        assert ActivityLog(storage).list_activities() == []

    def test_log_activity(self, storage):
        log = ActivityLog(storage)
        entry = log.log_activity(None, "Seed", "Loaded demo data")

        assert entry["id"].startswith("ACT-")
        assert entry["username"] == "system"
        assert entry["timestamp"]
        assert log.list_activities() == [entry]


class TestFinancials:
    """Investments and expenses document"""

    def test_defaults_when_missing(self, storage):
        assert FinancialsManager(storage).get_financials() == {"investments": [], "expenses": []}

    def test_replace_fills_missing_sections(self, storage):
        manager = FinancialsManager(storage)
        stored = manager.replace_financials({"investments": [{"id": "INV1", "amount": 500000}]})
        assert stored["expenses"] == []
        assert manager.get_financials() == stored

    def test_replace_keeps_extra_keys(self, storage):
        manager = FinancialsManager(storage)
        manager.replace_financials({"investments": [], "expenses": [], "notes": "FY24"})
        assert manager.get_financials()["notes"] == "FY24"

    def test_invalid_documents(self, storage):
        manager = FinancialsManager(storage)
        with pytest.raises(ValidationError):
            manager.replace_financials([{"amount": 10}])
        with pytest.raises(ValidationError):
            manager.replace_financials({"investments": {"amount": 10}})

    def test_totals(self, storage):
        manager = FinancialsManager(storage)
        manager.replace_financials({
            "investments": [{"amount": 500000}, {"amount": "250000.50"}],
            "expenses": [{"amount": 12000}, {"category": "Rent"}],
        })
        totals = manager.totals()
        assert totals["investments"] == Decimal('750000.50')
        assert totals["expenses"] == Decimal('12000')
        assert totals["net"] == Decimal('738000.50')
