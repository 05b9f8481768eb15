"""
Business financials: capital investments and operating expenses.

Stored as one ``{investments: [...], expenses: [...]}`` document that clients
replace whole.
"""

from decimal import Decimal
from typing import Any, Dict

from .errors import ValidationError
from .logging_config import get_logger, log_action
from .storage import CollectionStore, parse_decimal


logger = get_logger("microfinance.financials")


def _empty() -> Dict[str, Any]:
    return {'investments': [], 'expenses': []}


class FinancialsManager:
    """Reads, replaces and totals the financials document"""

    def __init__(self, storage: CollectionStore):
        self.storage = storage

        self.financials_table = "financials"

    def get_financials(self) -> Dict[str, Any]:
        document = self.storage.read(self.financials_table, _empty())
        if not isinstance(document, dict):
            logger.warning("Financials document is not an object, returning defaults")
            return _empty()
        return document

    def replace_financials(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the whole document; missing sections become empty lists"""
        if not isinstance(payload, dict):
            raise ValidationError("Invalid payload")
        document = dict(payload)
        for section in ('investments', 'expenses'):
            entries = document.setdefault(section, [])
            if not isinstance(entries, list):
                raise ValidationError(f"{section} must be an array")

        self.storage.write(self.financials_table, document)
        log_action(logger, "info", "Financials replaced", action="financials_replaced",
                   resource="financials",
                   extra={"investments": len(document['investments']),
                          "expenses": len(document['expenses'])})
        return document

    def totals(self) -> Dict[str, Decimal]:
        document = self.get_financials()
        investments = self._sum(document.get('investments', []))
        expenses = self._sum(document.get('expenses', []))
        return {
            'investments': investments,
            'expenses': expenses,
            'net': investments - expenses,
        }

    @staticmethod
    def _sum(entries) -> Decimal:
        total = Decimal('0')
        for entry in entries or []:
            if isinstance(entry, dict):
                total += parse_decimal(entry.get('amount'))
        return total
