"""
Customer Management Module

Manages borrower profiles: registration with sequential ``CUSTnnn`` ids,
lookups, and the name plus id-number check used by the customer portal.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

from .errors import ValidationError
from .logging_config import get_logger, log_action
from .storage import CollectionStore, StorageRecord, next_sequential_id, parse_date, parse_decimal


logger = get_logger("microfinance.customers")

DEFAULT_PROFILE_PICTURE = "https://placehold.co/100x100"


class IdType(Enum):
    """Identity documents accepted at registration"""
    AADHAAR_CARD = "Aadhaar Card"
    PAN_CARD = "PAN Card"
    RATION_CARD = "Ration Card"
    VOTER_ID = "Voter ID"
    BANK_PASSBOOK = "Bank Passbook"
    GAS_BOOK = "Gas Book"


def _parse_income(value) -> Optional[Decimal]:
    return None if value == "" else parse_decimal(value)


@dataclass
class Customer(StorageRecord):
    """Borrower profile"""
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    occupation: Optional[str] = None
    monthly_income: Optional[Decimal] = None
    profile_picture: Optional[str] = None
    registration_date: Optional[date] = None

    # KYC extras (dob, gender, secondary phone and id) stay here untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    _parsers = {
        'monthly_income': _parse_income,
        'registration_date': parse_date,
    }


def _normalize(value: Optional[str]) -> str:
    return "".join(str(value or "").split()).lower()


class CustomerManager:
    """Registers and looks up customers"""

    def __init__(self, storage: CollectionStore,
                 default_profile_picture: str = DEFAULT_PROFILE_PICTURE):
        self.storage = storage
        self.default_profile_picture = default_profile_picture

        self.customers_table = "customers"

    def list_customers(self) -> List[Customer]:
        return [Customer.from_dict(doc) for doc in self._load_documents()]

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        for doc in self._load_documents():
            if doc.get('id') == customer_id:
                return Customer.from_dict(doc)
        return None

    def generate_customer_id(self, existing_ids=None) -> str:
        if existing_ids is None:
            existing_ids = [doc.get('id') for doc in self._load_documents()]
        return next_sequential_id("CUST", existing_ids)

    def create_customer(self, payload: Dict[str, Any],
                        registration_date: Optional[date] = None) -> Customer:
        """
        Register a customer.

        A client-supplied id is kept unless it is already taken, in which case
        the next ``CUSTnnn`` id is assigned instead.

        Args:
            payload: Customer JSON object (camelCase keys)
            registration_date: Defaults to today

        Returns:
            The stored customer
        """
        if not isinstance(payload, dict):
            raise ValidationError("Invalid payload")
        if not str(payload.get('name') or "").strip():
            raise ValidationError("Missing fields")
        id_type = payload.get('idType')
        if id_type and id_type not in {t.value for t in IdType}:
            raise ValidationError(f"Unknown id type: {id_type!r}")

        documents = self._load_documents()
        existing_ids = [doc.get('id') for doc in documents]
        customer_id = payload.get('id')
        if not customer_id or customer_id in existing_ids:
            customer_id = self.generate_customer_id(existing_ids)

        document = {
            'registrationDate': (registration_date or date.today()).isoformat(),
            **payload,
            'id': customer_id,
            'profilePicture': payload.get('profilePicture') or self.default_profile_picture,
        }
        customer = Customer.from_dict(document)

        documents.append(customer.to_dict())
        self.storage.write(self.customers_table, documents)
        log_action(logger, "info", f"Registered customer {customer.id}",
                   action="customer_created", resource=customer.id)
        return customer

    def authenticate_customer(self, name: str, id_number: str) -> Optional[Customer]:
        """
        Portal credential check.

        Names match case-insensitively; id numbers match ignoring whitespace
        (so ``1234 5678 9012`` equals ``123456789012``).
        """
        if not name or not id_number:
            return None
        wanted_name = str(name).strip().lower()
        wanted_number = _normalize(id_number)
        for customer in self.list_customers():
            if (customer.name.strip().lower() == wanted_name
                    and _normalize(customer.id_number) == wanted_number):
                return customer
        return None

    def _load_documents(self) -> List[Dict[str, Any]]:
        return [doc for doc in self.storage.read_list(self.customers_table) if isinstance(doc, dict)]
