"""
Pydantic schemas for API requests

Request bodies use the same camelCase keys as the stored documents.
"""

from decimal import Decimal
import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Loan PATCH actions
class ApproveLoanRequest(CamelModel):
    temp_id: str
    ledger_id: str


class UpdateLoanRequest(CamelModel):
    id: str
    changes: Dict[str, Any]


class LoanPaymentRequest(CamelModel):
    id: Optional[str] = None
    group_id: Optional[str] = None
    amount: Optional[Decimal] = None


# Loan applications
class PersonalLoanApplication(CamelModel):
    customer_id: str
    amount: Decimal
    collection_frequency: str = "Weekly"
    interest_rate: Optional[Decimal] = None
    term: Optional[int] = None
    assigned_to: Optional[str] = None
    doc_charges: Optional[Decimal] = None
    insurance_charges: Optional[Decimal] = None


class GroupLoanApplication(CamelModel):
    group_name: str
    leader_id: str
    member_ids: List[str] = Field(default_factory=list)
    total_amount: Decimal
    interest_rate: Optional[Decimal] = None
    term: Optional[int] = None
    assigned_to: Optional[str] = None
    doc_charges: Optional[Decimal] = None
    insurance_charges: Optional[Decimal] = None


class DisbursalQuoteRequest(CamelModel):
    amount: Decimal
    interest_rate: Decimal
    doc_charges: Decimal = Decimal('0')
    insurance_charges: Decimal = Decimal('0')
    group_size: int = 1


# Collections
class CollectionRequest(CamelModel):
    loan_id: Optional[str] = None
    group_id: Optional[str] = None
    amount: Decimal
    payment_method: str = "Cash"
    collection_date: Optional[datetime.date] = Field(None, alias="date")
    collected_by: Optional[str] = None


# Users and sessions
class UpdateUserRequest(CamelModel):
    id: str
    changes: Dict[str, Any]


class LoginRequest(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None


class PortalLoginRequest(CamelModel):
    name: Optional[str] = None
    id_number: Optional[str] = None
