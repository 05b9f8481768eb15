"""
Loan endpoints
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import ValidationError as PayloadError

from .auth import MicrofinanceSystem, actor_name, get_system, require_role
from .handlers import guarded
from .schemas import (
    ApproveLoanRequest, DisbursalQuoteRequest, GroupLoanApplication, LoanPaymentRequest,
    PersonalLoanApplication, UpdateLoanRequest,
)
from ..errors import ValidationError
from ..groups import aggregate_loans
from ..status import OPEN_STATUSES
from ..users import User, UserRole


router = APIRouter()


def _parse_action(model, payload: Dict[str, Any]):
    try:
        return model.model_validate(payload)
    except PayloadError:
        raise ValidationError("Missing fields")


@router.get("")
async def list_loans(
    include_deleted: bool = Query(False, alias="includeDeleted"),
    system: MicrofinanceSystem = Depends(get_system)
):
    """List every loan with its derived status and next due date"""
    loans = system.loan_manager.list_loans(include_deleted=include_deleted)
    return [loan.to_view() for loan in loans]


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_loans(
    payload: Union[List[Dict[str, Any]], Dict[str, Any]] = Body(...),
    user: Optional[User] = Depends(require_role()),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Append raw loan documents (one object or an array)"""
    with guarded("POST /loans"):
        loans = system.loan_manager.add_loans(payload)
        system.activity_log.log_activity(
            actor_name(user), "Loans Added", ", ".join(loan.id for loan in loans)
        )
        return [loan.to_dict() for loan in loans]


@router.patch("")
async def patch_loans(
    payload: Dict[str, Any] = Body(...),
    user: Optional[User] = Depends(require_role()),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Approve, update or record a payment, selected by ``action``"""
    with guarded("PATCH /loans"):
        action = payload.get("action")

        if action == "approve":
            if system.config.auth_enabled and (user is None or user.role != UserRole.ADMIN):
                raise HTTPException(status_code=403, detail="Insufficient permissions")
            request = _parse_action(ApproveLoanRequest, payload)
            loans = system.loan_manager.approve_loan(request.temp_id, request.ledger_id)
            system.activity_log.log_activity(
                actor_name(user), "Loan Approved", f"{request.temp_id} approved as {request.ledger_id}"
            )

        elif action == "update":
            request = _parse_action(UpdateLoanRequest, payload)
            loans = [system.loan_manager.update_loan(request.id, request.changes)]
            system.activity_log.log_activity(
                actor_name(user), "Loan Updated", f"{request.id}: {', '.join(sorted(request.changes))}"
            )

        elif action == "payment":
            request = _parse_action(LoanPaymentRequest, payload)
            loans = system.loan_manager.record_payment(
                request.amount, loan_id=request.id, group_id=request.group_id
            )

        else:
            raise ValidationError("Unknown action")

        return {"success": True, "loans": [loan.to_view() for loan in loans]}


@router.get("/groups")
async def list_groups(system: MicrofinanceSystem = Depends(get_system)):
    """Loans partitioned into groups and personal loans"""
    return aggregate_loans(system.loan_manager.list_loans()).to_dict()


@router.post("/personal", status_code=status.HTTP_201_CREATED)
async def apply_personal_loan(
    request: PersonalLoanApplication,
    user: Optional[User] = Depends(require_role()),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Submit a personal loan application"""
    with guarded("POST /loans/personal"):
        loan = system.loan_manager.apply_personal_loan(
            customer_id=request.customer_id,
            amount=request.amount,
            collection_frequency=request.collection_frequency,
            interest_rate=request.interest_rate,
            term=request.term,
            assigned_to=request.assigned_to,
            doc_charges=request.doc_charges,
            insurance_charges=request.insurance_charges,
        )
        system.activity_log.log_activity(
            actor_name(user), "Loan Application", f"Personal loan {loan.id} for {loan.customer_name}"
        )
        return loan.to_view()


@router.post("/group", status_code=status.HTTP_201_CREATED)
async def apply_group_loan(
    request: GroupLoanApplication,
    user: Optional[User] = Depends(require_role()),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Submit a group loan application"""
    with guarded("POST /loans/group"):
        loans = system.loan_manager.apply_group_loan(
            group_name=request.group_name,
            leader_id=request.leader_id,
            member_ids=request.member_ids,
            total_amount=request.total_amount,
            interest_rate=request.interest_rate,
            term=request.term,
            assigned_to=request.assigned_to,
            doc_charges=request.doc_charges,
            insurance_charges=request.insurance_charges,
        )
        system.activity_log.log_activity(
            actor_name(user), "Loan Application",
            f"Group loan {loans[0].group_id} with {len(loans)} members"
        )
        return [loan.to_view() for loan in loans]


@router.post("/quote")
async def quote_disbursal(
    request: DisbursalQuoteRequest,
    system: MicrofinanceSystem = Depends(get_system)
):
    """Deductions and net disbursal for proposed loan terms"""
    quote = system.loan_manager.quote_disbursal(
        amount=request.amount,
        interest_rate=request.interest_rate,
        doc_charges=request.doc_charges,
        insurance_charges=request.insurance_charges,
        group_size=request.group_size,
    )
    return quote.to_dict()


@router.get("/{loan_id}")
async def get_loan(loan_id: str, system: MicrofinanceSystem = Depends(get_system)):
    """Get one loan"""
    loan = system.loan_manager.get_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan.to_view()


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    user: Optional[User] = Depends(require_role(UserRole.ADMIN)),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Delete a loan that is not currently Active or Overdue"""
    with guarded("DELETE /loans"):
        loan = system.loan_manager.get_loan(loan_id)
        if not loan:
            raise HTTPException(status_code=404, detail="Loan not found")
        if loan.status in OPEN_STATUSES:
            raise ValidationError(f"Cannot delete loan {loan_id} while it is {loan.status.value}")
        system.loan_manager.delete_loan(loan_id)
        system.activity_log.log_activity(actor_name(user), "Loan Deleted", loan_id)
        return {"success": True, "id": loan_id}
