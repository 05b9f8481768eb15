"""
Customer endpoints
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from .auth import MicrofinanceSystem, actor_name, get_system, require_role
from .handlers import guarded
from ..users import User


router = APIRouter()


@router.get("")
async def list_customers(system: MicrofinanceSystem = Depends(get_system)):
    """List all customers"""
    return [customer.to_dict() for customer in system.customer_manager.list_customers()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: Dict[str, Any] = Body(...),
    user: Optional[User] = Depends(require_role()),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Register a new customer"""
    with guarded("POST /customers"):
        customer = system.customer_manager.create_customer(payload)
        system.activity_log.log_activity(
            actor_name(user), "Customer Created", f"{customer.id} {customer.name}"
        )
        return customer.to_dict()


@router.get("/{customer_id}")
async def get_customer(customer_id: str, system: MicrofinanceSystem = Depends(get_system)):
    """Get customer details"""
    customer = system.customer_manager.get_customer(customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer.to_dict()


@router.get("/{customer_id}/loans")
async def get_customer_loans(customer_id: str, system: MicrofinanceSystem = Depends(get_system)):
    """Get all loans held by a customer"""
    if not system.customer_manager.get_customer(customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    return [loan.to_view() for loan in system.loan_manager.get_customer_loans(customer_id)]
