"""
Collection endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .auth import MicrofinanceSystem, actor_name, get_system, require_role
from .handlers import guarded
from .schemas import CollectionRequest
from ..users import User


router = APIRouter()


@router.get("")
async def list_collections(
    loan_id: Optional[str] = Query(None, alias="loanId"),
    group_id: Optional[str] = Query(None, alias="groupId"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    system: MicrofinanceSystem = Depends(get_system)
):
    """List collection events, newest first"""
    if customer_id:
        collections = system.collections_manager.get_customer_collections(customer_id)
    else:
        collections = system.collections_manager.list_collections(loan_id=loan_id, group_id=group_id)
    return [collection.to_dict() for collection in collections]


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_collection(
    request: CollectionRequest,
    user: Optional[User] = Depends(require_role()),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Record a repayment against a loan or a group"""
    with guarded("POST /collections"):
        collection = system.collections_manager.record_collection(
            amount=request.amount,
            loan_id=request.loan_id,
            group_id=request.group_id,
            payment_method=request.payment_method,
            collection_date=request.collection_date,
            collected_by=request.collected_by or actor_name(user),
        )
        system.activity_log.log_activity(
            actor_name(user), "Collection Recorded",
            f"{collection.id}: {request.amount} for {request.group_id or request.loan_id}"
        )
        return collection.to_dict()
