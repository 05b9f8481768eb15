"""
Customer portal endpoints
"""

from fastapi import APIRouter, Depends, HTTPException

from .auth import MicrofinanceSystem, get_system
from .schemas import PortalLoginRequest
from ..logging_config import get_logger, log_action


router = APIRouter()
logger = get_logger("microfinance.api")


@router.post("/session")
async def portal_login(request: PortalLoginRequest, system: MicrofinanceSystem = Depends(get_system)):
    """Check a borrower's name and id number"""
    if not request.name or not request.id_number:
        raise HTTPException(status_code=400, detail="Missing credentials")
    customer = system.customer_manager.authenticate_customer(request.name, request.id_number)
    if customer is None:
        log_action(logger, "warning", "Portal sign-in failed", action="portal_login_failed",
                   resource="portal", extra={"name": request.name})
        raise HTTPException(status_code=401, detail="Invalid credentials")
    log_action(logger, "info", f"Customer {customer.id} signed in to the portal",
               action="portal_login", resource=customer.id)
    return customer.to_dict()


@router.get("/customers/{customer_id}/loans")
async def portal_loans(customer_id: str, system: MicrofinanceSystem = Depends(get_system)):
    """A borrower's loans and repayment history"""
    return system.portal.loan_history(customer_id)
