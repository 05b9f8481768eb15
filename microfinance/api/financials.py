"""
Financials endpoints
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status

from .auth import MicrofinanceSystem, get_system, require_role
from .handlers import guarded
from ..storage import to_json_value
from ..users import User, UserRole


router = APIRouter()


@router.get("")
async def get_financials(system: MicrofinanceSystem = Depends(get_system)):
    """Investments and expenses"""
    return system.financials_manager.get_financials()


@router.post("", status_code=status.HTTP_201_CREATED)
async def replace_financials(
    payload: Dict[str, Any] = Body(...),
    user: Optional[User] = Depends(require_role(UserRole.ADMIN)),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Replace the financials document"""
    with guarded("POST /financials"):
        return system.financials_manager.replace_financials(payload)


@router.get("/totals")
async def get_totals(system: MicrofinanceSystem = Depends(get_system)):
    """Total investments, expenses and the difference"""
    return to_json_value(system.financials_manager.totals())
