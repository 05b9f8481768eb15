"""
Reporting endpoints
"""

from fastapi import APIRouter, Depends

from .auth import MicrofinanceSystem, get_system


router = APIRouter()


@router.get("/summary")
async def portfolio_summary(system: MicrofinanceSystem = Depends(get_system)):
    """Admin dashboard summary"""
    return system.reporting_engine.portfolio_summary().to_dict()


@router.get("/monthly")
async def monthly_trend(system: MicrofinanceSystem = Depends(get_system)):
    """Disbursals and collections per month"""
    return system.reporting_engine.monthly_trend().to_dict()


@router.get("/agents/{username}")
async def agent_summary(username: str, system: MicrofinanceSystem = Depends(get_system)):
    """A collection agent's worklist"""
    return system.reporting_engine.agent_summary(username).to_dict()
