"""
User activity endpoints
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query, status

from .auth import MicrofinanceSystem, get_system
from .handlers import guarded


router = APIRouter()


@router.get("")
async def list_activities(
    username: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Activity feed, newest first"""
    return system.activity_log.list_activities(username=username, limit=limit)


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_activities(
    payload: Union[List[Dict[str, Any]], Dict[str, Any]] = Body(...),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Prepend one activity or an array of them"""
    with guarded("POST /userActivities"):
        return system.activity_log.add_activities(payload)
