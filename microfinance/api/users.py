"""
Staff user endpoints
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import ValidationError as PayloadError

from .auth import MicrofinanceSystem, actor_name, get_system, require_role
from .handlers import guarded
from .schemas import UpdateUserRequest
from ..errors import ValidationError
from ..users import User, UserRole


router = APIRouter()


@router.get("")
async def list_users(system: MicrofinanceSystem = Depends(get_system)):
    """List staff users (passwords are never returned)"""
    return [user.to_public_dict() for user in system.user_manager.list_users()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: Dict[str, Any] = Body(...),
    admin: Optional[User] = Depends(require_role(UserRole.ADMIN)),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Create a staff user"""
    with guarded("POST /users"):
        user = system.user_manager.create_user(payload)
        system.activity_log.log_activity(
            actor_name(admin), "User Created", f"{user.username} ({user.role.value})"
        )
        return user.to_public_dict()


@router.patch("")
async def update_user(
    payload: Dict[str, Any] = Body(...),
    admin: Optional[User] = Depends(require_role(UserRole.ADMIN)),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Merge changes into a staff user"""
    with guarded("PATCH /users"):
        try:
            request = UpdateUserRequest.model_validate(payload)
        except PayloadError:
            raise ValidationError("Missing fields")
        user = system.user_manager.update_user(request.id, request.changes)
        system.activity_log.log_activity(actor_name(admin), "User Updated", user.username)
        return {"success": True, "user": user.to_public_dict()}


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    admin: Optional[User] = Depends(require_role(UserRole.ADMIN)),
    system: MicrofinanceSystem = Depends(get_system)
):
    """Delete a staff user"""
    with guarded("DELETE /users"):
        user = system.user_manager.delete_user(user_id)
        system.activity_log.log_activity(actor_name(admin), "User Deleted", user.username)
        return {"success": True, "id": user_id}
