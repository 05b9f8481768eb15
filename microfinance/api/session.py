"""
Staff session endpoints

The session cookie carries a signed token whose subject is the user id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from .auth import MicrofinanceSystem, get_current_user, get_system
from .handlers import guarded
from .schemas import LoginRequest
from ..users import User


router = APIRouter()


@router.post("")
async def login(request: LoginRequest, system: MicrofinanceSystem = Depends(get_system)):
    """Sign in and set the session cookie"""
    with guarded("POST /session"):
        if not request.username or not request.password:
            raise HTTPException(status_code=400, detail="Missing credentials")
        user = system.user_manager.authenticate(request.username, request.password)
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid credentials")

        response = JSONResponse(content=user.to_public_dict())
        response.set_cookie(
            key=system.config.session_cookie_name,
            value=system.session_manager.create_token(user),
            max_age=system.session_manager.max_age_seconds,
            path="/",
            httponly=True,
        )
        system.activity_log.log_activity(user.username, "Login", "Signed in")
        return response


@router.get("")
async def current_session(user: Optional[User] = Depends(get_current_user)):
    """The signed-in user, or null"""
    return user.to_public_dict() if user else None


@router.delete("")
async def logout(system: MicrofinanceSystem = Depends(get_system)):
    """Clear the session cookie"""
    response = JSONResponse(content={"success": True})
    response.delete_cookie(key=system.config.session_cookie_name, path="/", httponly=True)
    return response
