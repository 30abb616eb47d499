"""
Username/password authentication endpoints.

A successful register or login stores the user id in the signed session
cookie; ``/ws`` upgrades and protected routes read it back.
"""

from fastapi import APIRouter, Depends, Request, status

from ..auth.middleware import login_session, logout_session, require_user
from ..auth.models import Credentials
from ..auth.service import AuthService
from ..db.models import User
from ..types import SafeUser
from .dependencies import get_auth_service

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/register", response_model=SafeUser, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    credentials: Credentials,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Create an account and log it in. 400 if the username is taken."""
    user = await auth_service.register(credentials.username, credentials.password)
    login_session(request, user)
    return user.to_safe_dict()


@router.post("/login", response_model=SafeUser)
async def login(
    request: Request,
    credentials: Credentials,
    auth_service: AuthService = Depends(get_auth_service),
):
    user = await auth_service.login(credentials.username, credentials.password)
    login_session(request, user)
    return user.to_safe_dict()


@router.post("/logout")
async def logout(request: Request):
    logout_session(request)
    return {"success": True}


@router.get("/user", response_model=SafeUser)
async def current_user(user: User = Depends(require_user)):
    return user.to_safe_dict()
