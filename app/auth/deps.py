from __future__ import annotations
import uuid
from fastapi import Depends, Request
from fastapi import status
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from ..api.errors import ApiError
from ..config import get_settings
from ..db import get_db
from ..models import User
from ..repos import users as users_repo
from ..services.otp import OtpAuthenticator
from .jwt import verify_jwt

S = get_settings()


def get_otp_authenticator(request: Request) -> OtpAuthenticator:
    # built once in create_app(), swapped out in tests
    return request.app.state.otp_authenticator


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    token: Optional[str] = request.cookies.get(S.SESSION_COOKIE_NAME)
    if not token:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Not authenticated")

    try:
        claims = verify_jwt(token)
        user_id = uuid.UUID(str(claims.get("sub")))
    except (PyJWTError, ValueError):
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Invalid session")

    user = await users_repo.get_by_id(db, user_id)
    if not user or not user.is_active:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "User inactive or not found")
    return user


async def require_admin(current: User = Depends(get_current_user)) -> User:
    if current.role != "admin":
        raise ApiError(status.HTTP_403_FORBIDDEN, "Admin access required")
    return current
