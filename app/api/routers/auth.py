from __future__ import annotations
import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import get_settings
from ...db import get_db
from ...models import User
from ...repos import users as users_repo
from ...auth.jwt import create_session_token
from ...auth.deps import get_current_user, get_otp_authenticator
from ...domain.schemas.auth import (
    AdminRegistrationIn,
    CreatedUserOut,
    ParentRegistrationIn,
    SendOtpIn,
    UserOut,
    VerifyOtpIn,
)
from ...services.otp import FAILURE_MESSAGES, InvalidOtpRequest, OtpAuthenticator
from ...services.rate_limit import limit_otp_request, limit_otp_verify
from ..errors import ApiError

router = APIRouter(prefix="/api/auth", tags=["auth"])

S = get_settings()
log = logging.getLogger(__name__)


def set_session_cookie(response: Response, value: str, max_age_seconds: int):
    # plain http is fine outside prod (local dev, tests)
    response.set_cookie(
        key=S.SESSION_COOKIE_NAME,
        value=value,
        httponly=True,
        samesite="lax",
        path="/",
        max_age=max_age_seconds,
        secure=S.ENV == "prod",
    )


def _issue_session(response: Response, user: User) -> None:
    token = create_session_token(user)
    set_session_cookie(response, token, max_age_seconds=S.JWT_EXPIRE_MINUTES * 60)


@router.post("/send-otp")
async def send_otp(
    payload: SendOtpIn,
    request: Request,
    authenticator: OtpAuthenticator = Depends(get_otp_authenticator),
):
    await limit_otp_request(request)
    profile = payload.model_dump(include={"first_name", "last_name", "school_id"}, exclude_none=True)
    try:
        code = await authenticator.request_code(str(payload.email), payload.role, profile)
    except InvalidOtpRequest as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc))
    except Exception as exc:
        log.exception("send_otp_failed")
        message = str(exc) if S.DEBUG and str(exc) else "Failed to send OTP"
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, message)

    body = {"success": True, "message": "OTP sent to your email"}
    if S.OTP_ECHO_IN_RESPONSE and S.ENV != "prod":
        body["otp"] = code
    return body


@router.post("/verify-otp")
async def verify_otp(
    payload: VerifyOtpIn,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    authenticator: OtpAuthenticator = Depends(get_otp_authenticator),
):
    await limit_otp_verify(request)
    try:
        result = await authenticator.verify_code(str(payload.email), payload.otp)
    except InvalidOtpRequest as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc))
    if not result.valid:
        raise ApiError(status.HTTP_400_BAD_REQUEST, FAILURE_MESSAGES[result.reason])

    user = await users_repo.get_by_email(db, str(payload.email))
    if user is None:
        # registration has to follow; the captured profile lets the client prefill it
        return {"success": True, "message": "OTP verified", "user": None}

    if user.is_active and user.role == result.role:
        _issue_session(response, user)
    else:
        log.info("session_not_issued", extra={"user_id": str(user.id), "requested_role": result.role})
    return {
        "success": True,
        "message": "OTP verified",
        "user": UserOut.from_model(user).model_dump(by_alias=True),
    }


def _created(user: User, message: str) -> dict:
    out = CreatedUserOut(id=str(user.id), email=user.email, role=user.role, school_id=user.school_id)
    return {"success": True, "message": message, "user": out.model_dump(by_alias=True)}


@router.post("/register-admin")
async def register_admin(payload: AdminRegistrationIn, db: AsyncSession = Depends(get_db)):
    try:
        user = await users_repo.create_admin(db, payload)
    except users_repo.EmailAlreadyRegistered as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc))
    await db.commit()
    return _created(user, "Admin account created successfully")


@router.post("/register-parent")
async def register_parent(payload: ParentRegistrationIn, db: AsyncSession = Depends(get_db)):
    try:
        user = await users_repo.create_parent(db, payload)
    except users_repo.EmailAlreadyRegistered as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc))
    await db.commit()
    return _created(user, "Parent account created successfully")


@router.get("/me")
async def me(current: User = Depends(get_current_user)):
    return {"success": True, "user": UserOut.from_model(current).model_dump(by_alias=True)}


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout():
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(S.SESSION_COOKIE_NAME, path="/", httponly=True, samesite="lax")
    return response
