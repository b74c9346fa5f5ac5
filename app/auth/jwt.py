from __future__ import annotations
import time
from datetime import timedelta
from typing import Any, Dict
import jwt  # PyJWT

from ..config import get_settings
from ..models import User

S = get_settings()

ALGO = "HS256"
# claims every session cookie must carry; anything else is refused as "Invalid session"
REQUIRED_CLAIMS = ["sub", "role", "iat", "exp"]


def _now() -> int:
    return int(time.time())


def session_claims(user: User) -> Dict[str, Any]:
    """Identity carried in the session cookie; the request log reads role and school from it."""
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "school_id": user.school_id,
        "name": f"{user.first_name} {user.last_name}",
    }


def create_session_token(user: User, expires_in: timedelta | None = None) -> str:
    iat = _now()
    ttl = expires_in or timedelta(minutes=S.JWT_EXPIRE_MINUTES)
    to_encode = {
        "iss": S.APP_NAME,
        "aud": S.APP_NAME,
        "iat": iat,
        "exp": iat + int(ttl.total_seconds()),
        **session_claims(user),
    }
    return jwt.encode(to_encode, S.JWT_SECRET, algorithm=ALGO)


def verify_jwt(token: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        S.JWT_SECRET,
        algorithms=[ALGO],
        audience=S.APP_NAME,
        issuer=S.APP_NAME,
        options={"require": REQUIRED_CLAIMS},
    )
