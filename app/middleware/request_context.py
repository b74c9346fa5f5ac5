from __future__ import annotations
import logging
import time
from datetime import datetime, timezone
from fastapi import Request
from jwt import PyJWTError
from starlette.middleware.base import BaseHTTPMiddleware
from ..observability.logging import get_request_id, bind_record
from ..config import get_settings
from ..auth.jwt import verify_jwt

S = get_settings()
log = logging.getLogger("app.request")


def _session_user(request: Request) -> str:
    token = request.cookies.get(S.SESSION_COOKIE_NAME)
    if not token:
        return "user_id=anonymous"
    try:
        claims = verify_jwt(token)
    except PyJWTError:
        # invalid/expired session is logged as anonymous
        return "user_id=anonymous"
    info = f"user_id={claims.get('sub') or 'anonymous'}"
    if claims.get("role"):
        info += f" role={claims['role']}"
    if claims.get("school_id"):
        info += f" school_id={claims['school_id']}"
    return info


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = get_request_id(request)
        start = time.perf_counter()
        timestamp = datetime.now(timezone.utc).isoformat()
        user_info = _session_user(request)

        try:
            response = await call_next(request)
        except Exception:
            dur_ms = int((time.perf_counter() - start) * 1000)
            rec = bind_record(logging.LogRecord(
                name=log.name, level=logging.ERROR, pathname=__file__, lineno=0,
                msg="unhandled_error", args=(), exc_info=None
            ), request_id=rid, extra=f"timestamp={timestamp} path={request.url.path} method={request.method} ms={dur_ms} {user_info}")
            log.handle(rec)
            raise

        dur_ms = int((time.perf_counter() - start) * 1000)
        response.headers[S.REQUEST_ID_HEADER] = rid
        rec = bind_record(logging.LogRecord(
            name=log.name, level=logging.INFO, pathname=__file__, lineno=0,
            msg="request", args=(), exc_info=None
        ), request_id=rid, extra=f"timestamp={timestamp} path={request.url.path} method={request.method} status={response.status_code} ms={dur_ms} {user_info}")
        log.handle(rec)
        return response
