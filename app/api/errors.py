from __future__ import annotations
import logging
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from ..config import get_settings

S = get_settings()
log = logging.getLogger("app.errors")


class ApiError(Exception):
    """Terminal failure for the current call, rendered as {success: false, message}."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _fail(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message}, headers=headers)


async def _api_error_handler(request: Request, exc: ApiError):
    return _fail(exc.status_code, exc.message)


async def _http_exception_handler(request: Request, exc: HTTPException):
    return _fail(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    log.warning("validation_error", extra={"method": request.method, "path": request.url.path, "errors": str(exc.errors())})
    # single readable line: "field: reason" for the first problem
    err = exc.errors()[0] if exc.errors() else {}
    loc = [str(p) for p in err.get("loc", []) if p not in ("body", "query", "path")]
    field = ".".join(loc)
    reason = err.get("msg", "Invalid input")
    if err.get("type") == "missing":
        message = f"{field} is required" if field else "Request body is required"
    else:
        message = f"{field}: {reason}" if field else reason
    return _fail(status.HTTP_400_BAD_REQUEST, message)


async def _general_exception_handler(request: Request, exc: Exception):
    log.error(
        "unhandled_exception",
        exc_info=exc,
        extra={"method": request.method, "path": request.url.path, "exception_type": type(exc).__name__},
    )
    message = str(exc) if S.DEBUG else "Something went wrong"
    return _fail(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _general_exception_handler)
