from fastapi import APIRouter
from ...db import db_health
from ...redis_client import redis_health
from ...config import get_settings

router = APIRouter(prefix="/health", tags=["health"])
S = get_settings()


async def _redis_needed_ok() -> bool:
    # redis only backs rate limits and the shared OTP store
    if S.OTP_STORE_BACKEND == "memory" and not S.RATE_LIMIT_ENABLED:
        return True
    return await redis_health()


@router.get("")
async def health():
    db_ok, redis_ok = await db_health(), await _redis_needed_ok()
    status = "ok" if (db_ok and redis_ok) else "degraded"
    return {
        "status": status,
        "dependencies": {
            "database": db_ok,
            "redis": redis_ok,
        },
    }

@router.get("/readiness")
async def readiness():
    db_ok, redis_ok = await db_health(), await _redis_needed_ok()
    return {"ready": bool(db_ok and redis_ok), "database": db_ok, "redis": redis_ok}

@router.get("/liveness")
async def liveness():
    return {"alive": True}
