from __future__ import annotations
from fastapi import HTTPException, Request, status
from ..config import get_settings
from .. import redis_client

S = get_settings()

# ---- generic token counter (fixed window) ----
async def _hit(key: str, window_sec: int, limit: int) -> None:
    redis = redis_client.redis
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, window_sec)
    if count > limit:
        ttl = await redis.ttl(key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="rate limit exceeded",
            headers={"Retry-After": str(max(ttl, 1)) if ttl and ttl > 0 else "10"},
        )

def _client_ip(req: Request) -> str:
    # prefer X-Forwarded-For (first hop), fallback to uvicorn client
    h = req.headers.get("x-forwarded-for")
    if h:
        return h.split(",")[0].strip()
    return req.client.host if req.client else "unknown"

# ---- public helpers ----
async def limit_otp_request(req: Request) -> None:
    if not S.RATE_LIMIT_ENABLED:
        return
    ip = _client_ip(req)
    await _hit(f"rl:otp:req:ip:{ip}", window_sec=10, limit=S.RL_OTP_REQ_PER_IP_10S)

async def limit_otp_verify(req: Request) -> None:
    if not S.RATE_LIMIT_ENABLED:
        return
    ip = _client_ip(req)
    await _hit(f"rl:otp:verify:ip:{ip}", window_sec=10, limit=S.RL_OTP_VERIFY_PER_IP_10S)
