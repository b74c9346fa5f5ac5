from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import get_settings, Settings
from .api.errors import register_exception_handlers
from .api.routers import health as health_router
from .api.routers import auth as auth_router
from .api.routers import users as users_router
from .api.routers import metrics as metrics_router
from .observability.logging import setup_logging
from .middleware.request_context import RequestContextMiddleware
from .observability.metrics import MetricsHTTPMiddleware
from .services.otp import OtpAuthenticator
from .services.otp_sender import EmailOtpSender
from .services.otp_store import InMemoryOtpStore, OtpStore, RedisOtpStore
from . import redis_client
import uvicorn

settings = get_settings()
setup_logging()


def build_otp_store(s: Settings) -> OtpStore:
    if s.OTP_STORE_BACKEND == "memory":
        return InMemoryOtpStore(ttl_seconds=s.OTP_TTL_SECONDS)
    return RedisOtpStore(redis_client.redis, ttl_seconds=s.OTP_TTL_SECONDS)


def build_authenticator(s: Settings) -> OtpAuthenticator:
    return OtpAuthenticator(
        build_otp_store(s),
        EmailOtpSender(),
        ttl_seconds=s.OTP_TTL_SECONDS,
        max_attempts=s.OTP_MAX_VERIFY_ATTEMPTS,
    )


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
    app.state.otp_authenticator = build_authenticator(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.REQUEST_ID_HEADER],
    )

    # then our own middlewares
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(MetricsHTTPMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router.router)
    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(metrics_router.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("app.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=settings.ENV == "dev")
