import asyncio
import os

# IMPORTANT: settings are read once, so the test environment has to be in place
# before anything under app/ is imported.
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_eductrack.db")
os.environ.setdefault("OTP_STORE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("OTP_ECHO_IN_RESPONSE", "true")
os.environ.setdefault("SMTP_USER", "")
os.environ.setdefault("SMTP_PASSWORD", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.db import engine, SessionLocal
from app.models import Base
from app.repos import users as users_repo
from app.domain.schemas.auth import AdminRegistrationIn, ParentRegistrationIn, TeacherCreationIn
from app.services.otp import OtpAuthenticator
from app.services.otp_store import InMemoryOtpStore


class RecordingSender:
    """Stands in for the SMTP sender; keeps every (to, code, role) it was given."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, to: str, code: str, role: str) -> None:
        self.sent.append((to, code, role))
        if self.fail:
            raise ConnectionError("smtp unreachable")


class FakeRedis:
    """
    Just enough of redis.asyncio for RedisOtpStore: set/get/delete and the
    compare-and-swap script. With ``interleave`` every command gives up the
    loop once before it runs, the way a network round trip would.
    """

    def __init__(self, interleave: bool = False):
        self.data = {}
        self.ttl = {}
        self.interleave = interleave

    async def _turn(self):
        if self.interleave:
            await asyncio.sleep(0)

    async def set(self, key, value, ex=None):
        await self._turn()
        self.data[key] = value
        self.ttl[key] = ex
        return True

    async def get(self, key):
        await self._turn()
        return self.data.get(key)

    async def delete(self, key):
        await self._turn()
        self.ttl.pop(key, None)
        return 1 if self.data.pop(key, None) is not None else 0

    def register_script(self, _source):
        async def compare_and_swap(keys=None, args=None):
            await self._turn()
            key = keys[0]
            if self.data.get(key) != args[0]:
                return 0
            if len(args) > 1:
                self.data[key] = args[1]  # KEEPTTL
            else:
                self.data.pop(key)
                self.ttl.pop(key, None)
            return 1

        return compare_and_swap


# Fresh schema for every test, on the SAME loop as the test function.
# Dispose the engine afterwards so no pooled connection leaks into the next loop.
@pytest_asyncio.fixture(autouse=True, loop_scope="function")
async def _db_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db():
    async with SessionLocal() as s:
        yield s


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def store():
    return InMemoryOtpStore()


@pytest.fixture
def authenticator(store, sender):
    return OtpAuthenticator(store, sender, ttl_seconds=600)


@pytest_asyncio.fixture
async def client(authenticator):
    from app.main import app

    app.state.otp_authenticator = authenticator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


# ---------- helpers ----------
async def mk_admin(db, email: str, school_id: str = "SCH_TEST_1"):
    u = await users_repo.create_admin(
        db,
        AdminRegistrationIn(email=email, first_name="Ada", last_name="Admin", school_name="Test School", school_id=school_id),
    )
    await db.commit()
    return u


async def mk_parent(db, email: str, school_id: str = "SCH_TEST_1"):
    u = await users_repo.create_parent(
        db,
        ParentRegistrationIn(email=email, first_name="Pat", last_name="Parent", school_id=school_id),
    )
    await db.commit()
    return u


async def mk_teacher(db, email: str, school_id: str = "SCH_TEST_1", last_name: str = "Teacher"):
    u = await users_repo.create_teacher(
        db,
        TeacherCreationIn(email=email, first_name="Tom", last_name=last_name, school_id=school_id, teacher_subjects=["Math"]),
    )
    await db.commit()
    return u
